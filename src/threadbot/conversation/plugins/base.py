"""
Plugin capability interface for the threadbot conversation loop.

A plugin is an opaque capability the model can ask for by name. It declares
its parameter schema as class attributes and implements a single coroutine,
``run_plugin(arguments, context)``, that returns a ``PluginResult``.

A result is either *final* (its message is returned to the requester as the
answer) or *intermediate* (its message is fed back to the model as a
``function`` message and another round begins).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

from threadbot.conversation.providers import ToolDefinition


@dataclass
class MessageContext:
    """Ambient request context handed to every plugin call.

    Attributes:
        conversation_id: Thread/session the request belongs to.
        user_name: Display name of the requester, if known.
        post_id: Identifier of the message that triggered the request.
        extra: Free-form metadata supplied by the caller.
    """

    conversation_id: str | None = None
    user_name: str | None = None
    post_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class PluginResult:
    """Result of a plugin invocation.

    Attributes:
        message: Display text (final answer or content for the model).
        intermediate: ``True`` if the message should be fed back to the model
            for another round instead of being returned as the answer.
        props: Optional metadata to attach to the final reply.
    """

    message: str
    intermediate: bool = False
    props: dict[str, Any] = field(default_factory=dict)


class PluginBase(ABC):
    """Base class for all chat plugins.

    Subclasses set ``key``, ``description``, ``plugin_arguments`` and
    ``required_arguments`` and implement ``run_plugin``.
    """

    key: ClassVar[str]
    description: ClassVar[str]
    plugin_arguments: ClassVar[dict[str, Any]] = {}
    required_arguments: ClassVar[tuple[str, ...]] = ()

    def definition(self) -> ToolDefinition:
        """Return the ``ToolDefinition`` advertised to the model."""
        return ToolDefinition(
            name=self.key,
            description=self.description,
            properties=dict(self.plugin_arguments),
            required=tuple(self.required_arguments),
        )

    @abstractmethod
    async def run_plugin(
        self, arguments: dict[str, Any], context: MessageContext
    ) -> PluginResult:
        """Execute the plugin.

        Args:
            arguments: Parsed arguments sent by the model.
            context: The request the conversation belongs to.

        Returns:
            The plugin's ``PluginResult``.
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} key={self.key!r}>"
