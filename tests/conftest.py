"""
Pytest configuration and shared fixtures for the threadbot test suite.
"""

from __future__ import annotations

from typing import Any

import pytest

from threadbot.conversation.plugins.base import MessageContext, PluginBase, PluginResult
from threadbot.conversation.plugins.registry import PluginRegistry


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class StaticPlugin(PluginBase):
    """Plugin returning a fixed result and recording its calls."""

    def __init__(
        self,
        key: str,
        message: str = "ok",
        intermediate: bool = False,
        required: tuple[str, ...] = (),
    ) -> None:
        self.key = key
        self.description = f"Test plugin {key}."
        self.plugin_arguments = {name: {"type": "string"} for name in required}
        self.required_arguments = required
        self.message = message
        self.intermediate = intermediate
        self.calls: list[tuple[dict[str, Any], MessageContext]] = []

    async def run_plugin(
        self, arguments: dict[str, Any], context: MessageContext
    ) -> PluginResult:
        self.calls.append((arguments, context))
        return PluginResult(message=self.message, intermediate=self.intermediate)


class FailingPlugin(PluginBase):
    key = "explode"
    description = "Always raises."

    async def run_plugin(
        self, arguments: dict[str, Any], context: MessageContext
    ) -> PluginResult:
        raise RuntimeError("plugin backend down")


@pytest.fixture
def registry() -> PluginRegistry:
    return PluginRegistry()


@pytest.fixture
def context() -> MessageContext:
    return MessageContext(conversation_id="thread-1", user_name="alex", post_id="post-1")


@pytest.fixture
def static_plugin() -> type[StaticPlugin]:
    """Factory for ``StaticPlugin`` instances."""
    return StaticPlugin


@pytest.fixture
def failing_plugin() -> FailingPlugin:
    return FailingPlugin()
