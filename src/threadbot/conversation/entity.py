"""
ThreadConversation: per-thread chat history in front of the ConversationLoop.

Keeps an in-memory message list per conversation id, prepends the system
prompt, runs the loop on the thread and records the reply. State lives for
the process lifetime only.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from threadbot.conversation.loop import ConversationLoop, StopReason
from threadbot.conversation.plugins.base import MessageContext

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant taking part in a chat thread. "
    "Answer concisely. Use the available plugins when they help; "
    "do not make up information, and say so if you don't know."
)


@dataclass
class ConversationInput:
    """One message posted to a thread.

    Attributes:
        text: The user's message.
        conversation_id: Thread id for multi-turn context; a new id is
            created when omitted.
        user_name: Display name of the author.
        post_id: Identifier of the posted message.
    """

    text: str
    conversation_id: str | None = None
    user_name: str | None = None
    post_id: str | None = None


@dataclass
class ConversationReply:
    """The bot's reply to one posted message."""

    response_text: str
    conversation_id: str
    stop_reason: StopReason
    rounds: int
    props: dict[str, Any] = field(default_factory=dict)


class ThreadConversation:
    """Chat threads backed by a `ConversationLoop`.

    Attributes:
        loop: The loop that answers each message.
        system_prompt: Instruction text at the top of every thread.
        max_history_messages: Number of most recent thread messages sent to
            the model besides the system prompt; ``0`` disables the window.
    """

    def __init__(
        self,
        loop: ConversationLoop,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_history_messages: int = 40,
    ) -> None:
        self.loop = loop
        self.system_prompt = system_prompt
        self.max_history_messages = max_history_messages
        self._histories: dict[str, list[dict[str, Any]]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def active_threads(self) -> int:
        return len(self._histories)

    def history(self, conversation_id: str) -> list[dict[str, Any]]:
        """Return a copy of the stored thread (without the system prompt)."""
        return list(self._histories.get(conversation_id, []))

    def _window(self, history: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if self.max_history_messages == 0 or len(history) <= self.max_history_messages:
            return list(history)
        logger.debug(
            "History window: dropping %d oldest message(s)",
            len(history) - self.max_history_messages,
        )
        return history[-self.max_history_messages:]

    async def async_process(self, user_input: ConversationInput) -> ConversationReply:
        """Answer one message posted to a thread.

        The messages the loop appends (system notes about missing plugins,
        intermediate plugin results) stay in the thread, followed by the
        reply as an assistant message. Messages posted to the same thread
        are answered one at a time, in arrival order.
        """
        conv_id = user_input.conversation_id or str(uuid.uuid4())
        async with self._locks.setdefault(conv_id, asyncio.Lock()):
            return await self._process(conv_id, user_input)

    async def _process(
        self, conv_id: str, user_input: ConversationInput
    ) -> ConversationReply:
        history = self._histories.get(conv_id, [])

        thread: list[dict[str, Any]] = []
        if self.system_prompt:
            thread.append({"role": "system", "content": self.system_prompt})
        thread.extend(self._window(history))
        thread.append({"role": "user", "content": user_input.text})
        prefix_len = len(thread)

        logger.info(
            "Processing message: id=%r, text=%r, history_len=%d",
            conv_id,
            user_input.text,
            len(history),
        )

        context = MessageContext(
            conversation_id=conv_id,
            user_name=user_input.user_name,
            post_id=user_input.post_id,
        )
        response = await self.loop.continue_thread(thread, context)

        turn = [{"role": "user", "content": user_input.text}]
        turn.extend(thread[prefix_len:])
        turn.append({"role": "assistant", "content": response.message})
        # Re-read: the thread may have been cleared while the loop ran.
        self._histories[conv_id] = self._histories.get(conv_id, []) + turn

        logger.info(
            "Message answered: id=%r, stop_reason=%s, rounds=%d",
            conv_id,
            response.stop_reason.value,
            response.rounds,
        )
        return ConversationReply(
            response_text=response.message,
            conversation_id=conv_id,
            stop_reason=response.stop_reason,
            rounds=response.rounds,
            props=response.props,
        )

    def clear_history(self, conversation_id: str) -> None:
        self._histories.pop(conversation_id, None)

    def clear_all_history(self) -> None:
        self._histories.clear()
