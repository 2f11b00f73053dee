"""
ConversationLoop: the plugin-call resolution loop for threadbot.

This module implements the core behaviour: asking the LLM for the next
message, dispatching the plugin the LLM requests, feeding intermediate
results back, and repeating until a final answer exists or the round budget
is spent.

Each round is one model call plus at most one plugin dispatch. Rounds run
strictly in sequence; the loop suspends only while awaiting the model and
while awaiting a plugin. Every failure inside a round ends in a
``LoopResponse``; nothing but cancellation escapes ``continue_thread``.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from threadbot.conversation.plugins.base import MessageContext, PluginBase, PluginResult
from threadbot.conversation.plugins.registry import PluginRegistry
from threadbot.conversation.providers import LLMProvider

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 7
DEFAULT_MISSING_PLUGIN_STRIKES = 2

FALLBACK_MESSAGE = "Sorry, but it seems I found no valid response."
MODEL_ERROR_MESSAGE = (
    "Sorry, but it seems I could not reach the language model. Please try again."
)
PLUGIN_ERROR_TEMPLATE = (
    "Sorry, but it seems there was an error when using the plugin ```{name}```."
)
MISSING_PLUGIN_TEMPLATE = (
    "There is no plugin named '{name}' available. Try without using that plugin."
)


class StopReason(str, enum.Enum):
    """Why a ``continue_thread`` run ended."""

    ANSWERED = "answered"
    PLUGIN_RESULT = "plugin_result"
    MISSING_PLUGIN = "missing_plugin"
    PLUGIN_ERROR = "plugin_error"
    MODEL_ERROR = "model_error"
    NO_RESPONSE = "no_response"
    BUDGET_EXHAUSTED = "budget_exhausted"


class PluginArgumentsError(ValueError):
    """Raised when a function call's serialized arguments cannot be used."""


@dataclass
class LoopResponse:
    """The single reply produced by one ``continue_thread`` run.

    Attributes:
        message: Display text for the requester.
        stop_reason: Terminal condition that ended the run.
        rounds: Number of model round-trips used.
        props: Metadata attached by a final plugin result.
    """

    message: str
    stop_reason: StopReason
    rounds: int
    props: dict[str, Any] = field(default_factory=dict)


def parse_arguments(raw: str | None) -> dict[str, Any]:
    """Decode the serialized arguments of a function call.

    An absent or blank payload is an empty parameter set.

    Raises:
        PluginArgumentsError: If *raw* is not JSON or not a JSON object.
    """
    if raw is None or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise PluginArgumentsError(f"Arguments are not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise PluginArgumentsError(
            f"Arguments must be a JSON object, got {type(parsed).__name__}"
        )
    return parsed


class ConversationLoop:
    """Runs the model + plugin round-trips for one request.

    Typical usage::

        loop = ConversationLoop(provider=provider, registry=default_registry)
        response = await loop.continue_thread(
            messages=[{"role": "user", "content": "What's the weather in Berlin?"}],
            context=MessageContext(conversation_id="thread-1"),
        )

    Attributes:
        provider: The LLM backend (any `LLMProvider` implementation).
        registry: Plugin catalog advertised to the model and used for dispatch.
        max_rounds: Maximum number of model calls per run. Default: 7.
        missing_plugin_strikes: How many times the model may name the same
            unknown plugin before the run fails. The first occurrences are
            answered with a corrective system message. Default: 2.
        plugin_timeout: Seconds a plugin may run before it counts as failed,
            or ``None`` for no limit.
        fallback_message: Answer used when no round produced one.
    """

    def __init__(
        self,
        provider: LLMProvider,
        registry: PluginRegistry,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        missing_plugin_strikes: int = DEFAULT_MISSING_PLUGIN_STRIKES,
        plugin_timeout: float | None = None,
        fallback_message: str = FALLBACK_MESSAGE,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1.")
        if missing_plugin_strikes < 1:
            raise ValueError("missing_plugin_strikes must be at least 1.")
        self.provider = provider
        self.registry = registry
        self.max_rounds = max_rounds
        self.missing_plugin_strikes = missing_plugin_strikes
        self.plugin_timeout = plugin_timeout
        self.fallback_message = fallback_message

    async def continue_thread(
        self,
        messages: list[dict[str, Any]],
        context: MessageContext,
    ) -> LoopResponse:
        """Continue the conversation in *messages* until an answer exists.

        Args:
            messages: The thread in OpenAI message format. Owned by the
                caller and extended in place with the system and function
                messages produced along the way; never truncated.
            context: The request the thread belongs to, passed to plugins.

        Returns:
            The `LoopResponse` for the requester.
        """
        missing_plugins: dict[str, int] = {}
        tools = self.registry.describe_all()
        turn_start = time.monotonic()

        for round_no in range(1, self.max_rounds + 1):
            logger.debug("Round %d/%d: awaiting model", round_no, self.max_rounds)

            try:
                result = await self.provider.complete(messages, tools)
            except Exception as exc:
                logger.error(
                    "Model call failed in round %d for conversation %r: %s",
                    round_no,
                    context.conversation_id,
                    exc,
                    exc_info=True,
                )
                return self._done(MODEL_ERROR_MESSAGE, StopReason.MODEL_ERROR, round_no)

            if result is None:
                return self._done(self.fallback_message, StopReason.NO_RESPONSE, round_no)

            if result.function_call is not None and result.function_call.name:
                plugin_name = result.function_call.name
                logger.debug("Round %d: dispatching plugin %r", round_no, plugin_name)

                plugin = self.registry.lookup(plugin_name)
                if plugin is None:
                    strikes = missing_plugins.get(plugin_name, 0) + 1
                    missing_plugins[plugin_name] = strikes
                    logger.warning(
                        "Model requested unknown plugin %r (strike %d/%d), arguments=%r",
                        plugin_name,
                        strikes,
                        self.missing_plugin_strikes,
                        result.function_call.arguments,
                    )
                    if strikes >= self.missing_plugin_strikes:
                        return self._done(
                            PLUGIN_ERROR_TEMPLATE.format(name=plugin_name),
                            StopReason.MISSING_PLUGIN,
                            round_no,
                        )
                    messages.append(
                        {
                            "role": "system",
                            "content": MISSING_PLUGIN_TEMPLATE.format(name=plugin_name),
                        }
                    )
                    continue

                try:
                    plugin_result = await self._run_plugin(
                        plugin, result.function_call.arguments, context
                    )
                except Exception as exc:
                    logger.error(
                        "Plugin %r failed in round %d (arguments=%r): %s",
                        plugin_name,
                        round_no,
                        result.function_call.arguments,
                        exc,
                        exc_info=True,
                    )
                    return self._done(
                        PLUGIN_ERROR_TEMPLATE.format(name=plugin_name),
                        StopReason.PLUGIN_ERROR,
                        round_no,
                    )

                if plugin_result.intermediate:
                    messages.append(
                        {
                            "role": "function",
                            "name": plugin_name,
                            "content": plugin_result.message,
                        }
                    )
                    continue

                logger.info(
                    "Plugin %r produced the final answer after %d round(s) in %.3fs",
                    plugin_name,
                    round_no,
                    time.monotonic() - turn_start,
                )
                return self._done(
                    plugin_result.message,
                    StopReason.PLUGIN_RESULT,
                    round_no,
                    props=plugin_result.props,
                )

            if result.content:
                logger.info(
                    "Loop complete after %d round(s) in %.3fs",
                    round_no,
                    time.monotonic() - turn_start,
                )
                return self._done(result.content, StopReason.ANSWERED, round_no)

            logger.warning(
                "Round %d: model returned neither content nor a plugin call", round_no
            )
            return self._done(self.fallback_message, StopReason.NO_RESPONSE, round_no)

        logger.warning(
            "Round budget of %d exhausted for conversation %r",
            self.max_rounds,
            context.conversation_id,
        )
        return self._done(
            self.fallback_message, StopReason.BUDGET_EXHAUSTED, self.max_rounds
        )

    async def _run_plugin(
        self,
        plugin: PluginBase,
        raw_arguments: str | None,
        context: MessageContext,
    ) -> PluginResult:
        """Parse the call's arguments and await the plugin.

        Raises:
            PluginArgumentsError: If the arguments cannot be parsed.
            asyncio.TimeoutError: If the plugin exceeds ``plugin_timeout``.
            Exception: Whatever the plugin raises.
        """
        plugin_name = plugin.key
        arguments = parse_arguments(raw_arguments)
        logger.debug("Dispatching plugin: %s(%s)", plugin_name, arguments)

        call = plugin.run_plugin(arguments, context)
        if self.plugin_timeout is not None:
            plugin_result = await asyncio.wait_for(call, timeout=self.plugin_timeout)
        else:
            plugin_result = await call

        logger.debug(
            "Plugin %r returned %s result: %r",
            plugin_name,
            "intermediate" if plugin_result.intermediate else "final",
            plugin_result.message,
        )
        return plugin_result

    @staticmethod
    def _done(
        message: str,
        stop_reason: StopReason,
        rounds: int,
        props: dict[str, Any] | None = None,
    ) -> LoopResponse:
        logger.debug(
            "Done: stop_reason=%s rounds=%d",
            stop_reason.value,
            rounds,
        )
        return LoopResponse(
            message=message,
            stop_reason=stop_reason,
            rounds=rounds,
            props=dict(props or {}),
        )
