"""
LLM provider abstractions for the threadbot conversation package.

Defines the `LLMProvider` Protocol so the `ConversationLoop` can work with any
OpenAI-compatible backend (OpenAI, Azure OpenAI, a local proxy, etc.) without
being tied to a specific vendor or SDK.

The concrete implementation, `OpenAICompatibleProvider`, uses
`openai.AsyncOpenAI` (or `openai.AsyncAzureOpenAI` when an Azure endpoint is
configured) and speaks the function-calling flavour of the chat completion
API: plugins are advertised as ``functions`` and the model answers with at
most one ``function_call``.

Also provides:
- Custom exception hierarchy for LLM API errors.
- ``UsageStats`` for token usage reporting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    AsyncAzureOpenAI,
    AsyncOpenAI,
    RateLimitError,
)

if TYPE_CHECKING:
    from threadbot.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_AZURE_API_VERSION = "2023-07-01-preview"


# ---------------------------------------------------------------------------
# Custom exception hierarchy
# ---------------------------------------------------------------------------


class LLMError(Exception):
    """Base exception for all LLM provider errors."""


class LLMRateLimitError(LLMError):
    """Raised when the LLM API returns a rate-limit (429) response."""


class LLMConnectionError(LLMError):
    """Raised when the LLM API endpoint cannot be reached."""


class LLMAPIError(LLMError):
    """Raised for other LLM API errors (e.g., 5xx, authentication failures).

    Attributes:
        status_code: HTTP status code from the API, or ``None`` if unavailable.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Core data types
# ---------------------------------------------------------------------------


@dataclass
class UsageStats:
    """Token usage recorded for a single LLM completion call."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass(frozen=True)
class ToolDefinition:
    """Describes a plugin the model may call.

    Immutable once built; the registry hands the same objects to every
    completion request.

    Attributes:
        name: The plugin's unique name (used by the LLM to invoke it).
        description: Human-readable description shown in the LLM's tool prompt.
        properties: JSON-schema shapes keyed by parameter name.
        required: Names of the parameters the model must supply.
    """

    name: str
    description: str
    properties: dict[str, Any] = field(default_factory=dict)
    required: tuple[str, ...] = ()

    def to_openai_format(self) -> dict[str, Any]:
        """Serialise to the OpenAI ``functions`` entry format."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": dict(self.properties),
                "required": list(self.required),
            },
        }


@dataclass
class FunctionCall:
    """A plugin invocation requested by the LLM.

    Attributes:
        name: Name of the plugin to invoke.
        arguments: The serialized JSON arguments exactly as the model sent
            them, or ``None`` when the model omitted them.
    """

    name: str
    arguments: str | None = None


@dataclass
class CompletionResult:
    """The response message of a single LLM completion call.

    Attributes:
        content: Text content of the assistant message, if any.
        function_call: The requested plugin invocation, if any.
        finish_reason: ``"stop"`` for a text response, ``"function_call"``
            when the LLM wants to invoke a plugin.
        raw_message: The assistant message dict in OpenAI format.
        usage: Token usage for this call, or ``None`` if unavailable.
    """

    content: str | None
    function_call: FunctionCall | None = None
    finish_reason: str = "stop"
    raw_message: dict[str, Any] = field(default_factory=dict)
    usage: UsageStats | None = None


# ---------------------------------------------------------------------------
# LLMProvider Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol for LLM backends used by ConversationLoop."""

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> CompletionResult | None:
        """Send a completion request to the LLM.

        Args:
            messages: The full conversation history in OpenAI message format.
            tools: The plugin catalog to advertise.

        Returns:
            The first response message, or ``None`` if the API returned no
            choices.

        Raises:
            LLMError: If the API call fails.
        """
        ...


# ---------------------------------------------------------------------------
# Concrete provider implementation
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """LLM provider backed by the OpenAI or Azure OpenAI chat completion API.

    Attributes:
        model: Model identifier (the deployment name on Azure).
        max_tokens: Maximum number of tokens to generate per completion.
        temperature: Sampling temperature (0.0–2.0).
        azure_endpoint: Azure resource endpoint, or ``None`` for plain OpenAI.
        image_model: Image model (the image deployment name on Azure).
    """

    def __init__(
        self,
        model: str = "gpt-3.5-turbo",
        api_key: str | None = None,
        base_url: str | None = None,
        max_tokens: int = 2000,
        temperature: float = 1.0,
        azure_endpoint: str | None = None,
        api_version: str | None = None,
        proxy: str | None = None,
        image_model: str = "dall-e-2",
    ) -> None:
        self.model = model
        self.image_model = image_model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.azure_endpoint = azure_endpoint

        http_client = httpx.AsyncClient(proxy=proxy) if proxy else None

        if azure_endpoint:
            self._client = AsyncAzureOpenAI(
                azure_endpoint=azure_endpoint,
                api_version=api_version or DEFAULT_AZURE_API_VERSION,
                api_key=api_key,
                http_client=http_client,
            )
        else:
            self._client = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                http_client=http_client,
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenAICompatibleProvider:
        """Build a provider from the application ``Settings``."""
        return cls(
            model=settings.openai_model_name,
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            max_tokens=settings.openai_max_tokens,
            temperature=settings.openai_temperature,
            azure_endpoint=settings.openai_azure_endpoint,
            api_version=settings.openai_api_version,
            proxy=settings.socks_proxy,
            image_model=settings.openai_image_model,
        )

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> CompletionResult | None:
        """Call the LLM and return its first response message.

        Raises:
            LLMRateLimitError: If the API returns a 429 response.
            LLMConnectionError: If the API endpoint cannot be reached.
            LLMAPIError: For other API-level failures (e.g. 4xx/5xx).
        """
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if tools:
            kwargs["functions"] = [t.to_openai_format() for t in tools]
            kwargs["function_call"] = "auto"

        logger.debug(
            "LLM request: model=%s, messages=%d, functions=%d",
            self.model,
            len(messages),
            len(tools),
        )

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except RateLimitError as exc:
            logger.warning("LLM rate limit exceeded: %s", exc)
            raise LLMRateLimitError(f"Rate limit exceeded: {exc}") from exc
        except APIConnectionError as exc:
            logger.error("LLM connection failed: %s", exc)
            raise LLMConnectionError(f"Could not connect to LLM endpoint: {exc}") from exc
        except APIStatusError as exc:
            logger.error("LLM API error %d: %s", exc.status_code, exc)
            raise LLMAPIError(
                f"LLM API returned status {exc.status_code}: {exc}",
                status_code=exc.status_code,
            ) from exc

        if not response.choices:
            logger.debug("LLM response contained no choices")
            return None

        choice = response.choices[0]
        message = choice.message

        function_call: FunctionCall | None = None
        raw_message: dict[str, Any] = {"role": "assistant", "content": message.content}
        if message.function_call is not None:
            function_call = FunctionCall(
                name=message.function_call.name,
                arguments=message.function_call.arguments,
            )
            raw_message["function_call"] = {
                "name": function_call.name,
                "arguments": function_call.arguments,
            }

        usage: UsageStats | None = None
        if response.usage is not None:
            usage = UsageStats(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        finish_reason = choice.finish_reason or (
            "function_call" if function_call else "stop"
        )
        logger.debug(
            "LLM response: finish_reason=%s, function_call=%s, tokens=%s",
            finish_reason,
            function_call.name if function_call else None,
            usage.total_tokens if usage else "n/a",
        )

        return CompletionResult(
            content=message.content,
            function_call=function_call,
            finish_reason=finish_reason,
            raw_message=raw_message,
            usage=usage,
        )

    async def create_image(self, prompt: str) -> str | None:
        """Generate one 512x512 image for *prompt*.

        Returns:
            The base64-encoded image data, or ``None`` if the API returned
            no image.

        Raises:
            LLMError: If the API call fails.
        """
        logger.debug("Image request: prompt=%r", prompt)
        try:
            response = await self._client.images.generate(
                model=self.image_model,
                prompt=prompt,
                n=1,
                size="512x512",
                response_format="b64_json",
            )
        except RateLimitError as exc:
            raise LLMRateLimitError(f"Rate limit exceeded: {exc}") from exc
        except APIConnectionError as exc:
            raise LLMConnectionError(f"Could not connect to LLM endpoint: {exc}") from exc
        except APIStatusError as exc:
            raise LLMAPIError(
                f"Image API returned status {exc.status_code}: {exc}",
                status_code=exc.status_code,
            ) from exc

        if not response.data:
            return None
        return response.data[0].b64_json

    async def aclose(self) -> None:
        """Close the underlying HTTP client (including a proxy client)."""
        await self._client.close()
