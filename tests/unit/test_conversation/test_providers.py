"""Unit tests for threadbot.conversation.providers."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from threadbot.config import Settings
from threadbot.conversation.providers import (
    CompletionResult,
    FunctionCall,
    LLMAPIError,
    LLMConnectionError,
    LLMError,
    LLMProvider,
    LLMRateLimitError,
    OpenAICompatibleProvider,
    ToolDefinition,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


_WEATHER_DEF = ToolDefinition(
    name="get_weather",
    description="Retrieve current weather conditions.",
    properties={"location": {"type": "string", "description": "City name"}},
    required=("location",),
)


def _mock_response(
    content: str | None = "Hi there",
    function_call: tuple[str, str | None] | None = None,
    usage: tuple[int, int, int] | None = None,
    finish_reason: str | None = "stop",
) -> MagicMock:
    """Build a minimal chat completion response object."""
    choice = MagicMock()
    choice.finish_reason = finish_reason
    choice.message.content = content
    if function_call is None:
        choice.message.function_call = None
    else:
        fc = MagicMock()
        fc.name = function_call[0]
        fc.arguments = function_call[1]
        choice.message.function_call = fc

    response = MagicMock()
    response.choices = [choice]
    if usage is None:
        response.usage = None
    else:
        response.usage.prompt_tokens, response.usage.completion_tokens, response.usage.total_tokens = usage
    return response


def _provider_with(create: AsyncMock, **kwargs: Any) -> tuple[OpenAICompatibleProvider, MagicMock]:
    with patch("threadbot.conversation.providers.AsyncOpenAI") as mock_cls:
        mock_client = MagicMock()
        mock_client.chat.completions.create = create
        mock_cls.return_value = mock_client
        provider = OpenAICompatibleProvider(**kwargs)
    return provider, mock_client


# ---------------------------------------------------------------------------
# ToolDefinition
# ---------------------------------------------------------------------------


def test_tool_definition_to_openai_format() -> None:
    fmt = _WEATHER_DEF.to_openai_format()

    assert fmt == {
        "name": "get_weather",
        "description": "Retrieve current weather conditions.",
        "parameters": {
            "type": "object",
            "properties": {"location": {"type": "string", "description": "City name"}},
            "required": ["location"],
        },
    }


def test_tool_definition_empty_parameters() -> None:
    fmt = ToolDefinition(name="get_time", description="Get current time.").to_openai_format()

    assert fmt["parameters"] == {"type": "object", "properties": {}, "required": []}


def test_tool_definition_is_immutable() -> None:
    with pytest.raises(AttributeError):
        _WEATHER_DEF.name = "other"  # type: ignore[misc]


def test_completion_result_defaults() -> None:
    result = CompletionResult(content="Hello")
    assert result.function_call is None
    assert result.finish_reason == "stop"
    assert result.usage is None


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def test_provider_implements_protocol() -> None:
    provider, _client = _provider_with(AsyncMock())
    assert isinstance(provider, LLMProvider)


def test_provider_stores_config() -> None:
    with patch("threadbot.conversation.providers.AsyncOpenAI") as mock_cls:
        provider = OpenAICompatibleProvider(
            model="gpt-4o-mini",
            api_key="sk-test",
            base_url="http://localhost:4000/v1",
            max_tokens=500,
            temperature=0.2,
        )

    assert provider.model == "gpt-4o-mini"
    assert provider.max_tokens == 500
    assert provider.temperature == 0.2
    mock_cls.assert_called_once_with(
        api_key="sk-test", base_url="http://localhost:4000/v1", http_client=None
    )


def test_provider_uses_azure_client_when_endpoint_set() -> None:
    with patch("threadbot.conversation.providers.AsyncAzureOpenAI") as azure_cls, \
            patch("threadbot.conversation.providers.AsyncOpenAI") as openai_cls:
        OpenAICompatibleProvider(
            model="my-deployment",
            api_key="key",
            azure_endpoint="https://mine.openai.azure.com",
        )

    openai_cls.assert_not_called()
    azure_cls.assert_called_once_with(
        azure_endpoint="https://mine.openai.azure.com",
        api_version="2023-07-01-preview",
        api_key="key",
        http_client=None,
    )


def test_provider_routes_through_proxy() -> None:
    with patch("threadbot.conversation.providers.httpx.AsyncClient") as http_cls, \
            patch("threadbot.conversation.providers.AsyncOpenAI") as openai_cls:
        OpenAICompatibleProvider(proxy="socks5://localhost:1080")

    http_cls.assert_called_once_with(proxy="socks5://localhost:1080")
    assert openai_cls.call_args.kwargs["http_client"] is http_cls.return_value


def test_provider_from_settings() -> None:
    settings = Settings(
        _env_file=None,
        openai_api_key="sk-settings",
        openai_model_name="gpt-4o",
        openai_max_tokens=123,
        openai_temperature=0.5,
        openai_image_model="images-deployment",
    )
    with patch("threadbot.conversation.providers.AsyncOpenAI"):
        provider = OpenAICompatibleProvider.from_settings(settings)

    assert provider.model == "gpt-4o"
    assert provider.max_tokens == 123
    assert provider.temperature == 0.5
    assert provider.azure_endpoint is None
    assert provider.image_model == "images-deployment"


# ---------------------------------------------------------------------------
# complete()
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_complete_advertises_functions() -> None:
    create = AsyncMock(return_value=_mock_response())
    provider, _client = _provider_with(create, model="gpt-4o", max_tokens=50, temperature=0.3)
    messages = [{"role": "user", "content": "Hi"}]

    await provider.complete(messages, [_WEATHER_DEF])

    kwargs = create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o"
    assert kwargs["messages"] is messages
    assert kwargs["max_tokens"] == 50
    assert kwargs["temperature"] == 0.3
    assert kwargs["functions"] == [_WEATHER_DEF.to_openai_format()]
    assert kwargs["function_call"] == "auto"


@pytest.mark.anyio
async def test_complete_without_tools_omits_functions() -> None:
    create = AsyncMock(return_value=_mock_response())
    provider, _client = _provider_with(create)

    await provider.complete([{"role": "user", "content": "Hi"}], [])

    assert "functions" not in create.call_args.kwargs
    assert "function_call" not in create.call_args.kwargs


@pytest.mark.anyio
async def test_complete_returns_text_content() -> None:
    create = AsyncMock(return_value=_mock_response(content="The answer is 42.", usage=(80, 20, 100)))
    provider, _client = _provider_with(create)

    result = await provider.complete([{"role": "user", "content": "?"}], [])

    assert result is not None
    assert result.content == "The answer is 42."
    assert result.function_call is None
    assert result.finish_reason == "stop"
    assert result.raw_message == {"role": "assistant", "content": "The answer is 42."}
    assert result.usage is not None
    assert result.usage.total_tokens == 100


@pytest.mark.anyio
async def test_complete_maps_function_call() -> None:
    create = AsyncMock(
        return_value=_mock_response(
            content=None,
            function_call=("get_weather", '{"location": "Berlin"}'),
            finish_reason="function_call",
        )
    )
    provider, _client = _provider_with(create)

    result = await provider.complete([{"role": "user", "content": "weather?"}], [_WEATHER_DEF])

    assert result is not None
    assert result.function_call == FunctionCall(name="get_weather", arguments='{"location": "Berlin"}')
    assert result.finish_reason == "function_call"
    assert result.raw_message["function_call"]["name"] == "get_weather"


@pytest.mark.anyio
async def test_complete_keeps_absent_arguments_unparsed() -> None:
    create = AsyncMock(
        return_value=_mock_response(content=None, function_call=("now", None), finish_reason=None)
    )
    provider, _client = _provider_with(create)

    result = await provider.complete([{"role": "user", "content": "time?"}], [])

    assert result is not None
    assert result.function_call == FunctionCall(name="now", arguments=None)
    assert result.finish_reason == "function_call"


@pytest.mark.anyio
async def test_complete_returns_none_without_choices() -> None:
    response = MagicMock()
    response.choices = []
    provider, _client = _provider_with(AsyncMock(return_value=response))

    assert await provider.complete([{"role": "user", "content": "Hi"}], []) is None


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def test_llm_error_hierarchy() -> None:
    assert issubclass(LLMRateLimitError, LLMError)
    assert issubclass(LLMConnectionError, LLMError)
    assert issubclass(LLMAPIError, LLMError)
    assert LLMAPIError("unknown").status_code is None


@pytest.mark.anyio
async def test_complete_raises_llm_rate_limit_error_on_429() -> None:
    from openai import RateLimitError as OpenAIRateLimitError

    create = AsyncMock(
        side_effect=OpenAIRateLimitError("rate limit", response=MagicMock(status_code=429), body={})
    )
    provider, _client = _provider_with(create)

    with pytest.raises(LLMRateLimitError):
        await provider.complete([{"role": "user", "content": "Hi"}], [])


@pytest.mark.anyio
async def test_complete_raises_llm_connection_error_on_network_failure() -> None:
    from openai import APIConnectionError as OpenAIConnectionError

    create = AsyncMock(side_effect=OpenAIConnectionError(request=MagicMock()))
    provider, _client = _provider_with(create)

    with pytest.raises(LLMConnectionError):
        await provider.complete([{"role": "user", "content": "Hi"}], [])


@pytest.mark.anyio
async def test_complete_raises_llm_api_error_on_5xx() -> None:
    from openai import APIStatusError

    mock_response = MagicMock()
    mock_response.status_code = 500
    create = AsyncMock(
        side_effect=APIStatusError("Internal Server Error", response=mock_response, body={})
    )
    provider, _client = _provider_with(create)

    with pytest.raises(LLMAPIError) as exc_info:
        await provider.complete([{"role": "user", "content": "Hi"}], [])
    assert exc_info.value.status_code == 500


# ---------------------------------------------------------------------------
# create_image()
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_create_image_returns_b64() -> None:
    provider, client = _provider_with(AsyncMock())
    image = MagicMock()
    image.b64_json = "aW1hZ2U="
    client.images.generate = AsyncMock(return_value=MagicMock(data=[image]))

    result = await provider.create_image("a cat")

    assert result == "aW1hZ2U="
    client.images.generate.assert_awaited_once_with(
        model="dall-e-2", prompt="a cat", n=1, size="512x512", response_format="b64_json"
    )


@pytest.mark.anyio
async def test_create_image_without_data_returns_none() -> None:
    provider, client = _provider_with(AsyncMock())
    client.images.generate = AsyncMock(return_value=MagicMock(data=[]))

    assert await provider.create_image("a cat") is None


@pytest.mark.anyio
async def test_create_image_sends_configured_image_model() -> None:
    provider, client = _provider_with(AsyncMock(), image_model="my-dalle-deployment")
    client.images.generate = AsyncMock(return_value=MagicMock(data=[]))

    await provider.create_image("a cat")

    assert client.images.generate.call_args.kwargs["model"] == "my-dalle-deployment"


# ---------------------------------------------------------------------------
# aclose()
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_aclose_closes_client() -> None:
    provider, client = _provider_with(AsyncMock())
    client.close = AsyncMock()

    await provider.aclose()

    client.close.assert_awaited_once_with()
