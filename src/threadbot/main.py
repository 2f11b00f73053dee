"""
threadbot - Main Entry Point.

Loads settings, configures logging, registers the enabled built-in plugins
with the process-wide registry and then either serves the REST API or runs an
interactive terminal chat.

Usage::

    threadbot serve            # REST API on THREADBOT_HOST:THREADBOT_PORT
    threadbot chat             # interactive chat in the terminal
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from threadbot.config import Settings, get_settings
from threadbot.conversation.entity import ConversationInput, ThreadConversation
from threadbot.conversation.loop import ConversationLoop
from threadbot.conversation.plugins import (
    DateTimePlugin,
    ImagePlugin,
    PluginRegistry,
    WeatherPlugin,
    default_registry,
    register_chat_plugin,
)
from threadbot.conversation.providers import OpenAICompatibleProvider

logger = logging.getLogger(__name__)


def register_builtin_plugins(
    settings: Settings, provider: OpenAICompatibleProvider
) -> PluginRegistry:
    """Register the built-in plugins enabled in *settings*.

    Must run once at startup, before any conversation is processed.
    """
    if settings.enable_weather_plugin:
        register_chat_plugin(WeatherPlugin())
    if settings.enable_datetime_plugin:
        register_chat_plugin(DateTimePlugin())
    if settings.enable_image_plugin:
        register_chat_plugin(ImagePlugin(provider))
    logger.info("Plugins available: %s", ", ".join(default_registry.names()) or "none")
    return default_registry


def build_conversation(settings: Settings) -> tuple[ThreadConversation, PluginRegistry]:
    """Build the provider, plugin catalog, loop and thread store from *settings*."""
    provider = OpenAICompatibleProvider.from_settings(settings)
    registry = register_builtin_plugins(settings, provider)
    loop = ConversationLoop(
        provider=provider,
        registry=registry,
        max_rounds=settings.max_rounds,
        missing_plugin_strikes=settings.missing_plugin_strikes,
        plugin_timeout=settings.plugin_timeout,
    )
    conversation = ThreadConversation(
        loop=loop,
        system_prompt=settings.system_prompt,
        max_history_messages=settings.max_history_messages,
    )
    return conversation, registry


async def run_server(settings: Settings) -> None:
    """Serve the REST API until interrupted."""
    import uvicorn

    from threadbot.conversation.server import create_conversation_app

    conversation, registry = build_conversation(settings)
    app = create_conversation_app(conversation, registry)

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    logger.info("Starting REST API server on %s:%d", settings.host, settings.port)
    try:
        await uvicorn.Server(config).serve()
    finally:
        await conversation.loop.provider.aclose()


async def run_chat(settings: Settings) -> None:
    """Simple terminal chat on a single thread; /exit or Ctrl+D ends it."""
    conversation, _registry = build_conversation(settings)
    try:
        await _chat_loop(conversation)
    finally:
        await conversation.loop.provider.aclose()


async def _chat_loop(conversation: ThreadConversation) -> None:
    conversation_id = "terminal"

    print("[threadbot chat: type /exit to quit, /reset to start over]")
    while True:
        try:
            text = (await asyncio.to_thread(input, "You> ")).strip()
        except EOFError:
            break
        if not text:
            continue
        if text.lower() in {"/exit", "/quit"}:
            break
        if text.lower() == "/reset":
            conversation.clear_history(conversation_id)
            continue

        reply = await conversation.async_process(
            ConversationInput(text=text, conversation_id=conversation_id)
        )
        print("Bot>", reply.response_text)
        if "image_b64" in reply.props:
            print(f"     [image attached, {len(reply.props['image_b64'])} bytes base64]")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Chat-thread assistant with model-invoked plugins."
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override THREADBOT_LOG_LEVEL (DEBUG, INFO, WARNING, ...).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("serve", help="Serve the REST API.")
    subparsers.add_parser("chat", help="Interactive chat in the terminal.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    settings = get_settings()
    if args.log_level:
        settings.log_level = args.log_level.upper()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        if args.command == "serve":
            asyncio.run(run_server(settings))
        else:
            asyncio.run(run_chat(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
