"""
Configuration management for threadbot.

This module provides a Settings class that loads configuration from environment
variables (prefixed ``THREADBOT_``) and an optional ``.env`` file.

``openai_api_key`` may be left unset: the OpenAI SDK then reads the standard
``OPENAI_API_KEY`` / ``AZURE_OPENAI_API_KEY`` variables itself.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from threadbot.conversation.entity import DEFAULT_SYSTEM_PROMPT
from threadbot.conversation.loop import DEFAULT_MAX_ROUNDS, DEFAULT_MISSING_PLUGIN_STRIKES


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Model provider
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    openai_azure_endpoint: str | None = None  # e.g. https://<deployment>.openai.azure.com
    openai_model_name: str = "gpt-3.5-turbo"
    openai_api_version: str = "2023-07-01-preview"  # Azure only
    openai_image_model: str = "dall-e-2"  # image deployment name on Azure
    openai_max_tokens: int = 2000
    openai_temperature: float = 1.0
    socks_proxy: str | None = None  # e.g. socks5://localhost:1080

    # Conversation loop
    max_rounds: int = DEFAULT_MAX_ROUNDS
    missing_plugin_strikes: int = DEFAULT_MISSING_PLUGIN_STRIKES
    plugin_timeout: float | None = 30.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_history_messages: int = 40

    # Built-in plugins
    enable_weather_plugin: bool = True
    enable_datetime_plugin: bool = True
    enable_image_plugin: bool = False

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8765

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="THREADBOT_",
        env_file=".env",
        env_file_encoding="utf-8",
    )


def get_settings() -> Settings:
    """Get the application settings instance."""
    return Settings()
