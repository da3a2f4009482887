"""
Application settings and configuration management.

Uses Pydantic Settings for validation and environment variable support.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """Which models serve each phase of a turn."""

    provider: str = Field(
        default="openai",
        description="Provider of the primary model: 'openai', 'openrouter' or 'ollama'",
    )
    model: str = Field(default="gpt-4o-mini", description="Primary model name")
    online_provider: str | None = Field(
        default=None,
        description="Provider of the grounding model. Falls back to the primary provider.",
    )
    online_model: str | None = Field(
        default=None,
        description="Grounding model used after tools ran. Falls back to the primary model.",
    )
    caller_provider: str = Field(
        default="ollama",
        description="Provider of the caller model that decides which tools to run",
    )
    caller_model: str = Field(default="llama3.1", description="Caller model name")
    temperature: float | None = Field(default=None, description="Sampling temperature")
    max_tokens: int | None = Field(default=None, description="Maximum tokens in response")
    timeout_seconds: float | None = Field(
        default=60.0,
        description="Per-call timeout for model invocations. 0 or None disables it.",
    )

    model_config = SettingsConfigDict(env_prefix="LLM_")


class ProviderSettings(BaseSettings):
    """Credentials and endpoints for the supported model providers."""

    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1")
    ollama_base_url: str = Field(default="http://127.0.0.1:11434")

    model_config = SettingsConfigDict(env_prefix="PROVIDER_")


class StoreSettings(BaseSettings):
    """Conversation history storage."""

    backend: Literal["memory", "file"] = Field(
        default="memory",
        description="Key/value backend: 'memory' (process lifetime) or 'file' (on disk)",
    )
    path: str = Field(
        default="data/history",
        description="Directory for the file backend",
    )

    model_config = SettingsConfigDict(env_prefix="STORE_")


class SessionSettings(BaseSettings):
    """Chat session behaviour."""

    serialize_turns: bool = Field(
        default=True,
        description="Run concurrent sends against the same conversation one at a time",
    )

    model_config = SettingsConfigDict(env_prefix="SESSION_")


class Settings(BaseSettings):
    """Main application settings."""

    # Environment
    environment: Literal["development", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Path | None = Field(default=None, description="Log file path")

    # Sub-configurations
    llm: LLMSettings = Field(default_factory=LLMSettings)
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Load settings from file and environment.

    Args:
        env_file: Path to .env file (optional)

    Returns:
        Loaded settings instance
    """
    global _settings
    if env_file:
        _settings = Settings(_env_file=env_file)
    else:
        _settings = Settings()
    return _settings
