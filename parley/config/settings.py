"""
Application settings and configuration management.

Uses Pydantic Settings for validation and environment variable support.
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from parley.errors import MissingCredentialError

DEFAULT_PROVIDER_ID = "openai"

# Checked after the provider-specific <PROVIDER>_API_KEY variable
GENERIC_API_KEY_ENV = "LLM_API_KEY"


class LLMSettings(BaseSettings):
    """Conversation defaults for the LLM completion API."""

    provider: str = Field(
        default=DEFAULT_PROVIDER_ID,
        description="Provider id from the registry, e.g. 'openai', 'openrouter', 'anthropic'",
    )
    model: str | None = Field(
        default=None,
        description="Model name. When unset, the provider's default model is used.",
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(default=1000, gt=0, description="Maximum tokens in response")
    system_prompt: str = Field(default="", description="Initial system prompt")
    debug: bool = Field(default=False, description="Emit diagnostic events")
    timeout_ms: int = Field(default=30000, gt=0, description="Transport timeout in milliseconds")
    retry_attempts: int = Field(default=3, gt=0, description="Attempts per request, including the first")
    api_key: str = Field(default="", description="API key for the provider")
    custom_llm_provider: str = Field(
        default="openai",
        description="LiteLLM wire dialect used against the provider endpoint. "
                    "'openai' works for any OpenAI-compatible endpoint.",
    )

    model_config = SettingsConfigDict(env_prefix="LLM_")


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

    llm: LLMSettings = Field(default_factory=LLMSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


def api_key_env_names(provider_id: str) -> list[str]:
    """Environment variable names checked for a provider's key, in order."""
    specific = f"{provider_id.upper().replace('-', '_')}_API_KEY"
    if specific == GENERIC_API_KEY_ENV:
        return [specific]
    return [specific, GENERIC_API_KEY_ENV]


def resolve_api_key(provider_id: str, environ: Mapping[str, str] | None = None) -> str:
    """
    Resolve an API key by the ``<PROVIDER_ID>_API_KEY`` convention.

    Falls back to ``LLM_API_KEY`` when the provider-specific variable is
    unset or empty.

    Args:
        provider_id: Registry id, e.g. "openrouter" -> OPENROUTER_API_KEY
        environ: Variable store to read (defaults to os.environ)

    Raises:
        MissingCredentialError: If none of the variables hold a value
    """
    env = os.environ if environ is None else environ
    names = api_key_env_names(provider_id)
    for name in names:
        value = env.get(name, "")
        if value:
            return value
    raise MissingCredentialError(provider_id, names)


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
