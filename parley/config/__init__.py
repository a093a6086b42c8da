"""Configuration: pydantic settings, credential lookup and logging setup."""

from parley.config.settings import (
    DEFAULT_PROVIDER_ID,
    LLMSettings,
    Settings,
    get_settings,
    load_settings,
    resolve_api_key,
)

__all__ = [
    "DEFAULT_PROVIDER_ID",
    "LLMSettings",
    "Settings",
    "get_settings",
    "load_settings",
    "resolve_api_key",
]
