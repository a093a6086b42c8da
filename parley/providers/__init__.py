"""
Provider profiles.

Maps a provider id (``openai``, ``openrouter``, ``anthropic``, or anything a
caller registers) to the endpoint, default model and headers used to reach it.
"""

from parley.providers.registry import DEFAULT_PROFILES, ProviderProfile, ProviderRegistry

__all__ = [
    "DEFAULT_PROFILES",
    "ProviderProfile",
    "ProviderRegistry",
]
