"""
Provider registry: connection profiles keyed by provider id.

A registry is an explicitly constructed object that callers pass to every
orchestrator that should share it. ``ProviderRegistry.with_defaults()`` gives
a fresh registry pre-populated with openrouter, openai and anthropic.

Entries are independent: each mutation replaces one map entry under the
registry's lock, and there are no cross-entry transactions.
"""

from __future__ import annotations

import threading
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from parley.config.logging import get_logger
from parley.errors import ProviderNotFoundError, ValidationError

logger = get_logger(__name__)


class ProviderProfile(BaseModel):
    """Named connection defaults for one completion backend."""

    id: str = Field(default="", description="Registry key (set on registration)")
    display_name: str = Field(description="Human readable provider name")
    base_endpoint: str = Field(description="Base URL of the provider's completion API")
    default_model: str = Field(description="Model used when neither config nor call names one")
    default_headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent with every request to this provider",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")


DEFAULT_PROFILES: tuple[ProviderProfile, ...] = (
    ProviderProfile(
        id="openrouter",
        display_name="OpenRouter",
        base_endpoint="https://openrouter.ai/api/v1",
        default_model="openai/gpt-3.5-turbo",
        default_headers={
            "HTTP-Referer": "https://github.com/parley-llm/parley",
            "X-Title": "parley",
        },
    ),
    ProviderProfile(
        id="openai",
        display_name="OpenAI",
        base_endpoint="https://api.openai.com/v1",
        default_model="gpt-3.5-turbo",
    ),
    ProviderProfile(
        id="anthropic",
        display_name="Anthropic",
        base_endpoint="https://api.anthropic.com/v1",
        default_model="claude-3-5-sonnet-20241022",
        default_headers={"anthropic-version": "2023-06-01"},
    ),
)


def _validate(provider_id: str, profile: ProviderProfile) -> None:
    """Reject blank ids and profiles missing a required field."""
    required = {
        "provider id": provider_id,
        "display_name": profile.display_name,
        "base_endpoint": profile.base_endpoint,
        "default_model": profile.default_model,
    }
    missing = [name for name, value in required.items() if not value or not value.strip()]
    if missing:
        raise ValidationError(
            f"Invalid provider registration for {provider_id!r}: "
            f"empty {', '.join(missing)}"
        )


class ProviderRegistry:
    """
    Mutable mapping from provider id to ProviderProfile.

    Profiles handed out by ``get`` and ``list_all`` are deep copies, so
    callers can't change registry state through them.

    Example::

        registry = ProviderRegistry.with_defaults()
        registry.register("local", ProviderProfile(
            display_name="Local vLLM",
            base_endpoint="http://localhost:8000/v1",
            default_model="llama-3-8b",
        ))
    """

    def __init__(self, profiles: dict[str, ProviderProfile] | None = None):
        self._lock = threading.Lock()
        self._profiles: dict[str, ProviderProfile] = {}
        for provider_id, profile in (profiles or {}).items():
            self.register(provider_id, profile)

    @classmethod
    def with_defaults(cls) -> ProviderRegistry:
        """Create a registry holding the built-in provider profiles."""
        return cls({profile.id: profile for profile in DEFAULT_PROFILES})

    def register(self, provider_id: str, profile: ProviderProfile) -> None:
        """
        Add or overwrite a provider profile.

        Raises:
            ValidationError: If the id, display name, endpoint or default
                model is empty
        """
        _validate(provider_id, profile)
        stored = profile.model_copy(update={"id": provider_id}, deep=True)
        with self._lock:
            replaced = provider_id in self._profiles
            self._profiles[provider_id] = stored
        logger.debug(f"{'Replaced' if replaced else 'Registered'} provider {provider_id!r}")

    def get(self, provider_id: str) -> ProviderProfile | None:
        profile = self._profiles.get(provider_id)
        return profile.model_copy(deep=True) if profile is not None else None

    def require(self, provider_id: str) -> ProviderProfile:
        """Like ``get``, but raises ProviderNotFoundError for unknown ids."""
        profile = self.get(provider_id)
        if profile is None:
            raise ProviderNotFoundError(provider_id)
        return profile

    def has(self, provider_id: str) -> bool:
        return provider_id in self._profiles

    def update(self, provider_id: str, **changes: Any) -> bool:
        """
        Merge ``changes`` into an existing profile.

        Returns:
            False if the provider is not registered, True once merged

        Raises:
            ValidationError: If a key is unknown or the merged profile is
                invalid (the entry is left unchanged)
        """
        changes.pop("id", None)
        with self._lock:
            current = self._profiles.get(provider_id)
            if current is None:
                return False
            try:
                merged = ProviderProfile.model_validate({**current.model_dump(), **changes})
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid provider update for {provider_id!r}: {e}", cause=e
                ) from e
            _validate(provider_id, merged)
            self._profiles[provider_id] = merged.model_copy(update={"id": provider_id})
        logger.debug(f"Updated provider {provider_id!r}: {sorted(changes)}")
        return True

    def remove(self, provider_id: str) -> bool:
        with self._lock:
            removed = self._profiles.pop(provider_id, None) is not None
        if removed:
            logger.debug(f"Removed provider {provider_id!r}")
        return removed

    def list_all(self) -> dict[str, ProviderProfile]:
        """Snapshot of every registered profile, keyed by id."""
        with self._lock:
            items = list(self._profiles.items())
        return {provider_id: profile.model_copy(deep=True) for provider_id, profile in items}

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)
