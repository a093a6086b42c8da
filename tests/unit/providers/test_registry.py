"""
Unit tests for the provider registry.

Tests cover:
- Built-in profiles
- Registration validation and overwrite
- update / remove / has / get
- Defensive copies from get and list_all
"""

import pytest

from parley.errors import ProviderNotFoundError, ValidationError
from parley.providers import ProviderProfile, ProviderRegistry


def _profile(**overrides) -> ProviderProfile:
    fields = {
        "display_name": "Local vLLM",
        "base_endpoint": "http://localhost:8000/v1",
        "default_model": "llama-3-8b",
    }
    fields.update(overrides)
    return ProviderProfile(**fields)


@pytest.fixture
def registry():
    return ProviderRegistry.with_defaults()


class TestDefaults:
    """Tests for the pre-populated registry."""

    def test_contains_builtin_providers(self, registry):
        assert registry.has("openrouter")
        assert registry.has("openai")
        assert registry.has("anthropic")

    def test_openai_profile(self, registry):
        profile = registry.get("openai")
        assert profile.id == "openai"
        assert profile.base_endpoint == "https://api.openai.com/v1"
        assert profile.default_model == "gpt-3.5-turbo"

    def test_anthropic_sends_version_header(self, registry):
        assert "anthropic-version" in registry.get("anthropic").default_headers

    def test_fresh_registries_are_independent(self):
        first = ProviderRegistry.with_defaults()
        second = ProviderRegistry.with_defaults()
        first.remove("openai")
        assert second.has("openai")

    def test_empty_registry(self):
        assert len(ProviderRegistry()) == 0


class TestRegister:
    """Tests for register()."""

    def test_register_new_provider(self, registry):
        registry.register("local", _profile())
        assert registry.has("local")
        assert registry.get("local").default_model == "llama-3-8b"

    def test_registration_key_becomes_id(self, registry):
        registry.register("local", _profile(id="something-else"))
        assert registry.get("local").id == "local"

    def test_register_overwrites_silently(self, registry):
        registry.register("openai", _profile(default_model="gpt-4o"))
        assert registry.get("openai").default_model == "gpt-4o"

    def test_empty_base_endpoint_raises(self, registry):
        with pytest.raises(ValidationError, match="base_endpoint"):
            registry.register("local", _profile(base_endpoint=""))

    def test_empty_display_name_raises(self, registry):
        with pytest.raises(ValidationError, match="display_name"):
            registry.register("local", _profile(display_name="  "))

    def test_empty_default_model_raises(self, registry):
        with pytest.raises(ValidationError, match="default_model"):
            registry.register("local", _profile(default_model=""))

    def test_empty_id_raises(self, registry):
        with pytest.raises(ValidationError, match="provider id"):
            registry.register("", _profile())

    def test_failed_registration_leaves_registry_unchanged(self, registry):
        before = registry.list_all()
        with pytest.raises(ValidationError):
            registry.register("openai", _profile(base_endpoint=""))
        assert registry.list_all() == before

    def test_validation_error_is_value_error(self, registry):
        with pytest.raises(ValueError):
            registry.register("local", _profile(base_endpoint=""))


class TestUpdateAndRemove:
    """Tests for update(), remove(), get() and require()."""

    def test_update_merges_fields(self, registry):
        assert registry.update("openai", default_model="gpt-4o-mini") is True
        profile = registry.get("openai")
        assert profile.default_model == "gpt-4o-mini"
        assert profile.base_endpoint == "https://api.openai.com/v1"

    def test_update_unknown_returns_false(self, registry):
        assert registry.update("nope", default_model="x") is False
        assert not registry.has("nope")

    def test_update_cannot_change_id(self, registry):
        registry.update("openai", id="other")
        assert registry.get("openai").id == "openai"

    def test_update_with_invalid_value_raises_and_keeps_entry(self, registry):
        with pytest.raises(ValidationError):
            registry.update("openai", base_endpoint="")
        assert registry.get("openai").base_endpoint == "https://api.openai.com/v1"

    def test_update_with_wrong_type_raises_parley_error(self, registry):
        with pytest.raises(ValidationError) as exc_info:
            registry.update("openai", default_headers="nope")
        assert exc_info.value.cause is not None
        assert registry.get("openai").default_headers == {}

    def test_update_with_unknown_key_raises(self, registry):
        with pytest.raises(ValidationError, match="base_url"):
            registry.update("openai", base_url="http://localhost:8000/v1")
        assert registry.get("openai").base_endpoint == "https://api.openai.com/v1"

    def test_remove_registered(self, registry):
        assert registry.remove("anthropic") is True
        assert not registry.has("anthropic")
        assert registry.get("anthropic") is None

    def test_remove_unregistered_returns_false(self, registry):
        assert registry.remove("never-registered") is False

    def test_require_unknown_raises(self, registry):
        with pytest.raises(ProviderNotFoundError) as exc_info:
            registry.require("nope")
        assert exc_info.value.provider_id == "nope"

    def test_contains(self, registry):
        assert "openai" in registry
        assert "nope" not in registry


class TestDefensiveCopies:
    """Returned profiles must not alias registry state."""

    def test_list_all_mutation_does_not_affect_registry(self, registry):
        snapshot = registry.list_all()
        snapshot.pop("openai")
        snapshot["anthropic"].default_headers["X-Injected"] = "1"

        assert registry.has("openai")
        assert "X-Injected" not in registry.get("anthropic").default_headers

    def test_get_mutation_does_not_affect_registry(self, registry):
        profile = registry.get("openrouter")
        profile.default_headers.clear()
        assert registry.get("openrouter").default_headers
