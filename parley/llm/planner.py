"""
Request planning: resolve the effective parameters for one dispatch.

Precedence per field:

    call options (when not None)  >  BaseConfig  >  provider default (model only)

Temperature and max_tokens have no provider-level default; BaseConfig already
carries the construction-time defaults (0.7 / 1000).
"""

from __future__ import annotations

from parley.conversation.models import BaseConfig, EffectiveParams, Message, RequestOptions
from parley.llm.backend import CompletionParams
from parley.providers.registry import ProviderProfile


class RequestPlanner:
    """Merges config, per-call options and provider defaults."""

    def resolve(
        self,
        base_config: BaseConfig,
        profile: ProviderProfile,
        options: RequestOptions | None = None,
        *,
        streaming: bool = False,
    ) -> EffectiveParams:
        """
        Compute EffectiveParams for one call.

        Args:
            base_config: The conversation's current config
            profile: The provider the conversation dispatches to
            options: Per-call overrides (BaseConfig itself is not modified)
            streaming: True on the streaming entry point; forces
                streaming_enabled regardless of ``options``
        """
        options = options or RequestOptions()

        model = options.model if options.model is not None else base_config.model
        if model is None:
            model = profile.default_model

        temperature = (
            options.temperature if options.temperature is not None else base_config.temperature
        )
        max_tokens = (
            options.max_tokens if options.max_tokens is not None else base_config.max_tokens
        )
        streaming_enabled = True if streaming else bool(options.streaming_enabled)

        return EffectiveParams(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            streaming_enabled=streaming_enabled,
        )

    def build_params(
        self,
        effective: EffectiveParams,
        profile: ProviderProfile,
        base_config: BaseConfig,
        messages: list[Message],
    ) -> CompletionParams:
        """Assemble the backend input from resolved parameters."""
        return CompletionParams(
            endpoint=profile.base_endpoint,
            api_key=base_config.api_key,
            headers=dict(profile.default_headers),
            model=effective.model,
            messages=messages,
            temperature=effective.temperature,
            max_tokens=effective.max_tokens,
            streaming=effective.streaming_enabled,
            timeout_ms=base_config.timeout_ms,
        )
