"""
Chat orchestrator: the caller-facing conversation engine.

This module ties the conversation state to a completion backend. The caller
adds turns, then dispatches either a single-shot ``send`` or a streaming
``stream`` call; the orchestrator resolves parameters, retries backend
failures, normalizes the result and appends the assistant turn.

Data flow:
    add_user_message() / set_system_prompt()  →  ConversationState
                                      ↓
    send() / stream()  →  RequestPlanner.resolve()  →  CompletionParams
                                      ↓
                 RetryExecutor.execute( backend.create_completion → ResponseNormalizer )
                                      ↓
                 AIResponse / accumulated text  +  assistant turn in history

Design decisions:
- Only BackendError is retried. Conversation validation errors
  (EmptyConversationError, NoUserTurnError) are raised before the first
  backend call and never retried.
- The assistant turn is appended only after a fully successful attempt, so
  the history is unchanged on any failure.
- Diagnostics are a side channel. They receive events for every stage but
  cannot affect the result.
- One in-flight call per instance is assumed. Concurrent calls on the same
  orchestrator race on the history and are not guarded.
- ``stream`` returns the accumulated text rather than an AIResponse, since
  streamed responses carry no usage.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from parley.config.logging import get_logger
from parley.config.settings import DEFAULT_PROVIDER_ID, LLMSettings, resolve_api_key
from parley.conversation.models import (
    AIResponse,
    BaseConfig,
    ContentPart,
    EffectiveParams,
    Message,
    RequestOptions,
    Role,
    TokenUsage,
)
from parley.conversation.state import ConversationState, build_config
from parley.diagnostics import DiagnosticsSink, EventKind, preview
from parley.errors import DispatchValidationError, RequestFailedError
from parley.llm.backend import CompletionBackend, CompletionParams, LiteLLMBackend
from parley.llm.normalizer import ResponseNormalizer, StreamSummary
from parley.llm.planner import RequestPlanner
from parley.llm.retry import RetryExecutor
from parley.providers.registry import ProviderProfile, ProviderRegistry

logger = get_logger(__name__)


class ChatOrchestrator:
    """
    One conversation bound to one provider.

    Args:
        config: BaseConfig, or a mapping of its fields (``api_key`` required)
        registry: Provider registry to resolve ``config.provider_id`` against
            (default: a fresh ProviderRegistry.with_defaults())
        backend: Completion transport (default: LiteLLMBackend)
        diagnostics: Event sink (default: enabled iff ``config.debug_enabled``)
        retry_executor: Retry policy runner (default: RetryExecutor())
        planner: Parameter resolver (default: RequestPlanner())
        normalizer: Response normalizer (default: ResponseNormalizer())

    Raises:
        ValidationError: If the config is invalid
        ProviderNotFoundError: If the provider id is not registered

    Example::

        chat = ChatOrchestrator({"api_key": key, "system_prompt": "You are terse."})
        response = await chat.add_user_message("2+2?").send()
        print(response.content)
    """

    def __init__(
        self,
        config: BaseConfig | Mapping[str, Any],
        *,
        registry: ProviderRegistry | None = None,
        backend: CompletionBackend | None = None,
        diagnostics: DiagnosticsSink | None = None,
        retry_executor: RetryExecutor | None = None,
        planner: RequestPlanner | None = None,
        normalizer: ResponseNormalizer | None = None,
    ):
        base_config = build_config(config if isinstance(config, BaseConfig) else dict(config))

        self._registry = registry if registry is not None else ProviderRegistry.with_defaults()
        # Fail at construction, not on first send
        self._registry.require(base_config.provider_id)

        self._diagnostics = (
            diagnostics if diagnostics is not None
            else DiagnosticsSink(enabled=base_config.debug_enabled)
        )
        self._state = ConversationState(base_config, diagnostics=self._diagnostics)
        self._backend = backend if backend is not None else LiteLLMBackend()
        self._retry = retry_executor or RetryExecutor()
        self._planner = planner or RequestPlanner()
        self._normalizer = normalizer or ResponseNormalizer()

        self._diagnostics.record(
            EventKind.CONFIG_CHANGE,
            "Orchestrator initialized",
            lambda: {
                "provider": base_config.provider_id,
                "model": base_config.model or self.provider.default_model,
                "temperature": base_config.temperature,
                "max_tokens": base_config.max_tokens,
                "retry_attempts": base_config.retry_attempts,
                "system_prompt": preview(base_config.system_prompt, 100),
            },
        )

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def from_env(
        cls,
        provider_id: str | None = None,
        environ: Mapping[str, str] | None = None,
        *,
        registry: ProviderRegistry | None = None,
        backend: CompletionBackend | None = None,
        diagnostics: DiagnosticsSink | None = None,
        **overrides: Any,
    ) -> ChatOrchestrator:
        """
        Build an orchestrator whose API key comes from the environment.

        The key is read from ``<PROVIDER_ID>_API_KEY``, then ``LLM_API_KEY``.

        Raises:
            MissingCredentialError: If neither variable is set
        """
        provider_id = overrides.pop("provider_id", None) if provider_id is None else provider_id
        provider_id = provider_id or DEFAULT_PROVIDER_ID
        overrides.pop("provider_id", None)
        overrides.pop("api_key", None)
        api_key = resolve_api_key(provider_id, environ)
        return cls(
            {"api_key": api_key, "provider_id": provider_id, **overrides},
            registry=registry,
            backend=backend,
            diagnostics=diagnostics,
        )

    @classmethod
    def from_settings(
        cls,
        settings: LLMSettings,
        *,
        registry: ProviderRegistry | None = None,
        backend: CompletionBackend | None = None,
        diagnostics: DiagnosticsSink | None = None,
    ) -> ChatOrchestrator:
        """
        Build an orchestrator from LLM settings.

        An empty ``settings.api_key`` falls back to the environment naming
        convention (see from_env).
        """
        api_key = settings.api_key or resolve_api_key(settings.provider)
        config = build_config({
            "api_key": api_key,
            "provider_id": settings.provider,
            "model": settings.model,
            "temperature": settings.temperature,
            "max_tokens": settings.max_tokens,
            "system_prompt": settings.system_prompt,
            "debug_enabled": settings.debug,
            "timeout_ms": settings.timeout_ms,
            "retry_attempts": settings.retry_attempts,
        })
        if backend is None:
            backend = LiteLLMBackend(custom_llm_provider=settings.custom_llm_provider)
        return cls(config, registry=registry, backend=backend, diagnostics=diagnostics)

    @classmethod
    async def quick_chat(
        cls,
        config: BaseConfig | Mapping[str, Any],
        prompt: str,
        options: RequestOptions | None = None,
        **kwargs: Any,
    ) -> str:
        """One-shot helper: send a single user prompt and return the content."""
        chat = cls(config, **kwargs)
        response = await chat.add_user_message(prompt).send(options)
        return response.content

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def provider(self) -> ProviderProfile:
        return self._registry.require(self._state.config.provider_id)

    @property
    def diagnostics(self) -> DiagnosticsSink:
        return self._diagnostics

    def add_message(self, content: str | Sequence[ContentPart], role: Role = "user") -> ChatOrchestrator:
        self._state.add_message(content, role)
        return self

    def add_user_message(self, content: str | Sequence[ContentPart]) -> ChatOrchestrator:
        self._state.add_user_message(content)
        return self

    def add_assistant_message(self, content: str | Sequence[ContentPart]) -> ChatOrchestrator:
        self._state.add_assistant_message(content)
        return self

    def add_image_message(self, text: str, image_url: str) -> ChatOrchestrator:
        self._state.add_image_message(text, image_url)
        return self

    def get_messages(self) -> list[Message]:
        return self._state.get_messages()

    def clear_messages(self) -> ChatOrchestrator:
        self._state.clear_messages()
        return self

    def reset(self) -> ChatOrchestrator:
        self._state.reset()
        return self

    def set_system_prompt(self, prompt: str) -> ChatOrchestrator:
        self._state.set_system_prompt(prompt)
        return self

    def get_system_prompt(self) -> str:
        return self._state.get_system_prompt()

    def update_config(self, **changes: Any) -> ChatOrchestrator:
        self._state.update_config(**changes)
        if "debug_enabled" in changes:
            self._diagnostics.set_enabled(self._state.config.debug_enabled)
        return self

    def get_config(self) -> BaseConfig:
        return self._state.get_config()

    def enable_debug(self, enable: bool = True) -> ChatOrchestrator:
        """Toggle diagnostic events for subsequent calls."""
        self._state.update_config(debug_enabled=enable)
        self._diagnostics.set_enabled(enable)
        logger.info(f"Debug mode {'enabled' if enable else 'disabled'}")
        return self

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _prepare(
        self, options: RequestOptions | None, *, streaming: bool
    ) -> tuple[EffectiveParams, CompletionParams]:
        # Raises EmptyConversationError / NoUserTurnError before any event
        messages = self._state.build_messages()
        config = self._state.config
        profile = self.provider
        effective = self._planner.resolve(config, profile, options, streaming=streaming)
        params = self._planner.build_params(effective, profile, config, messages)

        self._diagnostics.record(
            EventKind.REQUEST_STARTED,
            f"Sending {'streaming ' if effective.streaming_enabled else ''}request to {profile.display_name}",
            lambda: {
                "provider": profile.id,
                "model": effective.model,
                "temperature": effective.temperature,
                "max_tokens": effective.max_tokens,
                "streaming": effective.streaming_enabled,
                "message_count": len(messages),
                "messages": [
                    {
                        "role": m.role,
                        "content_length": len(m.text),
                        "content_preview": preview(m.text, 150),
                    }
                    for m in messages
                ],
            },
        )
        return effective, params

    def _on_retry(self, attempt: int, error: BaseException, delay_ms: int) -> None:
        self._diagnostics.record(
            EventKind.ERROR,
            f"Attempt {attempt} failed; retrying in {delay_ms}ms",
            {"attempt": attempt, "error": str(error), "delay_ms": delay_ms},
        )

    def _on_failure(self, error: RequestFailedError) -> None:
        self._diagnostics.record(
            EventKind.ERROR,
            "Request failed",
            {
                "attempts": error.attempts,
                "error": str(error.cause),
                "error_type": type(error.cause).__name__,
            },
        )

    def _on_aborted(self, error: BaseException) -> None:
        # Failures outside the retry loop: on_chunk errors, provider removed
        self._diagnostics.record(
            EventKind.ERROR,
            "Request aborted",
            {"error": str(error), "error_type": type(error).__name__},
        )

    async def _run_stream(
        self,
        params: CompletionParams,
        on_chunk: Callable[[str], None] | None,
    ) -> StreamSummary:
        async def attempt() -> StreamSummary:
            chunks = await self._backend.create_completion(params)
            return await self._normalizer.accumulate(chunks, self._state, on_chunk)

        try:
            return await self._retry.execute(
                attempt, self._state.config.retry_attempts, on_retry=self._on_retry
            )
        except RequestFailedError as e:
            self._on_failure(e)
            raise

    async def send(self, options: RequestOptions | None = None) -> AIResponse:
        """
        Dispatch the conversation and wait for the full response.

        With ``options.streaming_enabled`` the response is streamed under the
        hood and assembled into an AIResponse (usage is not reported for
        streamed responses, so it is zero).

        Raises:
            EmptyConversationError: No messages and no system prompt
            NoUserTurnError: No user message in the conversation
            RequestFailedError: The backend failed on every attempt
        """
        try:
            return await self._send(options)
        except (DispatchValidationError, RequestFailedError):
            raise
        except Exception as e:
            self._on_aborted(e)
            raise

    async def _send(self, options: RequestOptions | None) -> AIResponse:
        effective, params = self._prepare(options, streaming=False)
        start_time = time.monotonic()

        if effective.streaming_enabled:
            summary = await self._run_stream(params, on_chunk=None)
            response = AIResponse(
                content=summary.content,
                usage=TokenUsage(),
                model=effective.model,
                finish_reason=summary.finish_reason,
            )
        else:
            async def attempt() -> AIResponse:
                result = await self._backend.create_completion(params)
                return self._normalizer.normalize(
                    result, self._state, fallback_model=effective.model
                )

            try:
                response = await self._retry.execute(
                    attempt, self._state.config.retry_attempts, on_retry=self._on_retry
                )
            except RequestFailedError as e:
                self._on_failure(e)
                raise

        duration_ms = round((time.monotonic() - start_time) * 1000)
        self._diagnostics.record(
            EventKind.RESPONSE_RECEIVED,
            "Received response",
            lambda: {
                "duration": f"{duration_ms}ms",
                "model": response.model,
                "finish_reason": response.finish_reason,
                "usage": {
                    **response.usage.model_dump(),
                    "estimated_cost": f"${response.usage.estimated_cost:.6f}",
                },
                "response_length": len(response.content),
                "response_preview": preview(response.content),
            },
        )
        return response

    async def stream(
        self,
        on_chunk: Callable[[str], None],
        options: RequestOptions | None = None,
    ) -> str:
        """
        Dispatch the conversation as a stream.

        ``on_chunk`` is called synchronously with every non-empty text
        fragment, in arrival order. A retried attempt streams again from the
        start, so fragments of a failed attempt may already have been
        delivered.

        Returns:
            The full accumulated text (also appended as the assistant turn)

        Raises:
            EmptyConversationError: No messages and no system prompt
            NoUserTurnError: No user message in the conversation
            RequestFailedError: The backend failed on every attempt
        """
        try:
            return await self._stream(on_chunk, options)
        except (DispatchValidationError, RequestFailedError):
            raise
        except Exception as e:
            self._on_aborted(e)
            raise

    async def _stream(
        self,
        on_chunk: Callable[[str], None],
        options: RequestOptions | None,
    ) -> str:
        effective, params = self._prepare(options, streaming=True)
        start_time = time.monotonic()

        summary = await self._run_stream(params, on_chunk)

        duration_ms = round((time.monotonic() - start_time) * 1000)
        self._diagnostics.record(
            EventKind.STREAM_COMPLETED,
            "Streaming completed",
            lambda: {
                "duration": f"{duration_ms}ms",
                "model": effective.model,
                "chunks_received": summary.chunk_count,
                "total_length": len(summary.content),
                "avg_chunk_size": summary.avg_chunk_size,
                "content_preview": preview(summary.content),
            },
        )
        return summary.content
