"""
Completion backends.

A CompletionBackend is the transport the orchestrator dispatches through.
The orchestration core depends only on the abstract interface below; the
wire protocol belongs to each implementation.

LiteLLMBackend is the default implementation. It uses LiteLLM's
``acompletion`` against the provider profile's endpoint, so any
OpenAI-compatible API (OpenAI, OpenRouter, Anthropic's compatibility
endpoint, local vLLM/Ollama servers) works without extra code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from litellm import acompletion
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from parley.config.logging import get_logger
from parley.conversation.models import ImagePart, Message
from parley.errors import BackendError

logger = get_logger(__name__)


class CompletionParams(BaseModel):
    """Everything a backend needs for one completion call."""

    endpoint: str
    api_key: str = Field(repr=False)
    headers: dict[str, str] = Field(default_factory=dict)
    model: str
    messages: list[Message]
    temperature: float
    max_tokens: int
    streaming: bool = False
    timeout_ms: int = 30000


class CompletionUsage(BaseModel):
    """Usage as reported by the backend; any field may be missing."""

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class CompletionResult(BaseModel):
    """Raw non-streaming completion, before normalization."""

    content: str | None = None
    usage: CompletionUsage | None = None
    model: str | None = None
    finish_reason: str | None = None


class DeltaChunk(BaseModel):
    """One fragment of a streaming completion."""

    text: str | None = None
    finish_reason: str | None = None


class CompletionBackend(ABC):
    """
    Abstract base class for completion transports.

    Implementations raise BackendError for every failure (network, auth,
    rate limit, malformed payload) so the orchestrator can retry uniformly.
    """

    @abstractmethod
    async def create_completion(
        self, params: CompletionParams
    ) -> CompletionResult | AsyncIterator[DeltaChunk]:
        """
        Run one completion.

        Returns:
            A CompletionResult when ``params.streaming`` is False, otherwise a
            finite, single-pass async iterator of DeltaChunk

        Raises:
            BackendError: If the call fails
        """
        pass


def message_to_payload(message: Message) -> dict[str, Any]:
    """Serialize a Message into the OpenAI chat format."""
    if isinstance(message.content, str):
        return {"role": message.role, "content": message.content}

    parts: list[dict[str, Any]] = []
    for part in message.content:
        if isinstance(part, ImagePart):
            parts.append({"type": "image_url", "image_url": {"url": part.url}})
        else:
            parts.append({"type": "text", "text": part.text})
    return {"role": message.role, "content": parts}


class LiteLLMBackend(CompletionBackend):
    """
    Completion backend built on ``litellm.acompletion``.

    Args:
        custom_llm_provider: LiteLLM dialect used against the endpoint
            (default "openai", i.e. an OpenAI-compatible API)
        extra_kwargs: Additional keyword arguments passed to every call
    """

    def __init__(
        self,
        custom_llm_provider: str = "openai",
        extra_kwargs: dict[str, Any] | None = None,
    ):
        self._custom_llm_provider = custom_llm_provider
        self._extra_kwargs = dict(extra_kwargs or {})

    def wire_model(self, model: str) -> str:
        """
        Model string handed to LiteLLM.

        LiteLLM strips a leading ``<custom_llm_provider>/`` from the model, so
        the dialect prefix is added here. Provider-namespaced names such as
        OpenRouter's ``openai/gpt-3.5-turbo`` then reach the endpoint intact.
        """
        return f"{self._custom_llm_provider}/{model}"

    def _call_kwargs(self, params: CompletionParams) -> dict[str, Any]:
        call_kwargs: dict[str, Any] = {
            "model": self.wire_model(params.model),
            "messages": [message_to_payload(m) for m in params.messages],
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
            "api_key": params.api_key,
            "api_base": params.endpoint,
            "custom_llm_provider": self._custom_llm_provider,
            "timeout": params.timeout_ms / 1000,
            **self._extra_kwargs,
        }
        if params.headers:
            call_kwargs["extra_headers"] = dict(params.headers)
        if params.streaming:
            call_kwargs["stream"] = True
        return call_kwargs

    async def create_completion(
        self, params: CompletionParams
    ) -> CompletionResult | AsyncIterator[DeltaChunk]:
        try:
            response = await acompletion(**self._call_kwargs(params))
        except Exception as e:
            raise BackendError(f"LLM API call failed: {e}", cause=e) from e

        if params.streaming:
            return self._iter_chunks(response)
        return self._to_result(response)

    @staticmethod
    def _to_result(response: Any) -> CompletionResult:
        try:
            choice = response.choices[0]
            usage = getattr(response, "usage", None)
            return CompletionResult(
                content=choice.message.content,
                usage=CompletionUsage(
                    prompt_tokens=getattr(usage, "prompt_tokens", None),
                    completion_tokens=getattr(usage, "completion_tokens", None),
                    total_tokens=getattr(usage, "total_tokens", None),
                ) if usage is not None else None,
                model=getattr(response, "model", None),
                finish_reason=getattr(choice, "finish_reason", None),
            )
        except (AttributeError, IndexError, TypeError, PydanticValidationError) as e:
            raise BackendError(f"Malformed completion response: {e}", cause=e) from e

    @staticmethod
    async def _iter_chunks(stream: Any) -> AsyncIterator[DeltaChunk]:
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = getattr(choice, "delta", None)
                yield DeltaChunk(
                    text=getattr(delta, "content", None),
                    finish_reason=getattr(choice, "finish_reason", None),
                )
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"LLM stream failed: {e}", cause=e) from e
        finally:
            # Release the HTTP response when the consumer stops early
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
