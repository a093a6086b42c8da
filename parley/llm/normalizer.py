"""
Response normalization.

Maps raw backend output into the canonical shapes and records the assistant
turn in the conversation. The assistant message is appended only after a
result has been fully normalized (or a stream fully consumed), so a failed
call leaves the history untouched.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable, Mapping
from contextlib import aclosing
from dataclasses import dataclass

from parley.conversation.models import AIResponse, TokenUsage
from parley.conversation.state import ConversationState
from parley.errors import BackendError
from parley.llm.backend import CompletionResult, DeltaChunk

ChunkSource = AsyncIterable[DeltaChunk | str] | Iterable[DeltaChunk | str]
ChunkCallback = Callable[[str], None]


@dataclass
class StreamSummary:
    """What a consumed stream produced."""

    content: str
    chunk_count: int
    finish_reason: str | None = None

    @property
    def avg_chunk_size(self) -> int:
        return round(len(self.content) / self.chunk_count) if self.chunk_count else 0


def _usage_from(result: CompletionResult) -> TokenUsage:
    usage = result.usage
    if usage is None:
        return TokenUsage()
    prompt = usage.prompt_tokens
    completion = usage.completion_tokens
    if prompt is not None and completion is not None:
        total = prompt + completion
    else:
        total = usage.total_tokens or 0
    return TokenUsage(
        prompt_tokens=prompt or 0,
        completion_tokens=completion or 0,
        total_tokens=total,
    )


async def _iterate(chunks: ChunkSource) -> AsyncIterator[DeltaChunk | str]:
    """Single pass over sync or async chunks; iteration errors become BackendError."""
    try:
        if isinstance(chunks, AsyncIterable):
            async for chunk in chunks:
                yield chunk
        else:
            for chunk in chunks:
                yield chunk
    except BackendError:
        raise
    except Exception as e:
        raise BackendError(f"Stream failed: {e}", cause=e) from e
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()


class ResponseNormalizer:
    """Turns backend output into AIResponse / accumulated text."""

    def normalize(
        self,
        result: CompletionResult,
        state: ConversationState,
        *,
        fallback_model: str,
    ) -> AIResponse:
        """
        Build an AIResponse and append the assistant turn.

        Missing content becomes "", missing usage counts become 0 and a
        missing model falls back to the model the request was sent with.

        Raises:
            BackendError: If ``result`` is not a CompletionResult
        """
        if not isinstance(result, CompletionResult):
            raise BackendError(
                f"Expected a completion result, got {type(result).__name__}"
            )

        response = AIResponse(
            content=result.content or "",
            usage=_usage_from(result),
            model=result.model or fallback_model,
            finish_reason=result.finish_reason,
        )
        state.add_assistant_message(response.content)
        return response

    async def accumulate(
        self,
        chunks: ChunkSource,
        state: ConversationState,
        on_chunk: ChunkCallback | None = None,
    ) -> StreamSummary:
        """
        Consume a stream once, forwarding each non-empty fragment.

        ``on_chunk`` runs inline in arrival order. On exhaustion exactly one
        assistant message holding the full text is appended. The source is
        closed on every exit, including an exception from ``on_chunk``.

        Raises:
            BackendError: If iterating the stream fails
        """
        if not isinstance(chunks, (AsyncIterable, Iterable)) or isinstance(
            chunks, (str, bytes, Mapping, CompletionResult)
        ):
            raise BackendError(f"Expected a chunk stream, got {type(chunks).__name__}")

        parts: list[str] = []
        finish_reason: str | None = None

        async with aclosing(_iterate(chunks)) as stream:
            async for chunk in stream:
                if isinstance(chunk, str):
                    text = chunk
                else:
                    text = chunk.text or ""
                    finish_reason = chunk.finish_reason or finish_reason
                if not text:
                    continue
                parts.append(text)
                if on_chunk is not None:
                    on_chunk(text)

        summary = StreamSummary(
            content="".join(parts),
            chunk_count=len(parts),
            finish_reason=finish_reason,
        )
        state.add_assistant_message(summary.content)
        return summary
