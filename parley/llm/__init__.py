"""
LLM Orchestration Layer.

Dispatches a conversation to a completion backend (LiteLLM by default),
retries backend failures with exponential backoff and normalizes responses:

    ConversationState.build_messages()  →  RequestPlanner.resolve()
                                                ↓
    RetryExecutor.execute( CompletionBackend.create_completion → ResponseNormalizer )
                                                ↓
                             AIResponse / streamed text  →  caller

ChatOrchestrator is the entry point that wires these pieces together.
"""

from parley.llm.backend import (
    CompletionBackend,
    CompletionParams,
    CompletionResult,
    CompletionUsage,
    DeltaChunk,
    LiteLLMBackend,
)
from parley.llm.normalizer import ResponseNormalizer, StreamSummary
from parley.llm.orchestrator import ChatOrchestrator
from parley.llm.planner import RequestPlanner
from parley.llm.retry import RetryExecutor, compute_delay_ms

__all__ = [
    "ChatOrchestrator",
    "CompletionBackend",
    "CompletionParams",
    "CompletionResult",
    "CompletionUsage",
    "DeltaChunk",
    "LiteLLMBackend",
    "RequestPlanner",
    "ResponseNormalizer",
    "RetryExecutor",
    "StreamSummary",
    "compute_delay_ms",
]
