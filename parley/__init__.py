"""
Parley - conversation orchestration in front of remote LLM completion APIs.

This package keeps an ordered conversation (system prompt + turn history),
merges per-instance defaults with per-call overrides, dispatches single-shot or
streaming completions through a pluggable backend, retries failures with
exponential backoff and emits structured diagnostic events.
"""

__version__ = "0.1.0"
