"""
Error taxonomy.

Every failure raised by parley derives from ParleyError and carries an
optional ``cause`` so callers can inspect the underlying exception without
walking ``__cause__`` chains:

- ValidationError: malformed construction input or provider registration
- ProviderNotFoundError: unknown provider id at construction time
- EmptyConversationError / NoUserTurnError: nothing dispatchable
- BackendError: any failure from the completion backend (always retried)
- RequestFailedError: terminal wrapper after exhausting retry attempts
- MissingCredentialError: no API key found in the environment
"""

from __future__ import annotations


class ParleyError(Exception):
    """Base class for all parley errors."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ValidationError(ParleyError, ValueError):
    """Construction input or a provider registration failed validation."""


class ProviderNotFoundError(ParleyError, LookupError):
    """The requested provider id is not registered."""

    def __init__(self, provider_id: str):
        super().__init__(f"Unknown provider: {provider_id!r}")
        self.provider_id = provider_id


class DispatchValidationError(ParleyError):
    """The conversation cannot be dispatched in its current shape."""


class EmptyConversationError(DispatchValidationError):
    """No messages and no system prompt."""

    def __init__(self):
        super().__init__(
            "No messages to send. Add at least one message or set a system prompt."
        )


class NoUserTurnError(DispatchValidationError):
    """The conversation has content but no user message."""

    def __init__(self):
        super().__init__("Conversation has no user message to respond to.")


class BackendError(ParleyError):
    """The completion backend failed (network, auth, rate limit, bad payload)."""


class RequestFailedError(ParleyError):
    """All retry attempts were exhausted."""

    def __init__(self, cause: BaseException, attempts: int):
        super().__init__(f"Request failed after {attempts} attempt(s): {cause}", cause=cause)
        self.attempts = attempts


class MissingCredentialError(ParleyError):
    """Environment-based construction found no usable API key."""

    def __init__(self, provider_id: str, env_names: list[str]):
        names = " or ".join(env_names)
        super().__init__(f"No API key for provider {provider_id!r}. Set {names}.")
        self.provider_id = provider_id
        self.env_names = env_names
