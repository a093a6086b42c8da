"""
Conversation data structures.

- TextPart / ImagePart: tagged content parts (discriminated on ``type``)
- Message: one conversation turn, plain text or a tuple of parts
- BaseConfig: per-instance defaults, frozen; updates build a new instance
- RequestOptions: per-call overrides
- EffectiveParams: fully resolved parameters for one dispatch
- TokenUsage / AIResponse: canonical response shape
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from parley.config.settings import DEFAULT_PROVIDER_ID

Role = Literal["system", "user", "assistant"]


class TextPart(BaseModel):
    """A text fragment inside structured content."""

    type: Literal["text"] = "text"
    text: str

    model_config = ConfigDict(frozen=True)


class ImagePart(BaseModel):
    """A reference to an image by URL (http(s) or data: URI)."""

    type: Literal["image_url"] = "image_url"
    url: str = Field(min_length=1)

    model_config = ConfigDict(frozen=True)


ContentPart = Annotated[TextPart | ImagePart, Field(discriminator="type")]


class Message(BaseModel):
    """
    One conversation turn.

    ``content`` is either a plain string or a tuple of content parts. System
    messages are synthesized from the stored system prompt at dispatch time
    and never stored in the conversation history.
    """

    role: Role
    content: str | tuple[ContentPart, ...]

    model_config = ConfigDict(frozen=True)

    @property
    def is_structured(self) -> bool:
        return not isinstance(self.content, str)

    @property
    def text(self) -> str:
        """Textual content; for structured content, text parts joined by newlines."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(part.text for part in self.content if isinstance(part, TextPart))


class BaseConfig(BaseModel):
    """Per-instance configuration, baked with defaults at construction."""

    api_key: str = Field(min_length=1, repr=False, description="Provider API key")
    provider_id: str = Field(default=DEFAULT_PROVIDER_ID, min_length=1)
    model: str | None = Field(
        default=None,
        description="Model name; falls back to the provider's default model",
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, gt=0)
    system_prompt: str = ""
    debug_enabled: bool = False
    timeout_ms: int = Field(default=30000, gt=0, description="Enforced by the transport only")
    retry_attempts: int = Field(default=3, gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _check_api_key(self) -> BaseConfig:
        if not self.api_key.strip():
            raise ValueError("API key is required")
        return self

    def public_dict(self) -> dict[str, Any]:
        """Field values without the API key, for diagnostics."""
        return self.model_dump(exclude={"api_key"})


class RequestOptions(BaseModel):
    """Per-call overrides; ``None`` fields fall through to BaseConfig."""

    model: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    streaming_enabled: bool | None = None


class EffectiveParams(BaseModel):
    """Request parameters after merging call options, config and provider defaults."""

    model: str
    temperature: float
    max_tokens: int
    streaming_enabled: bool = False


class TokenUsage(BaseModel):
    """Token counts reported by the backend (zero when not reported)."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)

    @property
    def estimated_cost(self) -> float:
        """Advisory display figure only, not a billing calculation."""
        return (self.total_tokens / 1000) * 0.0001


class AIResponse(BaseModel):
    """Canonical result of a non-streaming ``send``."""

    content: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str
    finish_reason: str | None = None
