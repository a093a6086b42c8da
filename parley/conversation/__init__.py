"""
Conversation state and data model.

Holds the ordered turn history, the system prompt and the per-instance
configuration that the orchestrator dispatches with.
"""

from parley.conversation.models import (
    AIResponse,
    BaseConfig,
    EffectiveParams,
    ImagePart,
    Message,
    RequestOptions,
    TextPart,
    TokenUsage,
)
from parley.conversation.state import ConversationState

__all__ = [
    "AIResponse",
    "BaseConfig",
    "ConversationState",
    "EffectiveParams",
    "ImagePart",
    "Message",
    "RequestOptions",
    "TextPart",
    "TokenUsage",
]
