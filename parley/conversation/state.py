"""
ConversationState: ordered message history, system prompt and base config.

The system prompt is held separately from the message list and synthesized
as the leading system message only when the conversation is linearized for
dispatch. Mutators return ``self`` so calls can be chained::

    state.set_system_prompt("You are terse.").add_user_message("2+2?")
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from parley.config.logging import get_logger
from parley.conversation.models import BaseConfig, ContentPart, ImagePart, Message, Role, TextPart
from parley.diagnostics import DiagnosticsSink, EventKind, preview
from parley.errors import EmptyConversationError, NoUserTurnError, ValidationError

logger = get_logger(__name__)

# Fixed at construction; update_config drops them
IMMUTABLE_CONFIG_FIELDS = frozenset({"api_key", "provider_id"})


def build_config(values: BaseConfig | dict[str, Any]) -> BaseConfig:
    """
    Validate raw config values into a BaseConfig.

    Raises:
        ValidationError: With the pydantic error chained as cause
    """
    if isinstance(values, BaseConfig):
        return values
    try:
        return BaseConfig.model_validate(values)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid configuration: {e}", cause=e) from e


class ConversationState:
    """
    One conversation: messages in insertion order plus the config they are
    dispatched with.

    Args:
        config: Validated BaseConfig (or a dict of its fields)
        diagnostics: Sink receiving MESSAGE_ADDED / CONFIG_CHANGE events
    """

    def __init__(
        self,
        config: BaseConfig | dict[str, Any],
        diagnostics: DiagnosticsSink | None = None,
    ):
        self._config = build_config(config)
        self._system_prompt = self._config.system_prompt
        self._messages: list[Message] = []
        self._diagnostics = diagnostics or DiagnosticsSink(enabled=False)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(
        self,
        content: str | Sequence[ContentPart],
        role: Role = "user",
    ) -> ConversationState:
        """
        Append a user or assistant turn.

        Raises:
            ValidationError: For the system role or malformed content parts
        """
        if role == "system":
            raise ValidationError(
                "System messages are not stored in the history; use set_system_prompt()"
            )
        try:
            message = Message(role=role, content=content)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid message: {e}", cause=e) from e
        self._append(message)
        return self

    def add_user_message(self, content: str | Sequence[ContentPart]) -> ConversationState:
        return self.add_message(content, "user")

    def add_assistant_message(self, content: str | Sequence[ContentPart]) -> ConversationState:
        return self.add_message(content, "assistant")

    def add_image_message(self, text: str, image_url: str) -> ConversationState:
        """Append a user turn carrying text followed by an image reference."""
        return self.add_message([TextPart(text=text), ImagePart(url=image_url)], "user")

    def _append(self, message: Message) -> None:
        self._messages.append(message)
        self._diagnostics.record(
            EventKind.MESSAGE_ADDED,
            f"Message added ({message.role})",
            lambda: {
                "role": message.role,
                "structured": message.is_structured,
                "content_length": len(message.text),
                "content_preview": preview(message.text),
                "total_messages": len(self._messages),
            },
        )

    def get_messages(self) -> list[Message]:
        """Snapshot of the history; changing the list does not touch the state."""
        return list(self._messages)

    def clear_messages(self) -> ConversationState:
        """Drop every message, keeping the system prompt."""
        count = len(self._messages)
        self._messages = []
        self._diagnostics.record(
            EventKind.CONFIG_CHANGE, "Messages cleared", {"cleared_count": count}
        )
        return self

    def reset(self) -> ConversationState:
        """Drop every message and the system prompt."""
        count = len(self._messages)
        self._messages = []
        self._system_prompt = ""
        self._diagnostics.record(
            EventKind.CONFIG_CHANGE,
            "Reset complete",
            {"cleared_count": count, "system_prompt_cleared": True},
        )
        return self

    # ------------------------------------------------------------------
    # System prompt and config
    # ------------------------------------------------------------------

    def set_system_prompt(self, prompt: str) -> ConversationState:
        self._system_prompt = prompt
        self._diagnostics.record(
            EventKind.CONFIG_CHANGE,
            "System prompt updated",
            lambda: {"prompt_length": len(prompt), "prompt_preview": preview(prompt, 150)},
        )
        return self

    def get_system_prompt(self) -> str:
        return self._system_prompt

    @property
    def config(self) -> BaseConfig:
        """Current config, with the live system prompt folded in."""
        if self._config.system_prompt == self._system_prompt:
            return self._config
        return self._config.model_copy(update={"system_prompt": self._system_prompt})

    def get_config(self) -> BaseConfig:
        return self.config

    def update_config(self, **changes: Any) -> ConversationState:
        """
        Shallow-merge ``changes`` into the config.

        ``api_key`` and ``provider_id`` are fixed at construction and are
        ignored here. A ``system_prompt`` change goes through
        set_system_prompt().

        Raises:
            ValidationError: If the merged config is invalid (nothing changes)
        """
        ignored = sorted(IMMUTABLE_CONFIG_FIELDS & changes.keys())
        if ignored:
            logger.warning(f"update_config() cannot change {', '.join(ignored)}; ignoring")
        changes = {k: v for k, v in changes.items() if k not in IMMUTABLE_CONFIG_FIELDS}
        if not changes:
            return self

        before = self.config
        merged = build_config({**before.model_dump(), **changes})
        self._config = merged
        if "system_prompt" in changes:
            self._system_prompt = merged.system_prompt
        self._diagnostics.record(
            EventKind.CONFIG_CHANGE,
            "Configuration updated",
            lambda: {
                "changes": changes,
                "before": before.public_dict(),
                "after": self.config.public_dict(),
            },
        )
        return self

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def build_messages(self) -> list[Message]:
        """
        Linearize the conversation in dispatch order.

        Raises:
            EmptyConversationError: Nothing to send at all
            NoUserTurnError: Only a system prompt and/or assistant turns
        """
        messages: list[Message] = []
        if self._system_prompt:
            messages.append(Message(role="system", content=self._system_prompt))
        messages.extend(self._messages)

        if not messages:
            raise EmptyConversationError()
        if not any(message.role == "user" for message in messages):
            raise NoUserTurnError()
        return messages

    def __len__(self) -> int:
        return len(self._messages)
