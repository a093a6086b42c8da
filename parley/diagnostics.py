"""
Structured diagnostic events.

The orchestrator reports lifecycle events (config changes, messages added,
request start, response received, stream completed, errors) to a
DiagnosticsSink. The sink is a pure side channel: when disabled ``record``
returns before any event data is computed, and handler failures are logged
and swallowed so they never change an orchestration result.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from parley.config.logging import get_logger

logger = get_logger(__name__)

PREVIEW_CHARS = 200


class EventKind(str, Enum):
    """Kinds of diagnostic events."""

    CONFIG_CHANGE = "CONFIG_CHANGE"
    MESSAGE_ADDED = "MESSAGE_ADDED"
    REQUEST_STARTED = "REQUEST_STARTED"
    RESPONSE_RECEIVED = "RESPONSE_RECEIVED"
    STREAM_COMPLETED = "STREAM_COMPLETED"
    ERROR = "ERROR"


class DiagnosticEvent(BaseModel):
    """One recorded event."""

    kind: EventKind
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


EventData = Mapping[str, Any] | Callable[[], Mapping[str, Any]]
EventHandler = Callable[[DiagnosticEvent], None]


def preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    """Truncate text for event payloads, marking the cut with an ellipsis."""
    return text if len(text) <= limit else text[:limit] + "..."


def log_event(event: DiagnosticEvent) -> None:
    """Default handler: write the event through the package logger."""
    level = logging.ERROR if event.kind is EventKind.ERROR else logging.INFO
    if not logger.isEnabledFor(level):
        return
    text = f"[{event.kind.value}] {event.message}"
    if event.data:
        text += "\n" + json.dumps(event.data, indent=2, default=str)
    logger.log(level, text)


class DiagnosticsSink:
    """
    Gate and dispatch diagnostic events.

    Args:
        enabled: Whether events are recorded at all
        handler: Callable receiving each DiagnosticEvent (default: log_event)

    ``data`` passed to ``record`` may be a mapping or a zero-argument
    callable returning one; the callable is only invoked when enabled.
    """

    def __init__(self, enabled: bool = False, handler: EventHandler | None = None):
        self._enabled = enabled
        self._handler = handler or log_event

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    def record(self, kind: EventKind, message: str, data: EventData | None = None) -> None:
        if not self._enabled:
            return
        try:
            payload = data() if callable(data) else data
            event = DiagnosticEvent(kind=kind, message=message, data=dict(payload or {}))
            self._handler(event)
        except Exception as e:
            logger.warning(f"Diagnostics handler failed for {kind.value} event: {e}")


class MemorySink(DiagnosticsSink):
    """Sink that keeps events in a list, for tests and embedding callers."""

    def __init__(self, enabled: bool = True):
        self.events: list[DiagnosticEvent] = []
        super().__init__(enabled=enabled, handler=self.events.append)

    def kinds(self) -> list[EventKind]:
        return [event.kind for event in self.events]
