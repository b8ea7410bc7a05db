"""Structured event stream models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True)
class ScreenerEvent:
    """Single event written to JSONL."""

    session: str
    event_type: str
    payload: dict[str, Any] = field(default_factory=dict)
    ts: str = field(default_factory=lambda: datetime.now(tz=UTC).isoformat())

    def to_record(self) -> dict[str, Any]:
        """Convert event to serializable dict."""
        return {
            "ts": self.ts,
            "session": self.session,
            "event_type": self.event_type,
            "payload": self.payload,
        }
