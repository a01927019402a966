"""
Streaming-specific dataclasses shared by both transports.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class StreamOutcome(Enum):
    """How a stream session ended."""
    COMPLETED = "completed"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class ReadResult:
    """One pull from a byte-stream reader."""
    done: bool
    value: bytes = b""


@dataclass(frozen=True)
class SSEEvent:
    """A single Server-Sent Event."""
    data: str
    event: str = "message"
    id: str = ""
    retry: int | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class StreamStats:
    """Counters for one stream session."""
    records: int = 0
    malformed_records: int = 0
    text_events: int = 0
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None

    @property
    def duration(self) -> float:
        """Seconds between session start and completion."""
        if self.finished_at is None:
            return 0.0
        return self.finished_at - self.started_at

    def as_dict(self) -> dict[str, float | int]:
        return {
            "records": self.records,
            "malformed_records": self.malformed_records,
            "text_events": self.text_events,
            "duration": round(self.duration, 3),
        }
