"""
Streaming decoders for chat-completions responses.

This package contains:
- reasoning: the reasoning/answer classifier shared by both transports
- session: per-request decoding context
- chunk_reader: decoder for pull-based byte readers
- event_source: SSE client and its decoder
"""

from __future__ import annotations

from .models import ReadResult, SSEEvent, StreamOutcome
from .reasoning import (
    BOUNDARY_MARKER,
    DeltaPayload,
    ReasoningState,
    StreamPhase,
    classify_delta,
    is_reasoning_model,
)
from .session import StreamSession

__all__ = [
    "BOUNDARY_MARKER",
    "DeltaPayload",
    "ReadResult",
    "ReasoningState",
    "SSEEvent",
    "StreamOutcome",
    "StreamPhase",
    "StreamSession",
    "classify_delta",
    "is_reasoning_model",
]
