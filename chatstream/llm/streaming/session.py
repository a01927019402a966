"""
Per-request decoding context shared by both transports.
"""

from __future__ import annotations

import json
import time
import uuid
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from chatstream.logging_utils import ContextualLogger, StreamErrorHandler

from ..cancellation import CancellationToken
from .models import StreamOutcome, StreamStats
from .reasoning import (
    BOUNDARY_MARKER,
    DEFAULT_REASONING_MODELS,
    DeltaPayload,
    ReasoningState,
    classify_delta,
    is_reasoning_model,
)

if TYPE_CHECKING:
    from chatstream.config import Configuration

DONE_SENTINEL = "[DONE]"

TextCallback = Callable[[str], None]
CompleteCallback = Callable[[], None]


def resolve_streaming_options(
    config: Configuration | None,
    reasoning_models: Iterable[str] | None = None,
    marker: str | None = None,
) -> tuple[Iterable[str], str]:
    """
    Pick the reasoning models and boundary marker for a session.

    Explicit values win, then ``config``, then the built-in defaults. An
    empty model list is a valid choice and is kept.
    """
    if config is not None:
        streaming_config = config.get_streaming_config()
        if reasoning_models is None:
            reasoning_models = streaming_config["reasoning_models"]
        if marker is None:
            marker = streaming_config["boundary_marker"]
    if reasoning_models is None:
        reasoning_models = DEFAULT_REASONING_MODELS
    if marker is None:
        marker = BOUNDARY_MARKER
    return reasoning_models, marker


class StreamSession:
    """
    Live decoding context for one request.

    The session owns the reasoning state and is the only place it changes.
    Text is delivered through ``on_text`` until the session is cancelled or
    finished; ``on_complete`` fires exactly once via ``finish``.
    """

    def __init__(
        self,
        model_id: str,
        on_text: TextCallback | None = None,
        on_complete: CompleteCallback | None = None,
        *,
        cancellation: CancellationToken | None = None,
        reasoning_models: Iterable[str] = DEFAULT_REASONING_MODELS,
        marker: str = BOUNDARY_MARKER,
    ) -> None:
        self.session_id = uuid.uuid4().hex[:12]
        self.model_id = model_id
        self.supports_reasoning = is_reasoning_model(model_id, reasoning_models)
        self.marker = marker
        self.cancellation = cancellation or CancellationToken()
        self.state = ReasoningState()
        self.outcome: StreamOutcome | None = None
        self.error: BaseException | None = None
        self.stats = StreamStats()
        self.log = ContextualLogger(
            {"model": model_id, "session_id": self.session_id}
        )
        self._on_text = on_text
        self._on_complete = on_complete

    @property
    def completed(self) -> bool:
        return self.outcome is not None

    @property
    def outcome_name(self) -> str | None:
        return self.outcome.value if self.outcome is not None else None

    @property
    def active(self) -> bool:
        """Whether text may still be delivered."""
        return not self.completed and not self.cancellation.cancelled

    def cancel(self, reason: str | None = None) -> None:
        self.cancellation.cancel(reason)

    def process_payload(self, payload: DeltaPayload) -> list[str]:
        """Run one payload through the classifier and advance the state."""
        events, self.state = classify_delta(
            payload,
            self.state,
            supports_reasoning=self.supports_reasoning,
            marker=self.marker,
        )
        return events

    def parse_record(self, data: str) -> DeltaPayload | None:
        """
        Turn one record body into a payload.

        ``[DONE]`` becomes the terminal payload. Malformed JSON is logged,
        counted and returns None.
        """
        if data.strip() == DONE_SENTINEL:
            return DeltaPayload.terminal()
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError as e:
            self.stats.malformed_records += 1
            self.log.warning(
                "Failed to parse stream record",
                error_category=StreamErrorHandler.classify_error(e),
                error_message=str(e),
                raw_data=data[:200],
            )
            return None

        self.stats.records += 1
        return DeltaPayload.from_chunk(parsed)

    def process_record(self, data: str) -> list[str]:
        """Parse and classify one record; malformed records yield nothing."""
        payload = self.parse_record(data)
        if payload is None:
            return []
        return self.process_payload(payload)

    def deliver(self, text: str) -> bool:
        """Hand one text event to the caller; returns False once inactive."""
        if not self.active:
            return False
        self.stats.text_events += 1
        if self._on_text is not None:
            self._on_text(text)
        return True

    def finish(
        self, outcome: StreamOutcome, error: BaseException | None = None
    ) -> bool:
        """Record the outcome and fire the completion callback once."""
        if self.completed:
            return False
        self.outcome = outcome
        self.error = error
        self.stats.finished_at = time.time()
        self.log.info(
            "Stream finished", outcome=outcome.value, **self.stats.as_dict()
        )
        if self._on_complete is not None:
            self._on_complete()
        return True

    def get_stats(self) -> dict[str, float | int]:
        """Get stream statistics for monitoring."""
        return self.stats.as_dict()
