"""
Reasoning/answer classification for streamed chat-completion deltas.

Reasoning models stream their intermediate "thinking" tokens in
``delta.reasoning_content`` before the final answer arrives in
``delta.content``. The classifier turns each delta into zero or more text
events and inserts a single boundary marker where reasoning hands over to the
answer.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

BOUNDARY_MARKER = "\n\n---thinking ended---\n\n"
DEFAULT_REASONING_MODELS = frozenset({"deepseek-ai/DeepSeek-R1"})


class StreamPhase(Enum):
    """Phases of the reasoning sub-protocol."""
    ANSWERING = "answering"
    REASONING = "reasoning"


@dataclass(frozen=True)
class DeltaPayload:
    """Text fields extracted from one streamed record."""
    reasoning_text: str | None = None
    answer_text: str | None = None
    is_terminal: bool = False

    @classmethod
    def from_chunk(cls, data: Any) -> DeltaPayload:
        """Extract the first choice's delta; absent or empty fields become None."""
        if not isinstance(data, Mapping):
            return cls()
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            return cls()
        choice = choices[0]
        delta = choice.get("delta") if isinstance(choice, Mapping) else None
        if not isinstance(delta, Mapping):
            return cls()
        return cls(
            reasoning_text=_text_field(delta, "reasoning_content"),
            answer_text=_text_field(delta, "content"),
        )

    @classmethod
    def terminal(cls) -> DeltaPayload:
        return cls(is_terminal=True)


@dataclass(frozen=True)
class ReasoningState:
    """Per-session state of the classifier."""
    phase: StreamPhase = StreamPhase.ANSWERING
    # Set once the machine leaves REASONING; it never goes back.
    reasoning_closed: bool = False


def _text_field(delta: Mapping[str, Any], key: str) -> str | None:
    value = delta.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def is_reasoning_model(
    model_id: str, reasoning_models: Iterable[str] = DEFAULT_REASONING_MODELS
) -> bool:
    """Whether ``model_id`` speaks the reasoning sub-protocol."""
    return model_id in frozenset(reasoning_models)


def classify_delta(
    payload: DeltaPayload,
    state: ReasoningState,
    *,
    supports_reasoning: bool,
    marker: str = BOUNDARY_MARKER,
) -> tuple[list[str], ReasoningState]:
    """
    Classify one payload and return the text events plus the next state.

    The input state is never mutated. Rules, in order:
    - reasoning text on a reasoning model is emitted verbatim and enters
      REASONING (unless reasoning already closed)
    - answer text is emitted; when leaving REASONING the marker goes first
    - anything else, including terminal payloads and reasoning text on
      a non-reasoning model, emits nothing
    """
    if payload.is_terminal:
        return [], state

    if payload.reasoning_text and supports_reasoning:
        if state.phase is StreamPhase.ANSWERING and not state.reasoning_closed:
            state = replace(state, phase=StreamPhase.REASONING)
        return [payload.reasoning_text], state

    if payload.answer_text:
        events: list[str] = []
        if state.phase is StreamPhase.REASONING and supports_reasoning:
            events.append(marker)
            state = replace(
                state, phase=StreamPhase.ANSWERING, reasoning_closed=True
            )
        events.append(payload.answer_text)
        return events, state

    return [], state
