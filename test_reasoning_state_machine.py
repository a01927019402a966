#!/usr/bin/env python3
"""
Tests for the reasoning/answer classifier.
"""

from chatstream.llm.streaming.reasoning import (
    BOUNDARY_MARKER,
    DeltaPayload,
    ReasoningState,
    StreamPhase,
    classify_delta,
    is_reasoning_model,
)


def chunk(**delta):
    return {"choices": [{"delta": delta}]}


def run(payloads, *, supports_reasoning):
    state = ReasoningState()
    events = []
    for payload in payloads:
        emitted, state = classify_delta(
            payload, state, supports_reasoning=supports_reasoning
        )
        events.extend(emitted)
    return events, state


class TestDeltaPayload:
    """Test extraction of delta fields from decoded records."""

    def test_extracts_both_fields(self):
        payload = DeltaPayload.from_chunk(chunk(reasoning_content="r", content="a"))
        assert payload.reasoning_text == "r"
        assert payload.answer_text == "a"
        assert payload.is_terminal is False

    def test_missing_and_empty_fields_are_absent(self):
        payload = DeltaPayload.from_chunk(chunk(reasoning_content="", content=None))
        assert payload.reasoning_text is None
        assert payload.answer_text is None

    def test_malformed_shapes_yield_empty_payload(self):
        for data in (None, [], {}, {"choices": []}, {"choices": [{}]},
                     {"choices": [{"delta": "text"}]}, {"choices": "x"}):
            assert DeltaPayload.from_chunk(data) == DeltaPayload()

    def test_only_first_choice_is_read(self):
        data = {"choices": [{"delta": {"content": "first"}},
                            {"delta": {"content": "second"}}]}
        assert DeltaPayload.from_chunk(data).answer_text == "first"

    def test_terminal_payload(self):
        assert DeltaPayload.terminal().is_terminal is True


class TestClassifyDelta:
    """Test classifier transitions."""

    def test_reasoning_then_answer_emits_marker_once(self):
        payloads = [
            DeltaPayload(reasoning_text="a"),
            DeltaPayload(reasoning_text="b"),
            DeltaPayload(answer_text="c"),
            DeltaPayload(answer_text="d"),
        ]
        events, state = run(payloads, supports_reasoning=True)
        assert events == ["a", "b", BOUNDARY_MARKER, "c", "d"]
        assert state.phase is StreamPhase.ANSWERING
        assert state.reasoning_closed is True

    def test_non_reasoning_model_never_emits_marker(self):
        payloads = [
            DeltaPayload(reasoning_text="hidden"),
            DeltaPayload(answer_text="x"),
            DeltaPayload(reasoning_text="hidden", answer_text="y"),
        ]
        events, state = run(payloads, supports_reasoning=False)
        assert events == ["x", "y"]
        assert BOUNDARY_MARKER not in events
        assert state == ReasoningState()

    def test_answer_without_reasoning_has_no_marker(self):
        events, _ = run(
            [DeltaPayload(answer_text="x"), DeltaPayload(answer_text="y")],
            supports_reasoning=True,
        )
        assert events == ["x", "y"]

    def test_reasoning_after_answer_does_not_reopen_phase(self):
        payloads = [
            DeltaPayload(reasoning_text="a"),
            DeltaPayload(answer_text="b"),
            DeltaPayload(reasoning_text="late"),
            DeltaPayload(answer_text="c"),
        ]
        events, state = run(payloads, supports_reasoning=True)
        assert events == ["a", BOUNDARY_MARKER, "b", "late", "c"]
        assert events.count(BOUNDARY_MARKER) == 1
        assert state.phase is StreamPhase.ANSWERING

    def test_reasoning_wins_over_answer_in_same_delta(self):
        events, state = run(
            [DeltaPayload(reasoning_text="r", answer_text="a")],
            supports_reasoning=True,
        )
        assert events == ["r"]
        assert state.phase is StreamPhase.REASONING

    def test_empty_and_terminal_payloads_emit_nothing(self):
        state = ReasoningState(phase=StreamPhase.REASONING)
        for payload in (DeltaPayload(), DeltaPayload.terminal()):
            events, next_state = classify_delta(
                payload, state, supports_reasoning=True
            )
            assert events == []
            assert next_state == state

    def test_input_state_is_not_mutated(self):
        state = ReasoningState()
        _, next_state = classify_delta(
            DeltaPayload(reasoning_text="r"), state, supports_reasoning=True
        )
        assert state.phase is StreamPhase.ANSWERING
        assert next_state.phase is StreamPhase.REASONING

    def test_custom_marker(self):
        state = ReasoningState(phase=StreamPhase.REASONING)
        events, _ = classify_delta(
            DeltaPayload(answer_text="a"),
            state,
            supports_reasoning=True,
            marker="<end>",
        )
        assert events == ["<end>", "a"]


def test_is_reasoning_model():
    """Test the default and custom reasoning model sets."""
    assert is_reasoning_model("deepseek-ai/DeepSeek-R1")
    assert not is_reasoning_model("deepseek-ai/DeepSeek-V3")
    assert is_reasoning_model("R1", ["R1"])
    assert not is_reasoning_model("V3", ["R1"])
