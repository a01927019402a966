#!/usr/bin/env python3
"""
Test script for logging utilities.

This validates that the centralized logging and error classification works
correctly.
"""

import asyncio
import json

import httpx
import pytest
from pydantic import ValidationError

from chatstream import logging_utils
from chatstream.llm.exceptions import StreamAbortedError, StreamingError
from chatstream.llm.models import ChatCompletionRequest
from chatstream.logging_utils import (
    ContextualLogger,
    StreamErrorHandler,
    log_operation,
    operation_context,
)


class TestStreamErrorHandler:
    """Test the StreamErrorHandler class."""

    def test_classify_malformed_payload(self):
        """Test classification of JSON decode errors."""
        with pytest.raises(json.JSONDecodeError) as exc_info:
            json.loads("{broken")
        category = StreamErrorHandler.classify_error(exc_info.value)
        assert category == "malformed_payload"

    def test_classify_abort(self):
        """Test classification of caller-initiated aborts."""
        assert StreamErrorHandler.classify_error(StreamAbortedError()) == "transport_abort"
        assert (
            StreamErrorHandler.classify_error(asyncio.CancelledError())
            == "transport_abort"
        )

    def test_classify_timeout(self):
        """Test classification of timeouts."""
        assert StreamErrorHandler.classify_error(TimeoutError()) == "timeout_error"
        assert (
            StreamErrorHandler.classify_error(httpx.ReadTimeout("slow"))
            == "timeout_error"
        )

    def test_classify_transport_error(self):
        """Test classification of transport failures."""
        for error in (
            httpx.ReadError("reset"),
            StreamingError("bad status"),
            ConnectionError("refused"),
            OSError("unreachable"),
        ):
            assert StreamErrorHandler.classify_error(error) == "transport_error"

    def test_classify_validation_error(self):
        """Test classification of pydantic ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            ChatCompletionRequest(model="", messages=[])
        category = StreamErrorHandler.classify_error(exc_info.value)
        assert category == "validation_error"

    def test_classify_parameter_and_unknown_errors(self):
        assert StreamErrorHandler.classify_error(ValueError("x")) == "parameter_error"
        assert StreamErrorHandler.classify_error(RuntimeError("x")) == "unknown_error"

    def test_create_stream_error_with_context(self):
        """Test wrapping an error with operation context."""
        request = httpx.Request("POST", "https://api.example.test/v1/chat/completions")
        response = httpx.Response(429, request=request)
        original = httpx.HTTPStatusError(
            "rate limited", request=request, response=response
        )

        error = StreamErrorHandler.create_stream_error(
            original,
            "open_stream",
            provider="siliconflow",
            model="R1",
            context={"session_id": "abc"},
        )

        assert isinstance(error, StreamingError)
        assert error.provider == "siliconflow"
        assert error.model == "R1"
        assert error.status_code == 429
        assert error.response_data["operation"] == "open_stream"
        assert error.response_data["error_category"] == "transport_error"
        assert error.response_data["original_error_type"] == "HTTPStatusError"
        assert error.response_data["session_id"] == "abc"


class TestDecorators:
    """Test logging decorators and context managers."""

    @pytest.mark.asyncio
    async def test_log_operation_success(self):
        """Test log_operation decorator with successful function."""

        @log_operation("test_operation", log_result=True)
        async def successful_function():
            return "success"

        assert await successful_function() == "success"

    @pytest.mark.asyncio
    async def test_log_operation_with_error(self):
        """Test log_operation decorator re-raises errors."""

        @log_operation("test_operation")
        async def failing_function():
            raise ValueError("Test error")

        with pytest.raises(ValueError, match="Test error"):
            await failing_function()

    @pytest.mark.asyncio
    async def test_operation_context_success(self):
        async with operation_context("test_context", context={"k": "v"}) as log:
            assert log is not None

    @pytest.mark.asyncio
    async def test_operation_context_with_error(self):
        with pytest.raises(StreamingError):
            async with operation_context("test_context"):
                raise StreamingError("boom")

    @pytest.mark.asyncio
    async def test_operation_context_propagates_cancellation(self):
        with pytest.raises(asyncio.CancelledError):
            async with operation_context("test_context"):
                raise asyncio.CancelledError()


class RecordingLogger:
    """Stand-in for the module logger that keeps every record."""

    def __init__(self):
        self.records = []

    def bind(self, **context):
        return self

    def _record(self, level):
        def log(event, **fields):
            self.records.append((level, event, fields))
        return log

    def __getattr__(self, level):
        return self._record(level)


class TestOperationOutcome:
    """Test that absorbed stream failures still show in operation logs."""

    @pytest.fixture
    def recorder(self, monkeypatch):
        recorder = RecordingLogger()
        monkeypatch.setattr(logging_utils, "logger", recorder)
        return recorder

    @pytest.mark.asyncio
    async def test_failed_outcome_logged_as_warning(self, recorder):
        async with operation_context("sse_stream", outcome=lambda: "failed"):
            pass
        level, event, fields = recorder.records[-1]
        assert level == "warning"
        assert event == "Operation finished"
        assert fields["outcome"] == "failed"

    @pytest.mark.asyncio
    async def test_other_outcomes_logged_as_info(self, recorder):
        async with operation_context("sse_stream", outcome=lambda: "done"):
            pass
        level, _, fields = recorder.records[-1]
        assert level == "info"
        assert fields["outcome"] == "done"

    @pytest.mark.asyncio
    async def test_log_operation_reads_outcome_from_result(self, recorder):
        @log_operation("fetch_stream", outcome=lambda result: result["outcome"])
        async def stream():
            return {"outcome": "failed"}

        assert await stream() == {"outcome": "failed"}
        level, event, fields = recorder.records[-1]
        assert level == "warning"
        assert fields["outcome"] == "failed"
        assert "duration_ms" in fields

    @pytest.mark.asyncio
    async def test_without_outcome_logs_completion(self, recorder):
        async with operation_context("plain"):
            pass
        assert recorder.records[-1][:2] == ("info", "Operation completed")


class TestContextualLogger:
    """Test the ContextualLogger class."""

    def test_bind_merges_context(self):
        base = ContextualLogger({"model": "R1"})
        bound = base.bind(session_id="s1")
        assert bound.base_context == {"model": "R1", "session_id": "s1"}
        assert base.base_context == {"model": "R1"}

    def test_logging_methods(self):
        log = ContextualLogger({"model": "V3"})
        log.debug("debug message", extra_field=1)
        log.info("info message")
        log.warning("warning message")
        log.error("error message")
