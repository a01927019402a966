"""
Error hierarchy for chat-completion streaming.

This module provides the exceptions raised by the client and transports:
- Provider and model context on every error
- A distinguished abort signal for caller-initiated cancellation
"""

from __future__ import annotations


class LLMError(Exception):
    """Base LLM error with rich context."""

    def __init__(
        self,
        message: str,
        provider: str,
        model: str,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code
        self.response_data = response_data or {}


class StreamingError(LLMError):
    """Streaming-specific errors."""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        model: str = "unknown",
        **kwargs,
    ):
        super().__init__(message, provider, model, **kwargs)


class StreamAbortedError(StreamingError):
    """The stream was aborted through its cancellation handle."""

    def __init__(self, reason: str | None = None, **kwargs):
        super().__init__(reason or "stream aborted", **kwargs)
        self.reason = reason
