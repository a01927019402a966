"""
Chat-completions integration.

This package provides:
- Request models for the chat-completions endpoint
- The cancellation handle shared by every stream
- The error hierarchy for streaming failures

The HTTP client lives in ``chatstream.llm.client`` and the decoders in
``chatstream.llm.streaming``.
"""

from __future__ import annotations

from .cancellation import CancellationToken
from .exceptions import LLMError, StreamAbortedError, StreamingError
from .models import ChatCompletionRequest, ChatMessage

__all__ = [
    "CancellationToken",
    "ChatCompletionRequest",
    "ChatMessage",
    "LLMError",
    "StreamAbortedError",
    "StreamingError",
]
