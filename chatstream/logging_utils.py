"""
Centralized logging and error classification for chat streaming.

This module provides the structured logger shared by the decoders and
helpers that standardize how stream operations are logged:

Features:
- Structured logging with contextual information
- Error classification into the stream failure taxonomy
- Operation timing for whole streams
- Context-bound loggers per stream session
"""

from __future__ import annotations

import asyncio
import functools
import json
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from chatstream.llm.exceptions import LLMError, StreamAbortedError, StreamingError

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)

# Outcome name that is logged as a warning when an operation finishes
FAILED_OUTCOME = "failed"


class StreamErrorHandler:
    """Classifies stream failures with structured logging."""

    @staticmethod
    def classify_error(error: BaseException) -> str:
        """
        Classify an error into a stream failure category.

        Args:
            error: The exception to classify

        Returns:
            One of malformed_payload, transport_abort, timeout_error,
            transport_error, validation_error, parameter_error, unknown_error
        """
        if isinstance(error, json.JSONDecodeError):
            return "malformed_payload"
        if isinstance(error, StreamAbortedError | asyncio.CancelledError):
            return "transport_abort"
        if isinstance(error, TimeoutError | httpx.TimeoutException):
            return "timeout_error"
        if isinstance(error, httpx.HTTPError | StreamingError):
            return "transport_error"
        if isinstance(error, ConnectionError | OSError):
            return "transport_error"
        if isinstance(error, ValidationError):
            return "validation_error"
        if isinstance(error, ValueError | TypeError):
            return "parameter_error"
        return "unknown_error"

    @staticmethod
    def create_stream_error(
        error: Exception,
        operation: str,
        *,
        provider: str = "unknown",
        model: str = "unknown",
        context: dict[str, Any] | None = None,
    ) -> StreamingError:
        """
        Wrap an exception in a StreamingError and log it with context.

        Args:
            error: Original exception
            operation: Description of the operation that failed
            provider: Provider name for error context
            model: Model identifier for error context
            context: Additional context for logging and error data

        Returns:
            StreamingError carrying the category and original error type
        """
        category = StreamErrorHandler.classify_error(error)
        context = context or {}

        status_code = None
        if isinstance(error, LLMError):
            status_code = error.status_code
        elif isinstance(error, httpx.HTTPStatusError):
            status_code = error.response.status_code

        logger.error(
            "Operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_category=category,
            error_message=str(error),
            **context,
        )

        return StreamingError(
            f"{operation} failed: {error!s}",
            provider=provider,
            model=model,
            status_code=status_code,
            response_data={
                "operation": operation,
                "error_category": category,
                "original_error_type": type(error).__name__,
                **context,
            },
        )


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def _failure_fields(error: BaseException, start: float) -> dict[str, Any]:
    return {
        "error_type": type(error).__name__,
        "error_category": StreamErrorHandler.classify_error(error),
        "error_message": str(error),
        "duration_ms": _elapsed_ms(start),
    }


def _log_finish(
    operation_logger: Any, start: float, outcome: str | None
) -> None:
    fields: dict[str, Any] = {"duration_ms": _elapsed_ms(start)}
    if outcome is None:
        operation_logger.info("Operation completed", **fields)
    elif outcome == FAILED_OUTCOME:
        operation_logger.warning("Operation finished", outcome=outcome, **fields)
    else:
        operation_logger.info("Operation finished", outcome=outcome, **fields)


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    outcome: Callable[[], str | None] | None = None,
) -> AsyncIterator[Any]:
    """
    Bind a logger to one stream operation and log how it ended.

    Failures are logged with their category and re-raised; task
    cancellation is logged at info level since callers stop streams
    routinely. Streams absorb their own errors, so ``outcome`` is read on
    exit and a ``"failed"`` result is logged as a warning.

    Yields:
        Bound logger for the operation
    """
    operation_logger = logger.bind(operation=operation, **(context or {}))
    operation_logger.debug("Operation started")
    start = time.perf_counter()

    try:
        yield operation_logger
    except asyncio.CancelledError:
        operation_logger.info("Operation cancelled", duration_ms=_elapsed_ms(start))
        raise
    except Exception as e:
        operation_logger.error("Operation failed", **_failure_fields(e, start))
        raise

    _log_finish(operation_logger, start, outcome() if outcome is not None else None)


def log_operation(
    operation: str,
    *,
    log_result: bool = False,
    outcome: Callable[[Any], str | None] | None = None,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator running an async function inside ``operation_context``.

    Args:
        operation: Name of the operation in the logs
        log_result: Also log the return value at debug level
        outcome: Maps the return value to an outcome name for the final record
        context: Extra fields bound to every record
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            results: list[Any] = []

            def result_outcome() -> str | None:
                if outcome is None or not results:
                    return None
                return outcome(results[0])

            bound = {"function": func.__name__, **(context or {})}
            async with operation_context(
                operation, context=bound, outcome=result_outcome
            ) as op_logger:
                result = await func(*args, **kwargs)
                results.append(result)
                if log_result:
                    op_logger.debug("Operation result", result=result)
            return result

        return wrapper
    return decorator


class ContextualLogger:
    """Structured logger that stamps every record with fixed context."""

    def __init__(self, base_context: dict[str, Any] | None = None):
        self.base_context = dict(base_context or {})
        self._logger = logger.bind(**self.base_context)

    def bind(self, **context: Any) -> ContextualLogger:
        return ContextualLogger({**self.base_context, **context})

    def debug(self, message: str, **context: Any) -> None:
        self._logger.debug(message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._logger.info(message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._logger.warning(message, **context)

    def error(self, message: str, **context: Any) -> None:
        self._logger.error(message, **context)
