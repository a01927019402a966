"""Cooperative cancellation handle for in-flight streams.

A ``CancellationToken`` is created per stream session and handed to the caller.
Cancelling it flips the cancelled flag and runs every registered abort callback
once, which is how the underlying transport gets closed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from .exceptions import StreamAbortedError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Single-shot cancellation flag with abort callbacks."""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None
        self._callbacks: list[Callable[[], object]] = []

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._cancelled

    @property
    def reason(self) -> str | None:
        """Reason string supplied at cancel time (if any)."""
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation and run abort callbacks (idempotent)."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning("Abort callback failed: %s", e)

    def add_callback(self, callback: Callable[[], object]) -> None:
        """Register an abort callback; runs immediately if already cancelled."""
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def raise_if_cancelled(self) -> None:
        """Raise ``StreamAbortedError`` if the token is cancelled."""
        if self._cancelled:
            raise StreamAbortedError(self._reason)

    def __repr__(self) -> str:
        return (
            f"CancellationToken(cancelled={self._cancelled}, "
            f"reason={self._reason!r})"
        )
