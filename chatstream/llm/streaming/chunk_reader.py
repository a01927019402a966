"""
Decoder for ``data: <json>`` records read from a pull-based byte stream.

The reader hands out raw byte buffers with no regard for character or line
boundaries, so bytes are decoded incrementally and partial lines are carried
over to the next read.
"""

from __future__ import annotations

import asyncio
import codecs
from collections.abc import AsyncGenerator, Iterable
from typing import TYPE_CHECKING, Protocol

import httpx

from chatstream.logging_utils import StreamErrorHandler, log_operation

from ..cancellation import CancellationToken
from ..exceptions import StreamAbortedError
from .models import ReadResult, StreamOutcome
from .session import (
    CompleteCallback,
    StreamSession,
    TextCallback,
    resolve_streaming_options,
)

if TYPE_CHECKING:
    from chatstream.config import Configuration

DATA_PREFIX = "data: "


class ByteStreamReader(Protocol):
    """Pull-based byte source."""

    async def read(self) -> ReadResult: ...

    def cancel(self) -> None: ...


class HttpxByteReader:
    """Adapts a streaming ``httpx.Response`` to ``ByteStreamReader``."""

    def __init__(self, response: httpx.Response, chunk_size: int | None = None):
        self._response = response
        self._iterator = response.aiter_bytes(chunk_size)
        self._pending: asyncio.Task[bytes | None] | None = None
        self._aborted = False

    async def _next_chunk(self) -> bytes | None:
        try:
            return await anext(self._iterator)
        except StopAsyncIteration:
            return None

    async def read(self) -> ReadResult:
        if self._aborted:
            raise StreamAbortedError("reader cancelled")

        self._pending = asyncio.ensure_future(self._next_chunk())
        try:
            value = await self._pending
        except asyncio.CancelledError:
            if self._aborted:
                raise StreamAbortedError("reader cancelled") from None
            raise
        finally:
            self._pending = None

        if value is None:
            return ReadResult(done=True)
        return ReadResult(done=False, value=value)

    def cancel(self) -> None:
        """Abort the pending read, if any; later reads raise."""
        self._aborted = True
        if self._pending is not None:
            self._pending.cancel()


class ChunkReaderDecoder:
    """Turns a byte reader into an ordered sequence of text events."""

    def __init__(self, reader: ByteStreamReader, session: StreamSession):
        self.reader = reader
        self.session = session
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        session.cancellation.add_callback(reader.cancel)

    def _split_lines(self, text: str, *, final: bool = False) -> list[str]:
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        if final and self._buffer:
            lines.append(self._buffer)
            self._buffer = ""
        return [line.removesuffix("\r") for line in lines]

    def _process_line(self, line: str) -> list[str]:
        if not line.startswith(DATA_PREFIX):
            return []
        # [DONE] classifies to nothing; end-of-stream ends the loop
        return self.session.process_record(line[len(DATA_PREFIX):])

    async def iter_text(self) -> AsyncGenerator[str]:
        """Yield text events until end-of-stream or cancellation."""
        while not self.session.cancellation.cancelled:
            result = await self.reader.read()
            if result.done:
                tail = self._decoder.decode(b"", final=True)
                lines = self._split_lines(tail, final=True)
            else:
                lines = self._split_lines(self._decoder.decode(result.value))

            for line in lines:
                for text in self._process_line(line):
                    if self.session.cancellation.cancelled:
                        return
                    yield text

            if result.done:
                return

    async def run(self) -> StreamSession:
        """Deliver every text event to the session; always finishes it."""
        session = self.session
        outcome = StreamOutcome.COMPLETED
        error: BaseException | None = None
        try:
            async for text in self.iter_text():
                session.deliver(text)
        except StreamAbortedError:
            session.log.info("Stream was stopped by user")
            outcome = StreamOutcome.CANCELLED
        except asyncio.CancelledError:
            session.log.info("Stream task cancelled")
            outcome = StreamOutcome.CANCELLED
            raise
        except Exception as e:
            session.log.error(
                "Stream error",
                error_type=type(e).__name__,
                error_category=StreamErrorHandler.classify_error(e),
                error_message=str(e),
            )
            outcome = StreamOutcome.FAILED
            error = e
        finally:
            if session.cancellation.cancelled:
                outcome = StreamOutcome.CANCELLED
            session.finish(outcome, error)
        return session


@log_operation("fetch_stream", outcome=lambda session: session.outcome_name)
async def handle_fetch_stream(
    reader: ByteStreamReader,
    on_text: TextCallback,
    on_complete: CompleteCallback | None = None,
    model_id: str = "",
    *,
    cancellation: CancellationToken | None = None,
    config: Configuration | None = None,
    reasoning_models: Iterable[str] | None = None,
    marker: str | None = None,
) -> StreamSession:
    """
    Decode a byte stream and push text events to ``on_text``.

    Args:
        reader: Pull-based byte reader positioned at the response body
        on_text: Receives each text event in arrival order
        on_complete: Fires exactly once when the stream ends for any reason
        model_id: Model in use; decides whether reasoning deltas apply
        cancellation: Handle the caller keeps to abort the stream
        config: Supplies the configured reasoning models and marker
        reasoning_models: Overrides the models that speak the reasoning
            sub-protocol
        marker: Overrides the text emitted where reasoning hands over to
            the answer

    Returns:
        The finished session, carrying outcome, error and stats
    """
    reasoning_models, marker = resolve_streaming_options(
        config, reasoning_models, marker
    )
    session = StreamSession(
        model_id,
        on_text,
        on_complete,
        cancellation=cancellation,
        reasoning_models=reasoning_models,
        marker=marker,
    )
    return await ChunkReaderDecoder(reader, session).run()
