"""
Server-Sent Events transport for streamed chat completions.

``EventSourceClient`` is a small SSE client that POSTs a JSON body and frames
the response into events. ``handle_sse_stream`` drives it in a background
task and hands the caller a ``StreamHandle`` straight away.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, AsyncIterable, Callable, Iterable
from typing import TYPE_CHECKING, Any

import httpx

from chatstream.logging_utils import StreamErrorHandler, operation_context

from ..cancellation import CancellationToken
from ..client import COMPLETIONS_PATH, ChatCompletionsClient
from ..exceptions import StreamingError
from .models import SSEEvent, StreamOutcome
from .session import (
    CompleteCallback,
    StreamSession,
    TextCallback,
    resolve_streaming_options,
)

if TYPE_CHECKING:
    from chatstream.config import Configuration

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"

_background_tasks: set[asyncio.Task[None]] = set()


async def parse_sse_lines(lines: AsyncIterable[str]) -> AsyncGenerator[SSEEvent]:
    """
    Frame decoded lines into events.

    Events are dispatched on blank lines. Multiple ``data`` fields are joined
    with newlines, ``:`` lines are comments, and unknown fields are ignored.
    An event still open when the lines run out is dispatched at the end.
    """
    event_type = "message"
    data_lines: list[str] = []
    event_id = ""
    retry: int | None = None

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")

        if not line:
            if data_lines:
                yield SSEEvent(
                    data="\n".join(data_lines),
                    event=event_type,
                    id=event_id,
                    retry=retry,
                )
            event_type = "message"
            data_lines = []
            continue

        if line.startswith(":"):
            continue

        field_name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field_name == "event":
            event_type = value
        elif field_name == "data":
            data_lines.append(value)
        elif field_name == "id":
            if "\0" not in value:
                event_id = value
        elif field_name == "retry":
            if value.isdigit():
                retry = int(value)

    if data_lines:
        yield SSEEvent(
            data="\n".join(data_lines), event=event_type, id=event_id, retry=retry
        )


class EventSourceClient:
    """SSE client over a shared ``httpx.AsyncClient``."""

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    @staticmethod
    def _check_response(response: httpx.Response) -> None:
        if not response.is_success:
            raise StreamingError(
                f"Streaming API error {response.status_code}",
                status_code=response.status_code,
            )
        content_type = response.headers.get("content-type", "")
        if EVENT_STREAM_CONTENT_TYPE not in content_type:
            raise StreamingError(
                f"Expected streaming response, got content-type: {content_type}"
            )

    async def stream_events(
        self, url: str, *, json_body: dict[str, Any]
    ) -> AsyncGenerator[SSEEvent]:
        """POST ``json_body`` and yield events until the server closes."""
        async with self.http_client.stream(
            "POST",
            url,
            json=json_body,
            headers={"Accept": EVENT_STREAM_CONTENT_TYPE},
        ) as response:
            self._check_response(response)
            async for event in parse_sse_lines(response.aiter_lines()):
                yield event

    async def connect(
        self,
        url: str,
        *,
        json_body: dict[str, Any],
        on_message: Callable[[SSEEvent], None],
        on_close: Callable[[], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        cancellation: CancellationToken | None = None,
    ) -> None:
        """
        Push events to ``on_message`` until close, error or cancellation.

        ``on_close`` runs when the server ends the stream. ``on_error`` runs
        on any transport failure; without it the error propagates. Once
        ``cancellation`` is cancelled the connection is dropped quietly.
        """
        events = self.stream_events(url, json_body=json_body)
        try:
            async for event in events:
                on_message(event)
                if cancellation is not None and cancellation.cancelled:
                    return
        except Exception as e:
            if on_error is None:
                raise
            on_error(e)
            return
        finally:
            await events.aclose()

        if on_close is not None:
            on_close()


class StreamHandle:
    """Caller-owned handle for a background SSE stream."""

    def __init__(self, session: StreamSession, task: asyncio.Task[None]):
        self.session = session
        self._task = task

    @property
    def cancellation(self) -> CancellationToken:
        return self.session.cancellation

    @property
    def outcome(self) -> StreamOutcome | None:
        return self.session.outcome

    @property
    def error(self) -> BaseException | None:
        return self.session.error

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self, reason: str | None = "cancelled by caller") -> None:
        """Abort the stream; no text is delivered afterwards."""
        self.session.cancel(reason)

    async def wait(self) -> StreamOutcome | None:
        """Wait for the stream task to end and return the outcome."""
        await asyncio.wait([self._task])
        if not self._task.cancelled() and self._task.exception() is not None:
            raise self._task.exception()
        return self.session.outcome


def _abort_task(task: asyncio.Task[None]) -> Callable[[], None]:
    # Aborts raised from inside the task are handled by EventSourceClient.connect
    def abort() -> None:
        if task is not asyncio.current_task() and not task.done():
            task.cancel()
    return abort


def _finish_on_done(
    session: StreamSession, client: ChatCompletionsClient, *, owns_client: bool
) -> Callable[[asyncio.Task[None]], None]:
    def finish(task: asyncio.Task[None]) -> None:
        # A task cancelled before its first step never reaches its finally
        if owns_client and not client.client.is_closed:
            cleanup = asyncio.get_running_loop().create_task(client.aclose())
            _background_tasks.add(cleanup)
            cleanup.add_done_callback(_background_tasks.discard)
        if session.completed:
            return
        if task.cancelled() or session.cancellation.cancelled:
            session.finish(StreamOutcome.CANCELLED)
        elif task.exception() is not None:
            session.finish(StreamOutcome.FAILED, task.exception())
        else:
            session.finish(StreamOutcome.COMPLETED)
    return finish


async def _run_sse_session(
    session: StreamSession,
    client: ChatCompletionsClient,
    json_body: dict[str, Any],
    *,
    owns_client: bool,
) -> None:
    def on_message(event: SSEEvent) -> None:
        if not session.active:
            return
        payload = session.parse_record(event.data)
        if payload is None:
            return
        if payload.is_terminal:
            session.finish(StreamOutcome.DONE)
            session.cancel("stream done")
            return
        for text in session.process_payload(payload):
            if not session.deliver(text):
                break

    def on_close() -> None:
        session.log.info("Connection closed")
        session.finish(StreamOutcome.COMPLETED)

    def on_error(error: Exception) -> None:
        session.log.error(
            "SSE connection error",
            error_type=type(error).__name__,
            error_category=StreamErrorHandler.classify_error(error),
            error_message=str(error),
        )
        session.finish(StreamOutcome.FAILED, error)
        session.cancel("connection error")

    def current_outcome() -> str | None:
        if session.outcome is None and session.cancellation.cancelled:
            return StreamOutcome.CANCELLED.value
        return session.outcome_name

    context = {"model": session.model_id, "session_id": session.session_id}
    try:
        async with operation_context(
            "sse_stream", context=context, outcome=current_outcome
        ):
            await EventSourceClient(client.client).connect(
                COMPLETIONS_PATH,
                json_body=json_body,
                on_message=on_message,
                on_close=on_close,
                on_error=on_error,
                cancellation=session.cancellation,
            )
    except asyncio.CancelledError:
        if not session.cancellation.cancelled:
            session.finish(StreamOutcome.CANCELLED)
            raise
        session.log.info("Stream was stopped by user")
    finally:
        if session.cancellation.cancelled:
            session.finish(StreamOutcome.CANCELLED)
        else:
            session.finish(StreamOutcome.COMPLETED)
        if owns_client:
            await client.aclose()


def handle_sse_stream(
    user_message: str,
    model_id: str,
    on_text: TextCallback,
    on_complete: CompleteCallback | None = None,
    *,
    client: ChatCompletionsClient | None = None,
    config: Configuration | None = None,
    reasoning_models: Iterable[str] | None = None,
    marker: str | None = None,
) -> StreamHandle:
    """
    Start an SSE chat-completions stream and return its handle immediately.

    Must be called while an event loop is running. The connection runs in a
    background task; ``on_text`` receives text events in arrival order and
    ``on_complete`` fires exactly once however the stream ends.

    Args:
        user_message: Sent as the sole user turn
        model_id: Model to request; decides whether reasoning deltas apply
        on_text: Receives each text event
        on_complete: Completion callback
        client: Client to use; built from ``config`` when omitted
        config: Configuration for the client and streaming defaults
        reasoning_models: Overrides the configured reasoning models
        marker: Overrides the configured boundary marker

    Returns:
        StreamHandle for cancelling and awaiting the stream
    """
    owns_client = client is None
    if config is None and (
        client is None or reasoning_models is None or marker is None
    ):
        from chatstream.config import Configuration

        config = Configuration()

    reasoning_models, marker = resolve_streaming_options(
        config, reasoning_models, marker
    )
    if client is None:
        client = ChatCompletionsClient.from_configuration(config)

    session = StreamSession(
        model_id,
        on_text,
        on_complete,
        reasoning_models=reasoning_models,
        marker=marker,
    )
    json_body = client.build_request(user_message, model_id).model_dump()

    task = asyncio.get_running_loop().create_task(
        _run_sse_session(session, client, json_body, owns_client=owns_client)
    )
    session.cancellation.add_callback(_abort_task(task))
    task.add_done_callback(
        _finish_on_done(session, client, owns_client=owns_client)
    )
    return StreamHandle(session, task)
