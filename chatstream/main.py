"""
Command-line entry point: stream one chat reply to stdout.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

from chatstream.config import Configuration
from chatstream.llm.cancellation import CancellationToken
from chatstream.llm.client import ChatCompletionsClient
from chatstream.llm.exceptions import StreamingError
from chatstream.llm.streaming.chunk_reader import handle_fetch_stream
from chatstream.llm.streaming.event_source import handle_sse_stream
from chatstream.llm.streaming.models import StreamOutcome


def write_text(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def install_signal_handlers(cancellation: CancellationToken) -> None:
    """Cancel the stream on SIGINT/SIGTERM."""
    if sys.platform == "win32":
        return

    def signal_handler() -> None:
        logging.info("Received shutdown signal, stopping stream...")
        cancellation.cancel("interrupted")

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)


async def run_fetch(
    config: Configuration, user_message: str, model: str
) -> StreamOutcome | None:
    cancellation = CancellationToken()
    install_signal_handlers(cancellation)

    async with ChatCompletionsClient.from_configuration(config) as client:
        async with client.open_stream(user_message, model) as reader:
            session = await handle_fetch_stream(
                reader,
                write_text,
                None,
                model,
                cancellation=cancellation,
                config=config,
            )
    return session.outcome


async def run_sse(
    config: Configuration, user_message: str, model: str
) -> StreamOutcome | None:
    handle = handle_sse_stream(user_message, model, write_text, config=config)
    install_signal_handlers(handle.cancellation)
    return await handle.wait()


async def main(argv: list[str] | None = None) -> int:
    """Stream a reply to the message given on the command line (or stdin)."""
    config = Configuration()
    logging.basicConfig(
        level=config.get_logging_config().get("level", "INFO"),
        format="%(asctime)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    args = sys.argv[1:] if argv is None else argv
    user_message = " ".join(args) if args else sys.stdin.read().strip()
    if not user_message:
        logging.error("No message given")
        return 2

    model = config.selected_model
    transport = config.get_streaming_config()["transport"]
    logging.info(f"Streaming from {model} over {transport}")

    try:
        if transport == "sse":
            outcome = await run_sse(config, user_message, model)
        else:
            outcome = await run_fetch(config, user_message, model)
    except StreamingError as e:
        logging.error(f"Could not open stream: {e}")
        return 1

    write_text("\n")
    return 1 if outcome is StreamOutcome.FAILED else 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
