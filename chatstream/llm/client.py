"""
HTTP client for the streamed chat-completions endpoint.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import httpx

from chatstream.logging_utils import StreamErrorHandler

from .exceptions import StreamingError
from .models import ChatCompletionRequest
from .streaming.chunk_reader import HttpxByteReader

if TYPE_CHECKING:
    from chatstream.config import Configuration

COMPLETIONS_PATH = "/chat/completions"


class ChatCompletionsClient:
    """Opens streamed chat-completions requests with bearer authorization."""

    def __init__(
        self,
        config: dict[str, Any],
        api_key: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        # Validate required configuration parameters
        required_keys = ["base_url", "model", "http_client"]
        for key in required_keys:
            if key not in config:
                raise ValueError(
                    f"Required LLM configuration parameter '{key}' not found. "
                    "All LLM parameters must be explicitly configured."
                )

        http_config = config["http_client"]
        self.config: dict[str, Any] = config
        self.provider: str = config.get("name", "unknown")
        self.model: str = config["model"]
        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=config["base_url"],
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=httpx.Timeout(
                connect=http_config["connect_timeout"],
                read=http_config["read_timeout"],
                write=http_config["write_timeout"],
                pool=http_config["pool_timeout"],
            ),
            transport=transport,
        )

    @classmethod
    def from_configuration(
        cls,
        configuration: Configuration,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ChatCompletionsClient:
        """Build a client for the active provider."""
        llm_config = {
            **configuration.get_llm_config(),
            "http_client": configuration.get_http_client_config(),
            "model": configuration.selected_model,
        }
        return cls(llm_config, configuration.llm_api_key, transport=transport)

    def build_request(
        self, user_message: str, model: str | None = None
    ) -> ChatCompletionRequest:
        return ChatCompletionRequest.single_turn(user_message, model or self.model)

    @asynccontextmanager
    async def open_stream(
        self, user_message: str, model: str | None = None
    ) -> AsyncIterator[HttpxByteReader]:
        """
        POST a streamed request and yield a reader over the response body.

        Raises:
            StreamingError: If the request fails or the status is not 2xx.
        """
        request = self.build_request(user_message, model)
        try:
            async with self.client.stream(
                "POST", COMPLETIONS_PATH, json=request.model_dump()
            ) as response:
                if not response.is_success:
                    error_text = await response.aread()
                    raise StreamingError(
                        f"Streaming API error {response.status_code}: "
                        f"{error_text.decode('utf-8', errors='replace')}",
                        provider=self.provider,
                        model=request.model,
                        status_code=response.status_code,
                    )
                yield HttpxByteReader(response)
        except httpx.HTTPError as e:
            raise StreamErrorHandler.create_stream_error(
                e,
                "open_stream",
                provider=self.provider,
                model=request.model,
            ) from e

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> ChatCompletionsClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
