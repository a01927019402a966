"""
Request models for the chat-completions endpoint.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

Role = Literal["system", "user", "assistant"]


class ChatMessage(BaseModel):
    """OpenAI-compatible message."""
    role: Role = "user"
    content: str


class ChatCompletionRequest(BaseModel):
    """Body of a streamed chat-completions POST."""
    model: str = Field(min_length=1)
    messages: list[ChatMessage]
    stream: bool = True

    @classmethod
    def single_turn(cls, user_message: str, model: str) -> ChatCompletionRequest:
        """The user message as the sole conversation turn."""
        return cls(
            model=model,
            messages=[ChatMessage(role="user", content=user_message)],
        )
