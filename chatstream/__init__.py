"""Streaming chat-completions client with reasoning-aware decoding."""

__version__ = "0.1.0"
