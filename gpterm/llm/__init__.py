"""
LLM integration for the streaming chat endpoint.

This package provides:
- Message and wire models with an explicit role mapping
- The HTTP transport for streamed completions
- Error types for transport, serialization and streaming failures
"""

from __future__ import annotations

from .client import LLMClient
from .exceptions import (
    FramePrefixError,
    IncompleteFrameError,
    LLMError,
    RateLimitError,
    RequestSerializeError,
    StreamingError,
    TransportError,
    UnauthorizedError,
)
from .models import Message, MessageRole

__all__ = [
    # Exceptions
    "FramePrefixError",
    "IncompleteFrameError",
    # Client
    "LLMClient",
    "LLMError",
    # Core models
    "Message",
    "MessageRole",
    "RateLimitError",
    "RequestSerializeError",
    "StreamingError",
    "TransportError",
    "UnauthorizedError",
]
