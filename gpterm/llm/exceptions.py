"""
Error handling for LLM operations.

Three families of failures are modelled:
- Transport failures (unauthorized, rate limited, anything else) that abort a turn
- Request serialization failures raised before any network call
- Frame-level streaming failures that never leave the stream parser
"""

from __future__ import annotations


class LLMError(Exception):
    """Base LLM error with rich context."""

    def __init__(
        self,
        message: str,
        model: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.model = model
        self.status_code = status_code
        self.response_data = response_data or {}


class TransportError(LLMError):
    """Network or service fault while opening or reading the response stream."""
    pass


class UnauthorizedError(TransportError):
    """The bearer token was rejected."""
    pass


class RateLimitError(TransportError):
    """Rate limit error with retry information."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class RequestSerializeError(LLMError):
    """The outbound request body could not be encoded."""
    pass


class StreamingError(LLMError):
    """Streaming-specific errors."""
    pass


class FramePrefixError(StreamingError):
    """Frame is shorter than, or does not start with, the payload prefix."""

    def __init__(self, message: str, frame: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.frame = frame


class IncompleteFrameError(StreamingError):
    """Frame payload could not be decoded; assumed truncated."""

    def __init__(self, message: str, frame: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.frame = frame
