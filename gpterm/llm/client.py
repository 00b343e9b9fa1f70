"""
HTTP client for the streaming chat completions endpoint.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING, Any

import httpx

from .exceptions import (
    RateLimitError,
    RequestSerializeError,
    TransportError,
    UnauthorizedError,
)

if TYPE_CHECKING:                                        # pragma: no cover
    from gpterm.history.conversation import Conversation

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_UNAUTHORIZED = 401
HTTP_TOO_MANY_REQUESTS = 429

COMPLETIONS_PATH = "/chat/completions"

# Longest error body excerpt kept on a TransportError
MAX_ERROR_BODY = 500


def _parse_retry_after(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class LLMClient:
    """HTTP client that opens streaming completion requests."""

    def __init__(
        self,
        config: dict[str, Any],
        api_key: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        # Validate required configuration parameters
        required_keys = ["base_url", "model"]
        for key in required_keys:
            if key not in config:
                raise ValueError(
                    f"Required LLM configuration parameter '{key}' not found. "
                    "All LLM parameters must be explicitly configured."
                )

        http_config = config.get("http_client", {})
        timeout = httpx.Timeout(
            connect=http_config.get("connect_timeout", 10.0),
            read=http_config.get("read_timeout", 60.0),
            write=http_config.get("write_timeout", 10.0),
            pool=http_config.get("pool_timeout", 10.0),
        )

        self.config: dict[str, Any] = config
        self.model: str = config["model"]
        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=config["base_url"],
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def build_request_body(self, conversation: Conversation) -> bytes:
        """
        Encode the outbound request body.

        Raises:
            RequestSerializeError: The conversation cannot be encoded as UTF-8 JSON.
        """
        payload = {
            "model": self.model,
            "messages": conversation.to_wire(),
            "stream": True,
        }
        try:
            return json.dumps(payload, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise RequestSerializeError(
                f"Could not serialize request body: {e}", model=self.model
            ) from e

    async def open_stream(
        self, conversation: Conversation
    ) -> AsyncGenerator[bytes]:
        """
        Post the conversation and yield raw response chunks as they arrive.

        The body is encoded before any connection is made, so a serialization
        failure never reaches the network.

        Raises:
            RequestSerializeError: The request body could not be encoded.
            UnauthorizedError: The endpoint answered 401.
            RateLimitError: The endpoint answered 429.
            TransportError: Any other status or network failure.
        """
        body = self.build_request_body(conversation)

        try:
            async with self.client.stream(
                "POST", COMPLETIONS_PATH, content=body
            ) as response:
                if response.status_code != HTTP_OK:
                    error_text = (await response.aread()).decode(
                        "utf-8", errors="replace"
                    )
                    raise self._status_error(response, error_text)

                logger.debug(
                    f"Streaming response opened: "
                    f"content-type={response.headers.get('content-type', '')}"
                )
                async for chunk in response.aiter_bytes():
                    yield chunk

        except httpx.HTTPError as e:
            logger.error(f"HTTP error during streaming: {e}")
            raise TransportError(
                f"HTTP error: {e!s}", model=self.model
            ) from e

    def _status_error(
        self, response: httpx.Response, error_text: str
    ) -> TransportError:
        """Map a non-200 response to the transport error taxonomy."""
        status = response.status_code
        excerpt = error_text[:MAX_ERROR_BODY]
        context = {
            "model": self.model,
            "status_code": status,
            "response_data": {"body": excerpt},
        }

        if status == HTTP_UNAUTHORIZED:
            return UnauthorizedError("Unauthorized: API key rejected", **context)
        if status == HTTP_TOO_MANY_REQUESTS:
            return RateLimitError(
                "Rate limit or quota exceeded",
                retry_after=_parse_retry_after(response.headers.get("retry-after")),
                **context,
            )
        return TransportError(f"Streaming API error {status}: {excerpt}", **context)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
