"""
Streaming functionality for the LLM client.

This package contains:
- SSE frame splitting and decoding
- Partial-frame buffering across chunk boundaries
"""

from __future__ import annotations

from .models import ChunkResult, Delta, StreamingStats
from .parser import (
    PartialFrameBuffer,
    StreamingParser,
    decode_frame,
    is_sentinel,
    split_frames,
)

__all__ = [
    "ChunkResult",
    "Delta",
    "PartialFrameBuffer",
    "StreamingParser",
    "StreamingStats",
    "decode_frame",
    "is_sentinel",
    "split_frames",
]
