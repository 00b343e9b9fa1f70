"""
Streaming-specific dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..models import MessageRole


@dataclass(frozen=True)
class Delta:
    """One decoded unit of streamed assistant output."""
    turn_id: str
    role: MessageRole | None = None
    content_fragment: str = ""


@dataclass(frozen=True)
class ChunkResult:
    """Deltas recovered from one byte chunk, in frame order."""
    deltas: list[tuple[str, Delta]] = field(default_factory=list)
    done: bool = False


@dataclass(frozen=True)
class StreamingStats:
    """Counters for one parsed stream."""
    total_frames: int
    decoded_frames: int
    incomplete_frames: int
    prefix_errors: int
    discarded_fragments: int
