"""
SSE frame parser with partial-frame recovery.

Chunks of the response body are cut into event frames on the blank-line
delimiter. A frame that does not decode is assumed to be truncated by the
chunk boundary: it is held in a buffer and prepended to the first frame of
the next chunk.
"""

from __future__ import annotations

import codecs
import logging

from pydantic import ValidationError

from ..exceptions import FramePrefixError, IncompleteFrameError
from ..models import CompletionChunk, role_from_wire
from .models import ChunkResult, Delta, StreamingStats

logger = logging.getLogger(__name__)

# Wire framing constants
FRAME_DELIMITER = "\n\n"
PAYLOAD_PREFIX = "data: "
SENTINEL_PAYLOAD = "[DONE]"
SENTINEL_FRAME = PAYLOAD_PREFIX + SENTINEL_PAYLOAD
COMMENT_MARKER = ":"

# Longest frame excerpt written to the log
MAX_LOGGED_FRAME = 120


def is_sentinel(frame: str) -> bool:
    """Check whether a raw frame is the end-of-stream marker."""
    return frame.strip("\r\n") == SENTINEL_FRAME


def split_frames(text: str) -> list[str]:
    """
    Split decoded chunk text into raw frame candidates.

    Frames that are empty, no longer than the payload prefix, or equal to the
    sentinel are dropped. Leading line breaks left over from a delimiter that
    straddled two chunks are removed.
    """
    frames = []
    for raw_frame in text.split(FRAME_DELIMITER):
        frame = raw_frame.lstrip("\r\n")
        if len(frame) <= len(PAYLOAD_PREFIX) or is_sentinel(frame):
            continue
        frames.append(frame)
    return frames


def decode_frame(frame: str) -> tuple[str, Delta]:
    """
    Decode one raw frame into its turn id and delta.

    Raises:
        FramePrefixError: The frame does not carry the payload prefix.
        IncompleteFrameError: The payload is not a valid completion chunk.
    """
    if len(frame) < len(PAYLOAD_PREFIX) or not frame.startswith(PAYLOAD_PREFIX):
        raise FramePrefixError(
            f"Frame does not start with {PAYLOAD_PREFIX!r}", frame=frame
        )

    payload = frame[len(PAYLOAD_PREFIX):]
    try:
        chunk = CompletionChunk.model_validate_json(payload)
    except ValidationError as e:
        raise IncompleteFrameError(
            f"Could not decode frame payload ({e.error_count()} errors)",
            frame=frame,
        ) from e

    if not chunk.choices:
        logger.debug(f"Frame for turn {chunk.id} has no choices, using empty delta")
        return chunk.id, Delta(turn_id=chunk.id)

    choice_delta = chunk.choices[0].delta
    role = role_from_wire(choice_delta.role)
    if choice_delta.role is not None and role is None:
        logger.warning(
            f"Unknown role {choice_delta.role!r} in turn {chunk.id}, ignoring it"
        )

    return chunk.id, Delta(
        turn_id=chunk.id,
        role=role,
        content_fragment=choice_delta.content or "",
    )


class PartialFrameBuffer:
    """Holds the undecoded fragment carried over to the next chunk."""

    def __init__(self) -> None:
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def take_and_clear(self) -> str:
        """Return the pending fragment and empty the buffer."""
        fragment, self._pending = self._pending, ""
        return fragment

    def append(self, fragment: str) -> None:
        """Concatenate unparsed text onto the pending fragment."""
        self._pending += fragment

    def __bool__(self) -> bool:
        return bool(self._pending)


def _excerpt(frame: str) -> str:
    if len(frame) <= MAX_LOGGED_FRAME:
        return frame
    return frame[:MAX_LOGGED_FRAME] + "..."


def _after_carried(frame: str, carried: str) -> str | None:
    """Return the text that follows a carried fragment, if there is any."""
    if not carried or not frame.startswith(carried):
        return None
    fresh = frame[len(carried):].lstrip("\r\n")
    return fresh or None


class StreamingParser:
    """Turns raw response chunks into ordered deltas for one response stream."""

    def __init__(self, halt_on_decode_error: bool = False):
        self.halt_on_decode_error = halt_on_decode_error
        self.buffer = PartialFrameBuffer()
        self._held_terminated = False
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.stats = {
            'total_frames': 0,
            'decoded_frames': 0,
            'incomplete_frames': 0,
            'prefix_errors': 0,
            'discarded_fragments': 0,
        }

    def feed(self, chunk: bytes) -> ChunkResult:
        """
        Process one chunk of the response body.

        Chunks must be fed in arrival order. Once the sentinel is seen the
        result is marked done and anything after it in the chunk is ignored.
        """
        text = self._decoder.decode(chunk)
        if not text:
            return ChunkResult()

        pieces = text.split(FRAME_DELIMITER)

        # A sentinel can never complete a truncated frame, so the buffer is
        # left as it is for the end-of-stream report.
        carried = ""
        carried_complete = False
        if self.buffer and not is_sentinel(pieces[0]):
            carried_complete = self._held_terminated
            carried = self.buffer.take_and_clear()
            pieces[0] = carried + pieces[0]

        done = False
        tail = ""
        for index, piece in enumerate(pieces):
            if is_sentinel(piece):
                done = True
                pieces = pieces[:index]
                break
        else:
            tail = pieces.pop()

        deltas: list[tuple[str, Delta]] = []
        halted = False
        for frame in split_frames(FRAME_DELIMITER.join(pieces)):
            decoded = self._decode_into(
                frame, deltas, terminated=True,
                carried=carried, carried_complete=carried_complete,
            )
            carried = ""
            if not decoded and self.halt_on_decode_error:
                halted = True
                break

        if tail and not halted:
            frame = tail.lstrip("\r\n")
            if frame:
                self._decode_into(
                    frame, deltas, terminated=False,
                    carried=carried, carried_complete=carried_complete,
                )
        elif halted:
            logger.warning("Stopped processing chunk after undecodable frame")

        return ChunkResult(deltas=deltas, done=done)

    def _decode_into(
        self,
        frame: str,
        deltas: list[tuple[str, Delta]],
        terminated: bool,
        carried: str = "",
        carried_complete: bool = False,
    ) -> bool:
        """
        Decode a frame, appending to deltas; False when it went to the buffer.

        ``carried`` is the fragment taken from the buffer and glued to the
        front of the frame. When the joined text does not decode, the text
        after it is tried on its own. ``carried_complete`` marks a fragment
        that was delimiter-terminated when held: such a fragment can never be
        completed, so it is dropped even if the rest fails too.
        """
        self.stats['total_frames'] += 1
        try:
            turn_id, delta = decode_frame(frame)
        except (FramePrefixError, IncompleteFrameError) as e:
            fresh = _after_carried(frame, carried)
            if fresh is None:
                return self._reject(frame, e, terminated)
            try:
                turn_id, delta = decode_frame(fresh)
            except (FramePrefixError, IncompleteFrameError) as fresh_error:
                if not carried_complete:
                    return self._reject(frame, e, terminated)
                self._discard(carried)
                return self._reject(fresh, fresh_error, terminated)
            self._discard(carried)

        if self.buffer:
            self._discard(self.buffer.take_and_clear())

        self.stats['decoded_frames'] += 1
        deltas.append((turn_id, delta))
        return True

    def _reject(self, frame: str, error: Exception, terminated: bool) -> bool:
        if isinstance(error, FramePrefixError) and terminated:
            if not frame.startswith(COMMENT_MARKER):
                self.stats['prefix_errors'] += 1
                logger.warning(f"Skipping frame without payload prefix: {_excerpt(frame)!r}")
            return True

        # Unterminated text may be a prefix cut short by the chunk boundary
        logger.debug(f"{error}; holding {len(frame)} chars for the next chunk")
        self._hold(frame, terminated)
        return False

    def _hold(self, frame: str, terminated: bool) -> None:
        # Frames of one chunk are unrelated, only the newest one is kept
        if self.buffer:
            self._discard(self.buffer.take_and_clear())
        self.stats['incomplete_frames'] += 1
        self.buffer.append(frame)
        self._held_terminated = terminated

    def _discard(self, fragment: str) -> None:
        self.stats['discarded_fragments'] += 1
        logger.warning(f"Discarding undecodable fragment: {_excerpt(fragment)!r}")

    def finish(self) -> str:
        """
        Close the stream and return any fragment that never decoded.

        An empty string means the stream ended cleanly.
        """
        remainder = self._decoder.decode(b"", final=True)
        if remainder.strip():
            self.buffer.append(remainder)

        fragment = self.buffer.take_and_clear()
        if fragment:
            logger.error(
                f"Malformed stream: {len(fragment)} chars never decoded: "
                f"{_excerpt(fragment)!r}"
            )
        return fragment

    def get_stats(self) -> dict[str, int]:
        """Get streaming statistics for monitoring."""
        return self.stats.copy()

    def get_streaming_stats(self) -> StreamingStats:
        """Snapshot the counters as a StreamingStats record."""
        return StreamingStats(**self.stats)

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        self.stats = {
            'total_frames': 0,
            'decoded_frames': 0,
            'incomplete_frames': 0,
            'prefix_errors': 0,
            'discarded_fragments': 0,
        }
