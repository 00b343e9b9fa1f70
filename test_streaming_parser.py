#!/usr/bin/env python3
"""
Tests for SSE frame splitting, decoding and partial-frame recovery.
"""

import json

import pytest

from gpterm.llm.exceptions import FramePrefixError, IncompleteFrameError
from gpterm.llm.models import MessageRole
from gpterm.llm.streaming.models import Delta
from gpterm.llm.streaming.parser import (
    PartialFrameBuffer,
    StreamingParser,
    decode_frame,
    is_sentinel,
    split_frames,
)


def make_frame(turn_id, content=None, role=None):
    delta = {}
    if role is not None:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    payload = {"id": turn_id, "choices": [{"delta": delta}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


DONE = "data: [DONE]\n\n"


class TestSplitFrames:
    """Test the pure frame splitter."""

    def test_splits_on_blank_line(self):
        text = make_frame("t1", "a") + make_frame("t1", "b")
        frames = split_frames(text)
        assert len(frames) == 2
        assert all(frame.startswith("data: ") for frame in frames)

    def test_drops_empty_short_and_sentinel_frames(self):
        text = "\n\n" + "data: \n\n" + "data\n\n" + DONE + make_frame("t1", "x")
        frames = split_frames(text)
        assert frames == [make_frame("t1", "x").rstrip("\n")]

    def test_is_sentinel(self):
        assert is_sentinel("data: [DONE]")
        assert is_sentinel("\ndata: [DONE]\n")
        assert not is_sentinel('data: {"id": "[DONE]"}')


class TestDecodeFrame:
    """Test decoding of a single frame."""

    def test_fields_match_source_json(self):
        frame = make_frame("chatcmpl-1", "Hi there", "assistant").rstrip("\n")
        turn_id, delta = decode_frame(frame)
        assert turn_id == "chatcmpl-1"
        assert delta == Delta(
            turn_id="chatcmpl-1",
            role=MessageRole.ASSISTANT,
            content_fragment="Hi there",
        )

    def test_role_only_delta(self):
        frame = make_frame("t1", role="assistant").rstrip("\n")
        _, delta = decode_frame(frame)
        assert delta.role is MessageRole.ASSISTANT
        assert delta.content_fragment == ""

    def test_user_role_maps_through_table(self):
        _, delta = decode_frame(make_frame("t1", "x", "user").rstrip("\n"))
        assert delta.role is MessageRole.USER

    def test_unknown_role_is_tolerated(self):
        _, delta = decode_frame(make_frame("t1", "x", "tool").rstrip("\n"))
        assert delta.role is None
        assert delta.content_fragment == "x"

    def test_empty_choices_is_noop_delta(self):
        turn_id, delta = decode_frame('data: {"id": "t9", "choices": []}')
        assert turn_id == "t9"
        assert delta == Delta(turn_id="t9")

    def test_missing_prefix_raises_prefix_error(self):
        with pytest.raises(FramePrefixError):
            decode_frame('{"id": "t1", "choices": []}')

    def test_frame_shorter_than_prefix_raises_prefix_error(self):
        with pytest.raises(FramePrefixError):
            decode_frame("dat")

    def test_truncated_json_raises_incomplete(self):
        frame = make_frame("t1", "Hello").rstrip("\n")
        with pytest.raises(IncompleteFrameError) as exc_info:
            decode_frame(frame[:25])
        assert exc_info.value.frame == frame[:25]

    def test_schema_mismatch_raises_incomplete(self):
        with pytest.raises(IncompleteFrameError):
            decode_frame('data: {"choices": []}')


class TestPartialFrameBuffer:
    """Test the carry-over buffer."""

    def test_take_and_clear(self):
        buffer = PartialFrameBuffer()
        assert buffer.take_and_clear() == ""
        buffer.append("data: {")
        buffer.append('"id"')
        assert buffer
        assert buffer.pending == 'data: {"id"'
        assert buffer.take_and_clear() == 'data: {"id"'
        assert not buffer
        assert buffer.pending == ""


class TestStreamingParser:
    """Test chunk-level parsing."""

    def test_hello_across_two_chunks(self):
        parser = StreamingParser()
        first = parser.feed(make_frame("t1", "Hel", "assistant").encode())
        second = parser.feed(make_frame("t1", "lo").encode())
        fragments = [d.content_fragment for _, d in first.deltas + second.deltas]
        assert fragments == ["Hel", "lo"]
        assert parser.finish() == ""

    def test_split_mid_json(self):
        raw = make_frame("t1", "Hello", "assistant").encode()
        middle = raw.index(b"Hel")
        parser = StreamingParser()

        first = parser.feed(raw[:middle])
        assert first.deltas == []
        assert parser.buffer.pending == raw[:middle].decode()

        second = parser.feed(raw[middle:])
        assert not parser.buffer
        assert second.deltas == [("t1", decode_frame(raw.decode().rstrip("\n"))[1])]
        assert parser.get_stats()["incomplete_frames"] == 1
        assert parser.get_stats()["decoded_frames"] == 1

    def test_split_at_every_offset_matches_unsplit(self):
        raw = (make_frame("t1", "héllo wörld", "assistant") + DONE).encode()
        expected = StreamingParser().feed(raw).deltas
        assert len(expected) == 1

        for offset in range(len(raw) + 1):
            parser = StreamingParser()
            first = parser.feed(raw[:offset])
            second = parser.feed(raw[offset:])
            assert first.deltas + second.deltas == expected, offset
            assert first.done or second.done, offset
            assert parser.finish() == "", offset

    def test_sentinel_only_chunk(self):
        parser = StreamingParser()
        result = parser.feed(DONE.encode())
        assert result.deltas == []
        assert result.done
        assert not parser.buffer

    def test_sentinel_leaves_pending_fragment_untouched(self):
        parser = StreamingParser()
        parser.feed(b'data: {"id": "t1", "choi')
        pending = parser.buffer.pending

        result = parser.feed(DONE.encode())
        assert result.deltas == []
        assert result.done
        assert parser.buffer.pending == pending
        assert parser.finish() == pending

    def test_frames_after_sentinel_are_ignored(self):
        parser = StreamingParser()
        result = parser.feed((make_frame("t1", "a") + DONE + make_frame("t1", "b")).encode())
        assert [d.content_fragment for _, d in result.deltas] == ["a"]
        assert result.done

    def test_multiple_frames_in_one_chunk_keep_order(self):
        parser = StreamingParser()
        text = "".join(make_frame("t1", part) for part in ["a", "b", "c"])
        result = parser.feed(text.encode())
        assert "".join(d.content_fragment for _, d in result.deltas) == "abc"

    def test_bad_frame_mid_chunk_does_not_stop_later_frames(self):
        parser = StreamingParser()
        text = make_frame("t1", "a") + "data: {not json}\n\n" + make_frame("t1", "b")
        result = parser.feed(text.encode())
        assert [d.content_fragment for _, d in result.deltas] == ["a", "b"]
        # The later successful decode drains the stale fragment
        assert not parser.buffer
        assert parser.get_stats()["discarded_fragments"] == 1

    def test_bad_frame_at_chunk_end_does_not_swallow_next_frame(self):
        parser = StreamingParser()
        parser.feed((make_frame("t1", "a") + "data: {oops}\n\n").encode())
        result = parser.feed(make_frame("t1", "b").encode())
        assert [d.content_fragment for _, d in result.deltas] == ["b"]
        assert not parser.buffer
        assert parser.get_stats()["discarded_fragments"] == 1

    def test_bad_frame_at_chunk_end_then_frame_split_across_chunks(self):
        raw = make_frame("t1", "b").encode()
        parser = StreamingParser()
        parser.feed(b"data: {oops}\n\n")
        first = parser.feed(raw[:20])
        second = parser.feed(raw[20:])
        assert first.deltas == []
        assert parser.buffer.pending == raw[:20].decode()
        assert [d.content_fragment for _, d in second.deltas] == ["b"]
        assert parser.get_stats()["discarded_fragments"] == 1

    def test_halt_on_decode_error_drops_rest_of_chunk(self):
        parser = StreamingParser(halt_on_decode_error=True)
        text = make_frame("t1", "a") + "data: {not json}\n\n" + make_frame("t1", "b")
        result = parser.feed(text.encode())
        assert [d.content_fragment for _, d in result.deltas] == ["a"]

    def test_comment_frames_are_skipped(self):
        parser = StreamingParser()
        result = parser.feed((": keep-alive\n\n" + make_frame("t1", "a")).encode())
        assert [d.content_fragment for _, d in result.deltas] == ["a"]
        assert parser.get_stats()["prefix_errors"] == 0

    def test_frame_without_prefix_is_skipped(self):
        parser = StreamingParser()
        result = parser.feed(("event: ping\n\n" + make_frame("t1", "a")).encode())
        assert [d.content_fragment for _, d in result.deltas] == ["a"]
        assert parser.get_stats()["prefix_errors"] == 1

    def test_multibyte_character_split_across_chunks(self):
        raw = make_frame("t1", "日本").encode()
        cut = raw.index("日".encode()) + 1
        parser = StreamingParser()
        first = parser.feed(raw[:cut])
        second = parser.feed(raw[cut:])
        assert [d.content_fragment for _, d in first.deltas + second.deltas] == ["日本"]

    def test_finish_reports_undecoded_fragment(self):
        parser = StreamingParser()
        parser.feed(b'data: {"id": "t1", "choices": [{"delta": {"content": "Hel')
        assert parser.finish().startswith('data: {"id": "t1"')
        assert parser.finish() == ""

    def test_stats_snapshot_and_reset(self):
        parser = StreamingParser()
        parser.feed(make_frame("t1", "a").encode())
        stats = parser.get_streaming_stats()
        assert stats.total_frames == 1
        assert stats.decoded_frames == 1
        parser.reset_stats()
        assert parser.get_stats()["total_frames"] == 0
