"""Tests for event-stream frame selection."""

import pytest

from parley.mcp.transport import FrameError, iter_frames, select_response


def _body(*frames: str) -> str:
    return "".join(f"event: message\ndata: {frame}\n\n" for frame in frames)


class TestIterFrames:
    def test_each_data_line_is_a_frame(self):
        frames = list(iter_frames("data: a\ndata: b\n\ndata: c\n"))
        assert [f.data for f in frames] == ["a", "b", "c"]
        assert [f.index for f in frames] == [0, 1, 2]

    def test_event_and_id_fields_attach_until_blank_line(self):
        frames = list(iter_frames("event: message\nid: 7\ndata: x\n\ndata: y\n"))
        assert (frames[0].event, frames[0].id) == ("message", "7")
        assert (frames[1].event, frames[1].id) == (None, None)

    def test_comments_skipped(self):
        frames = list(iter_frames(": keepalive\ndata: {}\n"))
        assert [f.data for f in frames] == ["{}"]

    def test_crlf_line_endings(self):
        frames = list(iter_frames("data: one\r\n\r\ndata: two\r\n"))
        assert [f.data for f in frames] == ["one", "two"]

    def test_empty_body_has_no_frames(self):
        assert list(iter_frames("")) == []


class TestSelectResponse:
    def test_single_frame(self):
        body = _body('{"jsonrpc":"2.0","id":1,"result":{}}')
        assert select_response(body) == {"jsonrpc": "2.0", "id": 1, "result": {}}

    def test_prefers_frame_with_content(self):
        """Of three frames only the second has result.content; it wins."""
        first = '{"jsonrpc":"2.0","method":"notifications/progress","params":{"progress":50,"total":100,"message":"working hard"}}'
        second = '{"jsonrpc":"2.0","id":3,"result":{"content":[{"type":"text","text":"hi"}]}}'
        third = '{"jsonrpc":"2.0","id":3,"result":{"content":[],"meta":{"padding":"xxxxxxxxxxxxxxxxxxxxxxxxxxxxxxxx"}}}'
        selected = select_response(_body(first, second, third))
        assert selected["result"]["content"] == [{"type": "text", "text": "hi"}]

    def test_first_content_frame_wins(self):
        a = '{"id":1,"result":{"content":[{"type":"text","text":"a"}]}}'
        b = '{"id":1,"result":{"content":[{"type":"text","text":"b"}]}}'
        assert select_response(_body(a, b))["result"]["content"][0]["text"] == "a"

    def test_falls_back_to_longest_parseable_frame(self):
        short = '{"id":1,"result":{}}'
        longer = '{"id":1,"result":{"tools":[{"name":"x"}]}}'
        assert select_response(_body(short, longer)) == {
            "id": 1,
            "result": {"tools": [{"name": "x"}]},
        }

    def test_longest_tie_keeps_first(self):
        a = '{"id":1,"result":{"v":1}}'
        b = '{"id":1,"result":{"v":2}}'
        assert select_response(_body(a, b))["result"] == {"v": 1}

    def test_unparseable_frames_skipped(self):
        good = '{"id":1,"result":{"ok":true}}'
        selected = select_response(_body("{broken", good, "[1, 2"))
        assert selected == {"id": 1, "result": {"ok": True}}

    def test_non_object_frames_skipped(self):
        good = '{"id":1,"result":{}}'
        assert select_response(_body('"a much longer string frame"', good)) == {
            "id": 1,
            "result": {},
        }

    def test_no_frames_raises(self):
        with pytest.raises(FrameError, match="no data frames"):
            select_response(": only a comment\n")

    def test_no_parseable_frame_raises(self):
        with pytest.raises(FrameError, match="could be parsed"):
            select_response(_body("{nope", "also nope"))
