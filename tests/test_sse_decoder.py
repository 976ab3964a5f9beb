"""
Tests for the SSE decoder
"""

import json

import pytest

from duochat.services.ai_service.sse_decoder import SSEDecoder, SSERecord, parse_delta
from duochat.services.chat_service.exceptions import MalformedChunk


def frame(text: str) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": text}}]}) + "\n\n"


STREAM = (
    ": keep-alive\n"
    + frame("Héllo")
    + "event: ping\n"
    + frame(" wörld 🌍")
    + "data: [DONE]\n\n"
).encode("utf-8")


def decode_in_pieces(data: bytes, size: int):
    decoder = SSEDecoder()
    records = []
    for start in range(0, len(data), size):
        records.extend(decoder.feed(data[start:start + size]))
    records.extend(decoder.flush())
    return records


class TestSSEDecoder:
    """Test line splitting and data-prefix handling"""

    def test_whole_stream(self):
        records = decode_in_pieces(STREAM, len(STREAM))

        assert [r.is_done for r in records] == [False, False, True]
        assert [parse_delta(r.payload) for r in records[:2]] == ["Héllo", " wörld 🌍"]

    @pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 13])
    def test_arbitrary_splits_match_unsplit(self, size):
        assert decode_in_pieces(STREAM, size) == decode_in_pieces(STREAM, len(STREAM))

    def test_ignores_lines_without_prefix(self):
        decoder = SSEDecoder()

        assert decoder.feed(b"id: 1\nretry: 10\ndata:nospace\n\n") == []

    def test_partial_line_waits_for_newline(self):
        decoder = SSEDecoder()

        assert decoder.feed(b"data: [DO") == []
        assert decoder.feed(b"NE]\n") == [SSERecord(payload="[DONE]")]

    def test_crlf_lines(self):
        decoder = SSEDecoder()

        assert decoder.feed(b"data: [DONE]\r\n") == [SSERecord(payload="[DONE]")]

    def test_flush_returns_unterminated_record(self):
        decoder = SSEDecoder()
        decoder.feed(b"data: [DONE]")

        assert decoder.flush() == [SSERecord(payload="[DONE]")]
        assert decoder.flush() == []


class TestParseDelta:
    """Test JSON frame parsing"""

    def test_text(self):
        assert parse_delta('{"choices": [{"delta": {"content": "hi"}}]}') == "hi"

    def test_missing_content(self):
        assert parse_delta('{"choices": [{"delta": {"role": "assistant"}}]}') == ""
        assert parse_delta('{"choices": [{}]}') == ""
        assert parse_delta('{"choices": []}') == ""

    def test_invalid_json(self):
        with pytest.raises(MalformedChunk):
            parse_delta("{oops")

    def test_wrong_shape(self):
        with pytest.raises(MalformedChunk):
            parse_delta('{"id": "x"}')
