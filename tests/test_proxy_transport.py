"""
Tests for the SSE proxy transport and its HTTP client
"""

import json
from unittest.mock import Mock

import pytest
import requests

from duochat.infrastructure.external.proxy_client import ProxyClient
from duochat.services.ai_service.models import CancellationToken, NormalizedChunk, StreamRequest
from duochat.services.ai_service.proxy_transport import ProxyStreamTransport
from duochat.services.chat_service.exceptions import (
    TransportMidStreamFailure,
    TransportOpenFailure,
    UnsupportedAttachment,
)
from duochat.services.chat_service.models import FileAttachment, Turn


def sse(*texts: str, done: bool = True) -> bytes:
    lines = [f"data: {json.dumps({'choices': [{'delta': {'content': t}}]})}\n\n" for t in texts]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def make_response(body: bytes = b"", ok: bool = True, status_code: int = 200,
                  reason: str = "OK", text: str = "", piece: int = 4):
    response = Mock()
    response.ok = ok
    response.status_code = status_code
    response.reason = reason
    response.text = text
    response.iter_content.return_value = iter([body[i:i + piece] for i in range(0, len(body), piece)])
    return response


class TestProxyStreamTransport:
    """Test request building and stream decoding"""

    def setup_method(self):
        self.client = Mock()
        self.transport = ProxyStreamTransport(self.client)
        self.request = StreamRequest(
            history=[Turn.user("Hi"), Turn.model("Hello!")],
            message=Turn.user("How are you?")
        )

    def test_posts_full_history(self):
        self.client.post_stream.return_value = make_response(sse("x"))

        list(self.transport.open(self.request, CancellationToken()))

        self.client.post_stream.assert_called_once_with({"history": [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello!"},
            {"role": "user", "content": "How are you?"},
        ]})

    def test_yields_text_then_final(self):
        self.client.post_stream.return_value = make_response(sse("Hel", "lo"))

        chunks = list(self.transport.open(self.request, CancellationToken()))

        assert chunks == [
            NormalizedChunk(text_delta="Hel"),
            NormalizedChunk(text_delta="lo"),
            NormalizedChunk(is_final=True),
        ]

    def test_done_stops_the_sequence(self):
        body = sse("a") + sse("ignored", done=False)
        response = make_response(body)
        self.client.post_stream.return_value = response

        chunks = list(self.transport.open(self.request, CancellationToken()))

        assert [c.text_delta for c in chunks] == ["a", ""]
        assert chunks[-1].is_final
        response.close.assert_called_once()

    def test_malformed_frame_is_skipped(self):
        body = b"data: {broken\n\n" + sse("ok")
        self.client.post_stream.return_value = make_response(body)

        chunks = list(self.transport.open(self.request, CancellationToken()))

        assert [c.text_delta for c in chunks if c.text_delta] == ["ok"]

    def test_empty_deltas_are_dropped(self):
        self.client.post_stream.return_value = make_response(sse("", "x"))

        chunks = list(self.transport.open(self.request, CancellationToken()))

        assert [c.text_delta for c in chunks] == ["x", ""]

    def test_rejects_attachments_before_network(self):
        request = StreamRequest(history=[], message=Turn.user("look", file=FileAttachment(b"x", "image/png")))

        with pytest.raises(UnsupportedAttachment):
            self.transport.open(request, CancellationToken())
        self.client.post_stream.assert_not_called()

    def test_http_error_status(self):
        response = make_response(ok=False, status_code=401, reason="Unauthorized", text="bad token")
        self.client.post_stream.return_value = response

        with pytest.raises(TransportOpenFailure, match="401 Unauthorized - bad token"):
            self.transport.open(self.request, CancellationToken())
        response.close.assert_called_once()

    def test_connection_error(self):
        self.client.post_stream.side_effect = requests.ConnectionError("refused")

        with pytest.raises(TransportOpenFailure):
            self.transport.open(self.request, CancellationToken())

    def test_mid_stream_error(self):
        response = make_response()

        def broken(chunk_size=None):
            yield sse("partial", done=False)
            raise requests.ConnectionError("reset")

        response.iter_content.side_effect = broken
        self.client.post_stream.return_value = response
        stream = self.transport.open(self.request, CancellationToken())

        assert next(stream).text_delta == "partial"
        with pytest.raises(TransportMidStreamFailure):
            next(stream)
        response.close.assert_called_once()

    def test_cancel_stops_after_next_read(self):
        self.client.post_stream.return_value = make_response(sse("a", "b", "c"))
        token = CancellationToken()
        stream = self.transport.open(self.request, token)

        first = next(stream)
        token.cancel()

        assert first.text_delta == "a"
        assert list(stream) == []


class TestProxyClient:
    """Test proxy HTTP requests"""

    def test_post_stream(self):
        session = Mock()
        client = ProxyClient(url="https://proxy.example/api", token="secret", timeout=5.0, session=session)

        client.post_stream({"history": []})

        session.post.assert_called_once_with(
            "https://proxy.example/api",
            json={"history": []},
            headers={
                "Content-Type": "application/json",
                "Accept": "text/event-stream",
                "Authorization": "Bearer secret",
            },
            timeout=5.0,
            stream=True
        )

    def test_no_token_no_auth_header(self):
        session = Mock()
        client = ProxyClient(url="https://proxy.example/api", token="", timeout=5.0, session=session)

        client.post_stream({"history": []})

        assert "Authorization" not in session.post.call_args.kwargs["headers"]
