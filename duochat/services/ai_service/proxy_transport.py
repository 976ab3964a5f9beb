"""
Text-delta transport - chat completions relayed as SSE by the DeepSeek proxy.
"""

from typing import Dict, Iterator, List

import requests

from duochat.services.ai_service.models import CancellationToken, NormalizedChunk, StreamRequest
from duochat.services.ai_service.sse_decoder import SSEDecoder, SSERecord, parse_delta
from duochat.services.ai_service.transport import TransportAdapter
from duochat.services.chat_service.exceptions import (
    MalformedChunk,
    TransportMidStreamFailure,
    TransportOpenFailure,
)
from duochat.services.chat_service.models import BACKEND_DEEPSEEK
from duochat.utils.logging_config import get_logger, log_execution_time


class ProxyStreamTransport(TransportAdapter):
    """
    Sends the whole history in one POST and reads ``data:`` frames until
    ``[DONE]``. Produces text only: no citations, no usage, no files.
    """

    backend_id = BACKEND_DEEPSEEK
    supports_attachments = False

    def __init__(self, client):
        self.logger = get_logger(__name__)
        self.client = client

    @staticmethod
    def build_history(request: StreamRequest) -> List[Dict[str, str]]:
        turns = list(request.history) + [request.message]
        return [
            {"role": "user" if turn.is_user else "assistant", "content": turn.content}
            for turn in turns
        ]

    def open(self, request: StreamRequest, cancel_token: CancellationToken) -> Iterator[NormalizedChunk]:
        self.check_attachment(request.message.file)
        payload = {"history": self.build_history(request)}

        try:
            with log_execution_time(self.logger, "proxy_stream_open", backend=self.backend_id):
                response = self.client.post_stream(payload)
        except requests.RequestException as e:
            raise TransportOpenFailure(f"Proxy request failed: {e}") from e

        if not response.ok:
            try:
                body = response.text[:500]
            finally:
                response.close()
            raise TransportOpenFailure(f"API Error: {response.status_code} {response.reason} - {body}")

        return self._iter_chunks(response, cancel_token)

    def _read_records(self, response, decoder: SSEDecoder) -> Iterator[SSERecord]:
        try:
            for data in response.iter_content(chunk_size=None):
                if data:
                    yield from decoder.feed(data)
            yield from decoder.flush()
        except requests.RequestException as e:
            raise TransportMidStreamFailure(f"Proxy stream broke: {e}") from e

    def _iter_chunks(self, response, cancel_token: CancellationToken) -> Iterator[NormalizedChunk]:
        decoder = SSEDecoder()
        try:
            for record in self._read_records(response, decoder):
                if cancel_token.cancelled:
                    return
                if record.is_done:
                    yield NormalizedChunk(is_final=True)
                    return
                try:
                    text = parse_delta(record.payload)
                except MalformedChunk as e:
                    self.logger.warning(str(e))
                    continue
                if text:
                    yield NormalizedChunk(text_delta=text)
        finally:
            response.close()
