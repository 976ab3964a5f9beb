"""
Structured-stream transport on the OpenAI Responses streaming API.
"""

from typing import Any, Dict, Iterator, List, Optional

import openai

from duochat.services.ai_service.models import CancellationToken, NormalizedChunk, StreamRequest, Usage
from duochat.services.ai_service.transport import TransportAdapter
from duochat.services.chat_service.exceptions import TransportMidStreamFailure, TransportOpenFailure
from duochat.services.chat_service.models import BACKEND_OPENAI, Citation, Turn
from duochat.utils.logging_config import get_logger, log_execution_time


SEARCH_TOOL = {"type": "web_search_preview"}


def _field(obj: Any, name: str, default=None):
    """Read a field from an SDK object or a plain dict"""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class OpenAIStreamTransport(TransportAdapter):
    """
    Replays the prior turns when the session is opened and maps each stream
    event to one normalized chunk. Citations arrive as separate annotation
    events; token usage only comes with the completion event.
    """

    backend_id = BACKEND_OPENAI
    supports_attachments = True

    def __init__(self, client_provider, model: str = "gpt-4o-mini"):
        self.logger = get_logger(__name__)
        self.client_provider = client_provider
        self.model = model

    @staticmethod
    def _history_item(turn: Turn) -> Dict[str, Any]:
        return {"role": "user" if turn.is_user else "assistant", "content": turn.content}

    @staticmethod
    def _message_item(turn: Turn) -> Dict[str, Any]:
        content: List[Dict[str, Any]] = []
        if turn.file is not None:
            if turn.file.is_image:
                content.append({"type": "input_image", "image_url": turn.file.to_data_url()})
            else:
                content.append({
                    "type": "input_file",
                    "filename": turn.file.name or "attachment",
                    "file_data": turn.file.to_data_url()
                })
        if turn.content:
            content.append({"type": "input_text", "text": turn.content})
        return {"role": "user", "content": content}

    def build_params(self, request: StreamRequest) -> Dict[str, Any]:
        items = [self._history_item(t) for t in request.history if t.content]
        items.append(self._message_item(request.message))

        params: Dict[str, Any] = {"model": self.model, "input": items, "stream": True}
        if request.settings.system_instruction:
            params["instructions"] = request.settings.system_instruction
        if request.settings.temperature is not None:
            params["temperature"] = request.settings.temperature
        if request.search_enabled:
            params["tools"] = [SEARCH_TOOL]
        return params

    def open(self, request: StreamRequest, cancel_token: CancellationToken) -> Iterator[NormalizedChunk]:
        self.check_attachment(request.message.file)
        params = self.build_params(request)

        try:
            with log_execution_time(self.logger, "openai_stream_open", backend=self.backend_id, model=self.model):
                client = self.client_provider.get_chat_client()
                stream = client.responses.create(**params)
        except (openai.OpenAIError, ValueError) as e:
            raise TransportOpenFailure(f"OpenAI request failed: {e}") from e

        return self._iter_chunks(stream, cancel_token)

    def _to_chunk(self, event) -> Optional[NormalizedChunk]:
        event_type = _field(event, "type")

        if event_type == "response.output_text.delta":
            return NormalizedChunk(text_delta=_field(event, "delta") or "")

        if event_type == "response.output_text.annotation.added":
            annotation = _field(event, "annotation")
            url = _field(annotation, "url")
            if _field(annotation, "type") != "url_citation" or not url:
                return None
            return NormalizedChunk(citations=(Citation(uri=url, title=_field(annotation, "title") or url),))

        if event_type == "response.completed":
            usage = _field(_field(event, "response"), "usage")
            total = _field(usage, "total_tokens") if usage is not None else None
            return NormalizedChunk(is_final=True, usage=Usage(total_tokens=total) if total is not None else None)

        if event_type == "response.failed":
            error = _field(_field(event, "response"), "error")
            raise TransportMidStreamFailure(f"Response failed: {_field(error, 'message', 'unknown error')}")

        if event_type == "error":
            raise TransportMidStreamFailure(f"Stream error: {_field(event, 'message', 'unknown error')}")

        return None

    def _iter_chunks(self, stream, cancel_token: CancellationToken) -> Iterator[NormalizedChunk]:
        try:
            try:
                for event in stream:
                    if cancel_token.cancelled:
                        return
                    chunk = self._to_chunk(event)
                    if chunk is not None:
                        yield chunk
            except openai.OpenAIError as e:
                raise TransportMidStreamFailure(f"OpenAI stream broke: {e}") from e
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()
