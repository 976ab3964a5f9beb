"""
Incremental decoder for ``data: <json>`` Server-Sent-Events streams.
"""

import codecs
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, ValidationError

from duochat.services.chat_service.exceptions import MalformedChunk


DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class Delta(BaseModel):
    content: Optional[str] = None


class Choice(BaseModel):
    delta: Optional[Delta] = None


class DeltaFrame(BaseModel):
    """One chat-completion stream frame"""
    choices: List[Choice]

    @property
    def text(self) -> str:
        if not self.choices:
            return ""
        delta = self.choices[0].delta
        return (delta.content if delta else None) or ""


@dataclass(frozen=True)
class SSERecord:
    payload: str

    @property
    def is_done(self) -> bool:
        return self.payload == DONE_SENTINEL


class SSEDecoder:
    """
    Splits a byte stream into ``data:`` records.

    Bytes may be split anywhere, including inside a multi-byte character;
    an incomplete trailing line is kept until its newline arrives.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes) -> List[SSERecord]:
        self._buffer += self._decoder.decode(data)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return [record for record in map(self._parse_line, lines) if record is not None]

    def flush(self) -> List[SSERecord]:
        """Decode whatever is left once the stream has ended"""
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        record = self._parse_line(remainder)
        return [record] if record is not None else []

    @staticmethod
    def _parse_line(line: str) -> Optional[SSERecord]:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return None
        return SSERecord(payload=line[len(DATA_PREFIX):].strip())


def parse_delta(payload: str) -> str:
    """Return the text delta of a JSON frame, raising MalformedChunk"""
    try:
        return DeltaFrame.model_validate_json(payload).text
    except ValidationError as e:
        raise MalformedChunk(f"Failed to parse stream chunk: {payload!r}") from e
