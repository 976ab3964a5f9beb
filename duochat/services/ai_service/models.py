"""
AI service data models for streamed responses.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from duochat.services.chat_service.models import (
    ChatSettings,
    Citation,
    Turn,
    dedupe_citations,
)


@dataclass(frozen=True)
class Usage:
    """Token usage reported by a backend"""
    total_tokens: int = 0


@dataclass(frozen=True)
class NormalizedChunk:
    """Transport-agnostic increment of a streamed model response"""
    text_delta: str = ""
    citations: Tuple[Citation, ...] = ()
    is_final: bool = False
    usage: Optional[Usage] = None


class CancellationToken:
    """Cooperative cancellation shared by a session and its transport"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class StreamRequest:
    """
    Everything a transport needs to open one exchange.

    ``history`` holds the turns before ``message``; ``message`` is the user
    turn being answered.
    """
    history: List[Turn]
    message: Turn
    settings: ChatSettings = field(default_factory=ChatSettings)
    search_enabled: bool = False


@dataclass
class Draft:
    """In-progress model turn assembled from streamed chunks"""
    started_at: float
    parts: List[str] = field(default_factory=list)
    citations: Dict[str, Citation] = field(default_factory=dict)
    usage: Optional[Usage] = None
    chunk_count: int = 0

    @property
    def text(self) -> str:
        return "".join(self.parts)

    @property
    def has_content(self) -> bool:
        return any(self.parts)

    def apply(self, chunk: NormalizedChunk):
        if chunk.text_delta:
            self.parts.append(chunk.text_delta)
        for citation in chunk.citations:
            # Reassigning an existing key keeps its original position
            self.citations[citation.uri] = citation
        if chunk.usage is not None:
            self.usage = chunk.usage
        self.chunk_count += 1

    def final_citations(self) -> Tuple[Citation, ...]:
        return dedupe_citations(self.citations.values())


class SessionState(Enum):
    """Streaming session states"""
    IDLE = "idle"
    OPENING = "opening"
    STREAMING = "streaming"
    COMMITTING = "committing"
    CANCELLED = "cancelled"
    FAILED = "failed"


class SessionOutcome(Enum):
    """How an exchange ended"""
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISCARDED = "discarded"  # cancelled before any text arrived
    FAILED = "failed"
    IGNORED = "ignored"      # nothing to send


@dataclass
class SessionResult:
    outcome: SessionOutcome
    turn: Optional[Turn] = None
    error: Optional[Exception] = None

    @property
    def committed(self) -> bool:
        return self.turn is not None
