"""
Chat service data models for conversations, turns and the conversation catalog.
"""

import base64
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Dict, Optional, Any, Tuple, Iterable


ROLE_USER = "user"
ROLE_MODEL = "model"

BACKEND_OPENAI = "openai"      # structured-stream SDK backend
BACKEND_DEEPSEEK = "deepseek"  # server-proxied SSE backend
BACKENDS = (BACKEND_OPENAI, BACKEND_DEEPSEEK)


def now_iso() -> str:
    return datetime.now().isoformat()


_id_lock = threading.Lock()
_last_id_ns = 0


def new_conversation_id() -> str:
    """
    Create a unique conversation id that sorts by creation order.

    The nanosecond timestamp is forced to be strictly increasing within the
    process, so two conversations created in the same clock tick still get
    distinct ids.
    """
    global _last_id_ns
    with _id_lock:
        _last_id_ns = max(time.time_ns(), _last_id_ns + 1)
        return f"chat_{_last_id_ns:020d}"


@dataclass(frozen=True)
class Citation:
    """Grounding source attached to a model turn"""
    uri: str
    title: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"uri": self.uri, "title": self.title}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Citation':
        return cls(uri=data.get("uri", ""), title=data.get("title") or "")


def dedupe_citations(citations: Iterable[Citation]) -> Tuple[Citation, ...]:
    """Last write per uri wins, first-seen order is kept"""
    by_uri: Dict[str, Citation] = {}
    for citation in citations:
        by_uri[citation.uri] = citation
    return tuple(by_uri.values())


@dataclass(frozen=True)
class FileAttachment:
    """Binary file attached to a user turn"""
    data: bytes
    mime_type: str
    name: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    def to_dict(self) -> Dict[str, Any]:
        data = {"data": self.to_base64(), "mimeType": self.mime_type}
        if self.name:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileAttachment':
        raw = data.get("data", "")
        # Older payloads stored a full data URL
        if raw.startswith("data:") and "," in raw:
            raw = raw.split(",", 1)[1]
        return cls(
            data=base64.b64decode(raw),
            mime_type=data.get("mimeType", "application/octet-stream"),
            name=data.get("name")
        )


@dataclass(frozen=True)
class MessageStats:
    """Performance stats of a model turn"""
    token_count: int = 0
    speed: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"tokenCount": self.token_count, "speed": self.speed}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MessageStats':
        return cls(token_count=int(data.get("tokenCount", 0)), speed=float(data.get("speed", 0.0)))


@dataclass(frozen=True)
class Turn:
    """One committed message of a conversation. Never mutated after commit."""
    role: str
    content: str
    timestamp: str = field(default_factory=now_iso)
    file: Optional[FileAttachment] = None
    stats: Optional[MessageStats] = None
    citations: Tuple[Citation, ...] = ()

    @classmethod
    def user(cls, content: str, file: Optional[FileAttachment] = None) -> 'Turn':
        return cls(role=ROLE_USER, content=content, file=file)

    @classmethod
    def model(cls, content: str, stats: Optional[MessageStats] = None,
              citations: Iterable[Citation] = ()) -> 'Turn':
        return cls(role=ROLE_MODEL, content=content, stats=stats, citations=dedupe_citations(citations))

    @property
    def is_user(self) -> bool:
        return self.role == ROLE_USER

    @property
    def is_model(self) -> bool:
        return self.role == ROLE_MODEL

    def with_content(self, content: str) -> 'Turn':
        """New turn carrying the same attachment with replaced text"""
        return replace(self, content=content, timestamp=now_iso())

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.file is not None:
            data["file"] = self.file.to_dict()
        if self.stats is not None:
            data["stats"] = self.stats.to_dict()
        if self.citations:
            data["groundingSources"] = [c.to_dict() for c in self.citations]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Turn':
        role = data.get("role") or data.get("sender") or ROLE_USER
        file_data = data.get("file")
        stats_data = data.get("stats")
        return cls(
            role=role,
            content=data.get("content", ""),
            timestamp=data.get("timestamp") or now_iso(),
            file=FileAttachment.from_dict(file_data) if file_data else None,
            stats=MessageStats.from_dict(stats_data) if stats_data else None,
            citations=dedupe_citations(
                Citation.from_dict(c) for c in data.get("groundingSources") or [] if c.get("uri")
            )
        )


@dataclass
class ChatSettings:
    """Per-conversation generation settings"""
    system_instruction: Optional[str] = None
    temperature: Optional[float] = None
    model: Optional[str] = None

    def __post_init__(self):
        if self.temperature is not None and not 0.0 <= self.temperature <= 1.0:
            raise ValueError(f"temperature must be within [0, 1], got {self.temperature}")

    def backend(self, default: str = BACKEND_OPENAI) -> str:
        return self.model or default

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.system_instruction is not None:
            data["systemInstruction"] = self.system_instruction
        if self.temperature is not None:
            data["temperature"] = self.temperature
        if self.model is not None:
            data["model"] = self.model
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ChatSettings':
        data = data or {}
        return cls(
            system_instruction=data.get("systemInstruction"),
            temperature=data.get("temperature"),
            model=data.get("model")
        )


@dataclass
class CatalogEntry:
    """Navigation metadata for one conversation"""
    id: str
    title: str
    pinned: bool = False
    archived: bool = False

    def __post_init__(self):
        if self.archived:
            self.pinned = False

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "pinned": self.pinned, "archived": self.archived}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CatalogEntry':
        return cls(
            id=data["id"],
            title=data.get("title") or "",
            pinned=bool(data.get("pinned", False)),
            archived=bool(data.get("archived", False))
        )


@dataclass
class Conversation:
    """Persisted snapshot of a conversation"""
    settings: ChatSettings = field(default_factory=ChatSettings)
    turns: List[Turn] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "settings": self.settings.to_dict(),
            "messages": [turn.to_dict() for turn in self.turns]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Conversation':
        return cls(
            settings=ChatSettings.from_dict(data.get("settings")),
            turns=[Turn.from_dict(m) for m in data.get("messages") or []]
        )


@dataclass
class ChatContext:
    """
    The active conversation of one user session.

    Created once and shared by the conversation store, the catalog manager
    and the streaming session controller.
    """
    active_id: Optional[str] = None
    turns: List[Turn] = field(default_factory=list)
    settings: ChatSettings = field(default_factory=ChatSettings)
    catalog: List[CatalogEntry] = field(default_factory=list)
    busy: bool = False

    def find_entry(self, conversation_id: str) -> Optional[CatalogEntry]:
        for entry in self.catalog:
            if entry.id == conversation_id:
                return entry
        return None
