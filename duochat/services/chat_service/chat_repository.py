"""
Chat repository - key-value persistence of the conversation catalog and
per-conversation payloads.
"""

import json
import os
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from duochat.services.chat_service.models import CatalogEntry, Conversation
from duochat.utils.logging_config import get_logger


class KeyValueStore(ABC):
    """Durable string key-value storage"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store without durability"""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class SQLiteKeyValueStore(KeyValueStore):
    """
    SQLite-backed key-value store.

    Each call opens its own connection so the store can be shared across
    Streamlit reruns.
    """

    def __init__(self, db_path: str):
        self.logger = get_logger(__name__)
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Initialize SQLite database for key-value storage"""
        os.makedirs(os.path.dirname(self.db_path) if os.path.dirname(self.db_path) else ".", exist_ok=True)

        try:
            conn = sqlite3.connect(self.db_path)
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            ''')
            conn.commit()
            conn.close()

            self.logger.info("Chat database initialized successfully")

        except Exception as e:
            self.logger.error(f"Error initializing chat database: {e}")
            raise

    def get(self, key: str) -> Optional[str]:
        conn = sqlite3.connect(self.db_path)
        try:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute('''
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            ''', (key, value, datetime.now().isoformat()))
            conn.commit()
        finally:
            conn.close()

    def delete(self, key: str) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()


class ChatRepository:
    """
    Repository for the conversation catalog and conversation snapshots.

    All reads are total: missing or unreadable payloads come back as an
    empty catalog or ``None``. Writes are last-writer-wins.
    """

    def __init__(self, store: KeyValueStore, catalog_key: str = "duochat-chat-index",
                 conversation_key_prefix: str = "duochat-chat-"):
        self.logger = get_logger(__name__)
        self.store = store
        self.catalog_key = catalog_key
        self.conversation_key_prefix = conversation_key_prefix

    def _conversation_key(self, conversation_id: str) -> str:
        return f"{self.conversation_key_prefix}{conversation_id}"

    def _read_json(self, key: str):
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            self.logger.warning(f"Ignoring unreadable payload under '{key}': {e}")
            return None

    def list_catalog(self) -> List[CatalogEntry]:
        """Load the conversation catalog in stored order"""
        data = self._read_json(self.catalog_key)
        if not isinstance(data, list):
            return []

        entries = []
        for item in data:
            if isinstance(item, dict) and item.get("id"):
                entries.append(CatalogEntry.from_dict(item))
        return entries

    def save_catalog(self, entries: List[CatalogEntry]) -> None:
        self.store.set(self.catalog_key, json.dumps([e.to_dict() for e in entries], ensure_ascii=False))
        self.logger.debug(f"Saved catalog with {len(entries)} entries")

    def load_conversation(self, conversation_id: str) -> Optional[Conversation]:
        data = self._read_json(self._conversation_key(conversation_id))
        if not isinstance(data, dict):
            return None
        try:
            return Conversation.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            self.logger.warning(f"Ignoring malformed conversation {conversation_id}: {e}")
            return None

    def save_conversation(self, conversation_id: str, conversation: Conversation) -> None:
        self.store.set(
            self._conversation_key(conversation_id),
            json.dumps(conversation.to_dict(), ensure_ascii=False)
        )
        self.logger.debug(f"Saved conversation {conversation_id} ({len(conversation.turns)} turns)")

    def delete_conversation(self, conversation_id: str) -> None:
        self.store.delete(self._conversation_key(conversation_id))
