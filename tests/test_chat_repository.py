"""
Tests for the key-value stores and the chat repository
"""

import json
import os
import tempfile

import pytest

from duochat.services.chat_service.chat_repository import (
    ChatRepository,
    InMemoryKeyValueStore,
    SQLiteKeyValueStore,
)
from duochat.services.chat_service.models import (
    CatalogEntry,
    ChatSettings,
    Citation,
    Conversation,
    FileAttachment,
    MessageStats,
    Turn,
)


class TestSQLiteKeyValueStore:
    """Test SQLite key-value storage"""

    def setup_method(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "nested", "chat.db")
        self.store = SQLiteKeyValueStore(self.db_path)

    def teardown_method(self):
        self.temp_dir.cleanup()

    def test_creates_database(self):
        assert os.path.exists(self.db_path)

    def test_get_missing_key(self):
        assert self.store.get("nothing") is None

    def test_set_and_overwrite(self):
        self.store.set("key", "one")
        self.store.set("key", "two")

        assert self.store.get("key") == "two"

    def test_delete(self):
        self.store.set("key", "value")
        self.store.delete("key")
        self.store.delete("key")

        assert self.store.get("key") is None

    def test_values_survive_a_new_instance(self):
        self.store.set("key", "value")

        reopened = SQLiteKeyValueStore(self.db_path)

        assert reopened.get("key") == "value"


class TestChatRepository:
    """Test catalog and conversation persistence"""

    def setup_method(self):
        self.kv = InMemoryKeyValueStore()
        self.repository = ChatRepository(self.kv)

    def test_empty_catalog(self):
        assert self.repository.list_catalog() == []

    def test_catalog_round_trip_keeps_order(self):
        entries = [
            CatalogEntry(id="chat_2", title="Second", pinned=True),
            CatalogEntry(id="chat_1", title="First", archived=True),
        ]

        self.repository.save_catalog(entries)

        assert self.repository.list_catalog() == entries

    def test_catalog_key_layout(self):
        self.repository.save_catalog([CatalogEntry(id="chat_1", title="Hello")])

        stored = json.loads(self.kv.get("duochat-chat-index"))

        assert stored == [{"id": "chat_1", "title": "Hello", "pinned": False, "archived": False}]

    def test_catalog_accepts_missing_flags(self):
        self.kv.set("duochat-chat-index", json.dumps([{"id": "chat_1", "title": "Old"}, {"title": "no id"}]))

        entries = self.repository.list_catalog()

        assert entries == [CatalogEntry(id="chat_1", title="Old")]

    def test_archived_entry_is_never_pinned(self):
        self.kv.set("duochat-chat-index", json.dumps([{"id": "chat_1", "title": "x", "pinned": True, "archived": True}]))

        entry = self.repository.list_catalog()[0]

        assert entry.archived is True
        assert entry.pinned is False

    def test_corrupt_catalog_reads_as_empty(self):
        self.kv.set("duochat-chat-index", "{not json")

        assert self.repository.list_catalog() == []

    def test_missing_conversation(self):
        assert self.repository.load_conversation("chat_404") is None

    def test_conversation_round_trip(self):
        conversation = Conversation(
            settings=ChatSettings(system_instruction="Be brief", temperature=0.3, model="deepseek"),
            turns=[
                Turn.user("What is this?", file=FileAttachment(b"\x89PNG", "image/png", "pic.png")),
                Turn.model(
                    "A picture.",
                    stats=MessageStats(token_count=12, speed=4.0),
                    citations=[Citation("https://a.example", "A")]
                ),
            ]
        )

        self.repository.save_conversation("chat_1", conversation)
        loaded = self.repository.load_conversation("chat_1")

        assert loaded == conversation

    def test_conversation_payload_layout(self):
        conversation = Conversation(
            settings=ChatSettings(temperature=0.5),
            turns=[Turn.model("Hi", citations=[Citation("https://a.example", "A")])]
        )

        self.repository.save_conversation("chat_1", conversation)
        stored = json.loads(self.kv.get("duochat-chat-chat_1"))

        assert stored["settings"] == {"temperature": 0.5}
        message = stored["messages"][0]
        assert message["role"] == "model"
        assert message["groundingSources"] == [{"uri": "https://a.example", "title": "A"}]
        assert "file" not in message

    def test_file_from_data_url(self):
        self.kv.set("duochat-chat-chat_1", json.dumps({
            "messages": [{
                "role": "user",
                "content": "see file",
                "timestamp": "2024-01-01T00:00:00",
                "file": {"data": "data:text/plain;base64,aGVsbG8=", "mimeType": "text/plain"}
            }]
        }))

        turn = self.repository.load_conversation("chat_1").turns[0]

        assert turn.file.data == b"hello"
        assert turn.file.mime_type == "text/plain"

    def test_corrupt_conversation_reads_as_missing(self):
        self.kv.set("duochat-chat-chat_1", "[[[")

        assert self.repository.load_conversation("chat_1") is None

    def test_non_dict_message_reads_as_missing(self):
        self.kv.set("duochat-chat-chat_1", json.dumps({"messages": ["not a dict"]}))

        assert self.repository.load_conversation("chat_1") is None

    def test_delete_conversation(self):
        self.repository.save_conversation("chat_1", Conversation())

        self.repository.delete_conversation("chat_1")

        assert self.repository.load_conversation("chat_1") is None
        assert self.kv.keys() == []


class TestChatSettings:
    """Test per-conversation settings validation"""

    def test_temperature_out_of_range(self):
        with pytest.raises(ValueError):
            ChatSettings(temperature=1.2)

    def test_backend_default(self):
        assert ChatSettings().backend("deepseek") == "deepseek"
        assert ChatSettings(model="openai").backend("deepseek") == "openai"
