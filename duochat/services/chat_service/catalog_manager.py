"""
Catalog manager - pin, archive, rename and delete conversations, and the
display ordering of the catalog.
"""

from typing import List, Optional

from duochat.services.chat_service.models import CatalogEntry, ChatContext
from duochat.services.chat_service.chat_repository import ChatRepository
from duochat.services.chat_service.conversation_store import ConversationStore
from duochat.utils.logging_config import get_logger, log_conversation_event


class CatalogManager:
    """
    Operations over the conversation catalog.

    Archiving or deleting the active conversation activates the first
    remaining non-archived conversation, or a fresh one if none is left.
    """

    def __init__(self, context: ChatContext, repository: ChatRepository, store: ConversationStore):
        self.logger = get_logger(__name__)
        self.context = context
        self.repository = repository
        self.store = store

    def reload(self):
        """Read the catalog from storage into the context"""
        self.context.catalog = self.repository.list_catalog()

    def _save(self):
        self.repository.save_catalog(self.context.catalog)

    def first_active(self) -> Optional[CatalogEntry]:
        for entry in self.context.catalog:
            if not entry.archived:
                return entry
        return None

    def _activate_fallback(self):
        next_entry = self.first_active()
        if next_entry is not None:
            self.store.load(next_entry.id)
        else:
            self.store.start_new()

    def toggle_pin(self, conversation_id: str) -> bool:
        """Flip the pin flag; archived entries cannot be pinned"""
        entry = self.context.find_entry(conversation_id)
        if entry is None or entry.archived:
            return False

        entry.pinned = not entry.pinned
        self._save()
        log_conversation_event(self.logger, "pinned" if entry.pinned else "unpinned", conversation_id)
        return True

    def toggle_archive(self, conversation_id: str) -> bool:
        entry = self.context.find_entry(conversation_id)
        if entry is None:
            return False
        if conversation_id == self.context.active_id and not entry.archived:
            self.store.ensure_idle("archive the active conversation")

        entry.archived = not entry.archived
        if entry.archived:
            entry.pinned = False
        self._save()
        log_conversation_event(self.logger, "archived" if entry.archived else "unarchived", conversation_id)

        if entry.archived and conversation_id == self.context.active_id:
            self._activate_fallback()
        return True

    def rename(self, conversation_id: str, title: str) -> bool:
        entry = self.context.find_entry(conversation_id)
        if entry is None:
            return False

        entry.title = title
        self._save()
        log_conversation_event(self.logger, "renamed", conversation_id, title=title)
        return True

    def delete(self, conversation_id: str) -> bool:
        """Remove the catalog entry and the stored conversation"""
        entry = self.context.find_entry(conversation_id)
        if entry is None:
            return False
        is_active = conversation_id == self.context.active_id
        if is_active:
            self.store.ensure_idle("delete the active conversation")

        self.repository.delete_conversation(conversation_id)
        self.context.catalog = [e for e in self.context.catalog if e.id != conversation_id]
        self._save()
        log_conversation_event(self.logger, "deleted", conversation_id)

        if is_active:
            # The deleted id must not short-circuit the reload
            self.context.active_id = None
            self._activate_fallback()
        return True

    def open(self, conversation_id: str) -> bool:
        """Activate a conversation from the catalog, unarchiving it first"""
        entry = self.context.find_entry(conversation_id)
        if entry is None:
            return False
        if conversation_id != self.context.active_id:
            self.store.ensure_idle("switch conversations")
        if entry.archived:
            entry.archived = False
            self._save()
            log_conversation_event(self.logger, "unarchived", conversation_id)
        self.store.load(conversation_id)
        return True

    def active_entries(self) -> List[CatalogEntry]:
        """Non-archived entries, pinned first, then newest first"""
        entries = [e for e in self.context.catalog if not e.archived]
        entries.sort(key=lambda e: e.id, reverse=True)
        entries.sort(key=lambda e: not e.pinned)
        return entries

    def archived_entries(self) -> List[CatalogEntry]:
        entries = [e for e in self.context.catalog if e.archived]
        entries.sort(key=lambda e: e.id, reverse=True)
        return entries
