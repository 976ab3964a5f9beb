"""
Conversation store - owns the active conversation and its mutations.

The store works on an explicit ChatContext instead of ambient session state;
durability is delegated to the ChatRepository.
"""

from typing import Optional

from duochat.services.chat_service.models import (
    ChatContext,
    ChatSettings,
    CatalogEntry,
    Conversation,
    FileAttachment,
    Turn,
    new_conversation_id,
)
from duochat.services.chat_service.chat_repository import ChatRepository
from duochat.services.chat_service.exceptions import SessionBusyError, StorageMiss
from duochat.utils.logging_config import get_logger, log_conversation_event


DEFAULT_TITLE = "New Chat"
TITLE_MAX_LENGTH = 30


class ConversationStore:
    """
    Service for the active conversation: append, edit, regenerate, save.
    """

    def __init__(self, context: ChatContext, repository: ChatRepository,
                 default_settings: Optional[ChatSettings] = None,
                 default_title: str = DEFAULT_TITLE,
                 title_max_length: int = TITLE_MAX_LENGTH):
        self.logger = get_logger(__name__)
        self.context = context
        self.repository = repository
        self.default_settings = default_settings or ChatSettings()
        self.default_title = default_title
        self.title_max_length = title_max_length

        if context.active_id is None and not context.turns:
            context.settings = ChatSettings(**vars(self.default_settings))

    @property
    def active_id(self) -> Optional[str]:
        return self.context.active_id

    @property
    def turns(self):
        return self.context.turns

    @property
    def settings(self) -> ChatSettings:
        return self.context.settings

    def ensure_idle(self, action: str):
        if self.context.busy:
            raise SessionBusyError(f"Cannot {action} while a response is streaming")

    def start_new(self):
        """Reset to an empty conversation; the id is assigned on the first turn"""
        self.ensure_idle("start a new conversation")
        self.context.active_id = None
        self.context.turns = []
        self.context.settings = ChatSettings(**vars(self.default_settings))
        self.logger.debug("Started new conversation")

    def _fetch(self, conversation_id: str) -> Conversation:
        conversation = self.repository.load_conversation(conversation_id)
        if conversation is None:
            raise StorageMiss(f"No stored conversation for id {conversation_id}")
        return conversation

    def load(self, conversation_id: str):
        """Make a stored conversation the active one"""
        if conversation_id == self.context.active_id:
            return
        self.ensure_idle("switch conversations")

        try:
            conversation = self._fetch(conversation_id)
        except StorageMiss as e:
            self.logger.warning(f"{e}; opening it empty")
            conversation = Conversation(settings=ChatSettings(**vars(self.default_settings)))

        self.context.active_id = conversation_id
        self.context.turns = list(conversation.turns)
        self.context.settings = conversation.settings
        log_conversation_event(self.logger, "loaded", conversation_id, turn_count=len(conversation.turns))

    def _make_title(self, text: str) -> str:
        return text[:self.title_max_length] or self.default_title

    def append_user(self, text: str, file: Optional[FileAttachment] = None) -> Turn:
        """
        Append a user turn to the active conversation.

        The first turn of a new conversation assigns its id and creates the
        catalog entry. Turns themselves are persisted with the model reply.
        """
        if self.context.active_id is None:
            conversation_id = new_conversation_id()
            self.context.active_id = conversation_id
            if self.context.find_entry(conversation_id) is None:
                self.context.catalog.insert(0, CatalogEntry(id=conversation_id, title=self._make_title(text)))
                self.repository.save_catalog(self.context.catalog)
            log_conversation_event(self.logger, "created", conversation_id)

        turn = Turn.user(text, file=file)
        self.context.turns.append(turn)
        return turn

    def append_model(self, turn: Turn):
        """Commit a finished model turn and persist the conversation"""
        self.context.turns.append(turn)
        self.save()

    def edit_user(self, index: int, new_text: str) -> Turn:
        """
        Replace the user turn at ``index`` and drop everything after it.

        The caller re-issues the request for the edited turn.
        """
        if index < 0 or index >= len(self.context.turns):
            raise IndexError(f"No turn at index {index}")
        original = self.context.turns[index]
        if not original.is_user:
            raise ValueError(f"Turn {index} is not a user turn")

        edited = original.with_content(new_text)
        self.context.turns = self.context.turns[:index] + [edited]
        self.save()
        return edited

    def regenerate_last(self) -> Optional[Turn]:
        """
        Drop the trailing model turn so it can be produced again.

        Returns the user turn to replay, or None (and changes nothing) when the
        conversation does not end with a model turn preceded by a user turn.
        """
        turns = self.context.turns
        if len(turns) < 2 or not turns[-1].is_model or not turns[-2].is_user:
            return None

        self.context.turns = turns[:-1]
        self.save()
        return self.context.turns[-1]

    def update_settings(self, settings: ChatSettings):
        self.context.settings = settings
        self.save()

    def save(self):
        """Persist the active conversation; no-op until it has an id"""
        if not self.context.active_id:
            return
        snapshot = Conversation(settings=self.context.settings, turns=list(self.context.turns))
        self.repository.save_conversation(self.context.active_id, snapshot)

    def title_for(self, conversation_id: Optional[str]) -> Optional[str]:
        if conversation_id is None:
            return None
        entry = self.context.find_entry(conversation_id)
        return entry.title if entry else None

    def export_markdown(self, title: Optional[str] = None) -> str:
        """Render the active conversation as a markdown document"""
        title = title or self.title_for(self.context.active_id) or "chat-export"
        parts = [f"# {title}\n\n"]
        for turn in self.context.turns:
            parts.append(f"**{turn.role.upper()}** ({turn.timestamp}):\n\n")
            if turn.file is not None:
                parts.append("![Uploaded file]\n\n")
            parts.append(f"{turn.content}\n\n---\n\n")
        return "".join(parts)
