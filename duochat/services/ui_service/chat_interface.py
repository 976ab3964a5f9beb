"""
Chat interface service - Streamlit rendering over the chat core.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import streamlit as st

from duochat.config.app_config import AppConfig, get_config
from duochat.services.ai_service.models import Draft
from duochat.services.ai_service.streaming_session import StreamingSessionController
from duochat.services.ai_service.transport import TransportAdapter, build_transports
from duochat.services.chat_service.catalog_manager import CatalogManager
from duochat.services.chat_service.chat_repository import ChatRepository, SQLiteKeyValueStore
from duochat.services.chat_service.conversation_store import ConversationStore
from duochat.services.chat_service.exceptions import ChatError
from duochat.services.chat_service.models import (
    BACKENDS,
    CatalogEntry,
    ChatContext,
    ChatSettings,
    FileAttachment,
    MessageStats,
    Turn,
)
from duochat.utils.logging_config import get_error_tracker, get_logger


CURSOR = "▌"
BACKEND_LABELS = {"openai": "OpenAI", "deepseek": "DeepSeek"}


def format_stats(stats: Optional[MessageStats]) -> str:
    """Footer shown under a model turn, empty when nothing was counted"""
    if stats is None or stats.token_count <= 0:
        return ""
    return f"{stats.token_count} tokens · {stats.speed:.1f} tokens/s"


def display_turns(turns: List[Turn], greeting: str) -> List[Turn]:
    """Turns to render; an empty conversation shows the greeting only"""
    if not turns:
        return [Turn.model(greeting)]
    return list(turns)


class StreamRenderer:
    """Redraws the in-progress draft every few chunks"""

    def __init__(self, placeholder, update_every: int = 1):
        self.placeholder = placeholder
        self.update_every = max(1, update_every)
        self.counter = 0

    def __call__(self, draft: Draft):
        self.counter += 1
        if self.counter % self.update_every == 0:
            self.placeholder.markdown(draft.text + CURSOR)

    def clear(self):
        self.placeholder.empty()


@dataclass
class ChatApp:
    """Per-browser-session objects wired around one ChatContext"""
    config: AppConfig
    context: ChatContext
    repository: ChatRepository
    store: ConversationStore
    catalog: CatalogManager
    controller: StreamingSessionController


def build_chat_app(config: Optional[AppConfig] = None,
                   transports: Optional[Dict[str, TransportAdapter]] = None,
                   repository: Optional[ChatRepository] = None) -> ChatApp:
    """Create the context and services once, then open the newest conversation"""
    config = config or get_config()
    repository = repository or ChatRepository(
        SQLiteKeyValueStore(config.storage.db_path),
        catalog_key=config.storage.catalog_key,
        conversation_key_prefix=config.storage.conversation_key_prefix
    )
    context = ChatContext()
    store = ConversationStore(
        context,
        repository,
        default_settings=config.default_settings(),
        default_title=config.ui.default_title,
        title_max_length=config.ui.title_max_length
    )
    catalog = CatalogManager(context, repository, store)
    controller = StreamingSessionController(
        store,
        transports if transports is not None else build_transports(config),
        default_backend=config.llm.default_backend,
        error_tracker=get_error_tracker(),
        error_message=config.ui.error_message
    )

    catalog.reload()
    first = catalog.first_active()
    if first is not None:
        store.load(first.id)
    return ChatApp(config, context, repository, store, catalog, controller)


def get_chat_app() -> ChatApp:
    """The ChatApp of the current Streamlit session"""
    if "chat_app" not in st.session_state:
        st.session_state.chat_app = build_chat_app()
    return st.session_state.chat_app


class ChatInterface:
    """
    Service for chat interface components and interactions.
    Handles the conversation sidebar, message rendering and streaming.
    """

    def __init__(self, app: ChatApp):
        self.logger = get_logger(__name__)
        self.app = app
        self.config = app.config

    def _guard(self, action, *args, **kwargs):
        """Run a core operation, showing its user message on failure"""
        try:
            return action(*args, **kwargs)
        except ChatError as e:
            self.logger.warning(f"UI action rejected: {e}")
            st.toast(e.user_message)
            return None

    def _render_entry(self, entry: CatalogEntry):
        app = self.app
        is_current = entry.id == app.context.active_id
        icon = "📌" if entry.pinned else ("🗄️" if entry.archived else "💬")

        cols = st.columns([6, 1])
        with cols[0]:
            if st.button(f"{icon} {entry.title}", key=f"open_{entry.id}", use_container_width=True,
                         type="primary" if is_current else "secondary"):
                self._guard(app.catalog.open, entry.id)
                st.rerun()
        with cols[1]:
            with st.popover("⋯"):
                if not entry.archived:
                    if st.button("Unpin" if entry.pinned else "Pin", key=f"pin_{entry.id}"):
                        app.catalog.toggle_pin(entry.id)
                        st.rerun()
                if st.button("Unarchive" if entry.archived else "Archive", key=f"archive_{entry.id}"):
                    self._guard(app.catalog.toggle_archive, entry.id)
                    st.rerun()
                new_title = st.text_input("Title", value=entry.title, key=f"title_{entry.id}")
                if st.button("Rename", key=f"rename_{entry.id}") and new_title.strip():
                    app.catalog.rename(entry.id, new_title.strip())
                    st.rerun()
                if st.button("Delete", key=f"delete_{entry.id}", type="primary"):
                    self._guard(app.catalog.delete, entry.id)
                    st.rerun()

    def render_conversation_sidebar(self):
        """Render the conversation sidebar"""
        app = self.app

        with st.sidebar:
            st.markdown("## 💬 Conversations")

            if st.button("➕ New Chat", use_container_width=True, disabled=app.context.busy):
                self._guard(app.store.start_new)
                st.rerun()

            active = app.catalog.active_entries()
            st.caption(f"📊 {len(active)} conversation{'s' if len(active) != 1 else ''}")
            for entry in active:
                self._render_entry(entry)

            archived = app.catalog.archived_entries()
            if archived:
                with st.expander(f"🗄️ Archived ({len(archived)})", expanded=False):
                    for entry in archived:
                        self._render_entry(entry)

            st.divider()
            self.render_settings()

            if app.store.turns:
                title = app.store.title_for(app.context.active_id) or "chat-export"
                st.download_button(
                    "⬇️ Export as Markdown",
                    data=app.store.export_markdown(title),
                    file_name=f"{title}.md",
                    mime="text/markdown",
                    use_container_width=True
                )

            if self.config.debug:
                self._render_system_status()

    def _render_system_status(self):
        """Error counts of this session, shown in debug mode"""
        summary = self.app.controller.error_tracker.get_error_summary()
        st.markdown("### 🔧 System Status")
        if not summary["total_errors"]:
            st.caption("🟢 No errors")
            return
        st.caption(f"🔴 {summary['total_errors']} errors ({summary['unique_errors']} kinds)")
        for key, count in summary["error_breakdown"].items():
            st.caption(f"{key}: {count}")

    def render_settings(self):
        """Per-conversation backend, system instruction and temperature"""
        app = self.app
        settings = app.store.settings

        with st.expander("⚙️ Settings", expanded=False):
            with st.form("chat_settings"):
                backend = settings.backend(self.config.llm.default_backend)
                model = st.selectbox(
                    "Model",
                    BACKENDS,
                    index=BACKENDS.index(backend) if backend in BACKENDS else 0,
                    format_func=lambda key: BACKEND_LABELS.get(key, key)
                )
                instruction = st.text_area("System instruction", value=settings.system_instruction or "")
                temperature = st.slider(
                    "Temperature", 0.0, 1.0,
                    value=float(settings.temperature if settings.temperature is not None
                                else self.config.llm.temperature),
                    step=0.05
                )
                if st.form_submit_button("Save"):
                    app.store.update_settings(ChatSettings(
                        system_instruction=instruction.strip() or None,
                        temperature=temperature,
                        model=model
                    ))
                    st.toast("Settings saved")

    def _render_turn(self, index: Optional[int], turn: Turn, is_last: bool):
        with st.chat_message("user" if turn.is_user else "assistant"):
            if turn.file is not None:
                if turn.file.is_image:
                    st.image(turn.file.data)
                else:
                    st.caption(f"📎 {turn.file.name or turn.file.mime_type}")
            st.markdown(turn.content)

            if turn.citations:
                st.markdown("**Sources:**\n" + "\n".join(
                    f"{i}. [{c.title}]({c.uri})" for i, c in enumerate(turn.citations, 1)
                ))
            footer = format_stats(turn.stats)
            if footer:
                st.caption(footer)

            if index is None or self.app.context.busy:
                return
            if turn.is_user:
                with st.popover("✏️ Edit"):
                    new_text = st.text_area("Message", value=turn.content, key=f"edit_text_{index}")
                    if st.button("Save & Submit", key=f"edit_submit_{index}"):
                        st.session_state.pending_action = ("edit", index, new_text)
                        st.rerun()
            elif is_last:
                if st.button("🔄 Regenerate", key=f"regenerate_{index}"):
                    st.session_state.pending_action = ("regenerate",)
                    st.rerun()

    def render_chat_messages(self):
        """Render the conversation, or the greeting when it is empty"""
        turns = self.app.store.turns
        if not turns:
            self._render_turn(None, display_turns(turns, self.config.ui.greeting)[0], False)
        for index, turn in enumerate(turns):
            self._render_turn(index, turn, index == len(turns) - 1)

        error = self.app.controller.consume_ephemeral_error()
        if error is not None:
            with st.chat_message("assistant"):
                st.error(error.content)

    def _stream(self, action, *args, **kwargs):
        """Run one exchange, drawing the draft as it grows"""
        controller = self.app.controller
        with st.chat_message("assistant"):
            placeholder = st.empty()
            st.button("⏹️ Stop", key="stop_streaming", on_click=controller.cancel)
            renderer = StreamRenderer(placeholder, update_every=self.config.streaming.update_every)
            self._guard(action, *args, on_chunk=renderer, **kwargs)
            renderer.clear()
        st.rerun()

    def run(self):
        """Render one pass of the page and process the pending input"""
        app = self.app
        self.render_conversation_sidebar()
        self.render_chat_messages()

        search_enabled = st.toggle("🌐 Web search", key="search_enabled")
        upload = st.file_uploader("Attach a file", key="attachment",
                                  type=["png", "jpg", "jpeg", "gif", "webp", "pdf", "txt"])
        prompt = st.chat_input("Type a message...")

        pending = st.session_state.pop("pending_action", None)
        if pending is not None:
            if pending[0] == "edit":
                self._stream(app.controller.edit, pending[1], pending[2], search_enabled=search_enabled)
            else:
                self._stream(app.controller.regenerate, search_enabled=search_enabled)
        elif prompt:
            file = None
            if upload is not None:
                file = FileAttachment(data=upload.getvalue(), mime_type=upload.type, name=upload.name)
            with st.chat_message("user"):
                st.markdown(prompt)
            self._stream(app.controller.submit, prompt, file, search_enabled=search_enabled)


def get_chat_interface() -> ChatInterface:
    """Chat interface bound to the current Streamlit session"""
    return ChatInterface(get_chat_app())
