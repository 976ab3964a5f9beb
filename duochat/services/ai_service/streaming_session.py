"""
Streaming session controller - drives one exchange from open to commit.

States: IDLE -> OPENING -> STREAMING -> {COMMITTING, CANCELLED, FAILED} -> IDLE
"""

import math
import time
from typing import Callable, Dict, Optional

from duochat.services.ai_service.models import (
    CancellationToken,
    Draft,
    SessionOutcome,
    SessionResult,
    SessionState,
    StreamRequest,
    Usage,
)
from duochat.services.ai_service.transport import TransportAdapter
from duochat.services.chat_service.conversation_store import ConversationStore
from duochat.services.chat_service.exceptions import ChatError, SessionBusyError, TransportOpenFailure
from duochat.services.chat_service.models import BACKEND_OPENAI, FileAttachment, MessageStats, Turn
from duochat.utils.logging_config import (
    ErrorTracker,
    get_logger,
    log_model_usage,
    log_user_interaction,
)


ChunkCallback = Callable[[Draft], None]

DEFAULT_ERROR_MESSAGE = "Sorry, something went wrong. Please try again."


def compute_stats(usage: Optional[Usage], elapsed_seconds: float) -> MessageStats:
    """
    Token count and throughput of a finished response.

    A zero elapsed time reports the token count itself as the speed.
    """
    tokens = usage.total_tokens if usage is not None and usage.total_tokens else 0
    if tokens <= 0:
        return MessageStats(token_count=0, speed=0.0)

    speed = tokens / elapsed_seconds if elapsed_seconds > 0 else float(tokens)
    if not math.isfinite(speed):
        speed = 0.0
    return MessageStats(token_count=tokens, speed=speed)


class StreamingSessionController:
    """
    Runs exchanges against the active conversation, one at a time.

    Only committed turns reach the ConversationStore; failures surface as a
    single display-only error turn that is never persisted.
    """

    def __init__(self, store: ConversationStore, transports: Dict[str, TransportAdapter],
                 default_backend: str = BACKEND_OPENAI,
                 clock: Callable[[], float] = time.perf_counter,
                 error_tracker: Optional[ErrorTracker] = None,
                 error_message: str = DEFAULT_ERROR_MESSAGE):
        self.logger = get_logger(__name__)
        self.store = store
        self.transports = transports
        self.default_backend = default_backend
        self.clock = clock
        self.error_tracker = error_tracker or ErrorTracker(self.logger)
        self.error_message = error_message

        self.state = SessionState.IDLE
        self.ephemeral_error: Optional[Turn] = None
        self.last_result: Optional[SessionResult] = None
        self._token: Optional[CancellationToken] = None

    @property
    def is_active(self) -> bool:
        return self.state in (SessionState.OPENING, SessionState.STREAMING)

    def cancel(self) -> bool:
        """Request cancellation of the running exchange"""
        if not self.is_active or self._token is None:
            return False
        self._token.cancel()
        self.logger.info("Cancellation requested", extra={"session_state": self.state.value})
        return True

    def consume_ephemeral_error(self) -> Optional[Turn]:
        """Return the pending error turn once; it is gone on the next render"""
        error, self.ephemeral_error = self.ephemeral_error, None
        return error

    def submit(self, text: str, file: Optional[FileAttachment] = None,
               search_enabled: bool = False,
               on_chunk: Optional[ChunkCallback] = None) -> Optional[SessionResult]:
        """Send when idle, stop when an exchange is running"""
        if self.is_active:
            self.cancel()
            return None
        return self.send(text, file=file, search_enabled=search_enabled, on_chunk=on_chunk)

    def send(self, text: str, file: Optional[FileAttachment] = None,
             search_enabled: bool = False,
             on_chunk: Optional[ChunkCallback] = None) -> SessionResult:
        self._reject_if_active()
        text = (text or "").strip()
        if not text and file is None:
            return self._finish(SessionResult(SessionOutcome.IGNORED))

        self.ephemeral_error = None
        try:
            transport = self._select_transport()
            transport.check_attachment(file)
        except ChatError as e:
            return self._reject(e, "send")

        log_user_interaction(self.logger, "send", conversation_id=self.store.active_id,
                             has_file=file is not None, search_enabled=search_enabled)
        self.store.append_user(text, file=file)
        return self._run(transport, search_enabled, on_chunk)

    def regenerate(self, search_enabled: bool = False,
                   on_chunk: Optional[ChunkCallback] = None) -> SessionResult:
        """Drop the last model turn and answer the preceding user turn again"""
        self._reject_if_active()
        turns = self.store.turns
        if len(turns) < 2 or not turns[-1].is_model or not turns[-2].is_user:
            return self._finish(SessionResult(SessionOutcome.IGNORED))

        self.ephemeral_error = None
        try:
            transport = self._select_transport()
            transport.check_attachment(turns[-2].file)
        except ChatError as e:
            return self._reject(e, "regenerate")

        log_user_interaction(self.logger, "regenerate", conversation_id=self.store.active_id)
        self.store.regenerate_last()
        return self._run(transport, search_enabled, on_chunk)

    def edit(self, index: int, new_text: str, search_enabled: bool = False,
             on_chunk: Optional[ChunkCallback] = None) -> SessionResult:
        """Replace a user turn, drop what followed and answer it again"""
        self._reject_if_active()
        if not 0 <= index < len(self.store.turns):
            return self._finish(SessionResult(SessionOutcome.IGNORED))
        original = self.store.turns[index]
        new_text = (new_text or "").strip()
        if not original.is_user or not new_text or new_text == original.content:
            return self._finish(SessionResult(SessionOutcome.IGNORED))

        self.ephemeral_error = None
        try:
            transport = self._select_transport()
            transport.check_attachment(original.file)
        except ChatError as e:
            return self._reject(e, "edit")

        log_user_interaction(self.logger, "edit", conversation_id=self.store.active_id, turn_index=index)
        self.store.edit_user(index, new_text)
        return self._run(transport, search_enabled, on_chunk)

    def _reject_if_active(self):
        if self.is_active:
            raise SessionBusyError("An exchange is already streaming")

    def _select_transport(self) -> TransportAdapter:
        backend = self.store.settings.backend(self.default_backend)
        transport = self.transports.get(backend)
        if transport is None:
            raise TransportOpenFailure(f"No transport configured for backend '{backend}'")
        return transport

    def _run(self, transport: TransportAdapter, search_enabled: bool,
             on_chunk: Optional[ChunkCallback]) -> SessionResult:
        turns = self.store.turns
        request = StreamRequest(
            history=list(turns[:-1]),
            message=turns[-1],
            settings=self.store.settings,
            search_enabled=search_enabled
        )
        token = CancellationToken()
        self._token = token
        self.store.context.busy = True
        self.state = SessionState.OPENING
        started_at = self.clock()
        stream = None
        draft = None

        try:
            stream = transport.open(request, token)
            self.state = SessionState.STREAMING
            draft = Draft(started_at=started_at)
            saw_final = False

            for chunk in stream:
                if token.cancelled:
                    break
                draft.apply(chunk)
                saw_final = saw_final or chunk.is_final
                if on_chunk is not None:
                    on_chunk(draft)

            elapsed = self.clock() - started_at
            if token.cancelled and not saw_final:
                return self._finish(self._commit_cancelled(draft, elapsed))
            return self._finish(self._commit(draft, elapsed, transport))

        except Exception as e:
            self.state = SessionState.FAILED
            self.error_tracker.track_error(e, "streaming_session", backend=transport.backend_id,
                                           conversation_id=self.store.active_id)
            self._surface(e)
            return self._finish(SessionResult(SessionOutcome.FAILED, error=e))

        except BaseException:
            # A script rerun or interrupt stops the run; keep the text that arrived
            if draft is not None and self.state is SessionState.STREAMING:
                self._finish(self._commit_cancelled(draft, self.clock() - started_at))
            raise

        finally:
            if stream is not None and hasattr(stream, "close"):
                stream.close()
            self._token = None
            self.store.context.busy = False
            self.state = SessionState.IDLE

    def _commit(self, draft: Draft, elapsed: float, transport: TransportAdapter) -> SessionResult:
        self.state = SessionState.COMMITTING
        stats = compute_stats(draft.usage, elapsed)
        turn = Turn.model(draft.text, stats=stats, citations=draft.final_citations())
        self.store.append_model(turn)
        log_model_usage(self.logger, transport.backend_id, stats.token_count,
                        speed=round(stats.speed, 2), chunk_count=draft.chunk_count,
                        citation_count=len(turn.citations), duration_seconds=round(elapsed, 3))
        return SessionResult(SessionOutcome.COMPLETED, turn=turn)

    def _commit_cancelled(self, draft: Draft, elapsed: float) -> SessionResult:
        self.state = SessionState.CANCELLED
        if not draft.has_content:
            self.logger.info("Exchange cancelled before any text arrived")
            return SessionResult(SessionOutcome.DISCARDED)

        turn = Turn.model(draft.text, stats=compute_stats(draft.usage, elapsed),
                          citations=draft.final_citations())
        self.store.append_model(turn)
        self.logger.info(f"Exchange cancelled, kept {len(turn.content)} characters")
        return SessionResult(SessionOutcome.CANCELLED, turn=turn)

    def _reject(self, error: ChatError, action: str) -> SessionResult:
        self.logger.warning(f"Rejected {action}: {error}")
        self._surface(error)
        return self._finish(SessionResult(SessionOutcome.FAILED, error=error))

    def _surface(self, error: Exception):
        message = error.user_message if isinstance(error, ChatError) else self.error_message
        self.ephemeral_error = Turn.model(message)

    def _finish(self, result: SessionResult) -> SessionResult:
        self.last_result = result
        return result
