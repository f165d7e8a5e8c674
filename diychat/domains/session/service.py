"""Session service: message persistence, context packages and titles."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from diychat.ai.generation import GenerationBackend
from diychat.ai.providers.base import LLMMessage
from diychat.ai.tokens import CharRatioTokenEstimator, TokenEstimator
from diychat.domains.session.titles import (
    TITLE_MAX_TOKENS,
    TITLE_TEMPERATURE,
    build_title_messages,
    clean_title,
    track_title_task,
)
from diychat.domains.summary import SummarizerService, SummaryResult
from diychat.exceptions import (
    AppError,
    InvalidRoleError,
    SessionNotFoundError,
    StorageInconsistencyError,
    SummaryNotFoundError,
)
from diychat.infrastructure.clock import Clock, now_ms
from diychat.infrastructure.storage import (
    FileContentStore,
    MetadataIndex,
    report_missing_content,
)
from diychat.models import VALID_ROLES, Message, Session
from diychat.schemas.content import MessageContent, SummaryContent
from diychat.schemas.context import ContextPackage
from diychat.schemas.session import (
    MessageListResponse,
    MessageResponse,
    SessionDetailResponse,
    SessionListResponse,
    SessionResponse,
)

logger = logging.getLogger("session")


def summary_system_message(summary_text: str) -> LLMMessage:
    """The single system item carrying a prior summary into a generation call."""
    return LLMMessage(
        role="system",
        content=(
            f"## Previous Conversation Summary\n{summary_text}\n\n"
            "Continue the conversation based on this context."
        ),
    )


@dataclass
class ApiContext:
    """Context package rendered as backend-ready messages."""

    messages: list[LLMMessage]
    has_summary: bool
    active_message_count: int


@dataclass
class IntegrityReport:
    """Cross-check of metadata rows against stored content for one session."""

    session_id: uuid.UUID
    missing_message_ids: list[uuid.UUID] = field(default_factory=list)
    missing_summary_ids: list[uuid.UUID] = field(default_factory=list)
    orphan_content_ids: list[str] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.missing_message_ids and not self.missing_summary_ids


def _session_response(session: Session) -> SessionResponse:
    return SessionResponse.model_validate(session)


class SessionService:
    """Service for session lifecycle and the per-turn context engine."""

    def __init__(
        self,
        index: MetadataIndex,
        store: FileContentStore,
        summarizer: SummarizerService,
        *,
        title_backend: GenerationBackend | None = None,
        token_estimator: TokenEstimator | None = None,
        default_page_size: int | None = None,
        clock: Clock = now_ms,
    ):
        from diychat.config import get_settings

        self.index = index
        self.store = store
        self.summarizer = summarizer
        self.title_backend = title_backend
        self.token_estimator = token_estimator or CharRatioTokenEstimator()
        self.default_page_size = default_page_size or get_settings().default_page_size
        self.clock = clock

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(
        self,
        title: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> SessionResponse:
        session = await self.index.create_session(title=title, metadata=metadata)
        return _session_response(session)

    async def get_session(
        self,
        session_id: uuid.UUID,
        page_size: int | None = None,
    ) -> SessionDetailResponse | None:
        """Session fields plus its most recent page of messages."""
        session = await self.index.get_session(session_id)
        if session is None:
            return None

        page = await self.get_messages(session_id, limit=page_size or self.default_page_size)
        return SessionDetailResponse(
            **_session_response(session).model_dump(),
            messages=page.messages,
        )

    async def list_sessions(self, limit: int = 20, offset: int = 0) -> SessionListResponse:
        sessions, total = await self.index.list_sessions(limit=limit, offset=offset)
        return SessionListResponse(
            sessions=[_session_response(s) for s in sessions],
            total=total,
            limit=limit,
            offset=offset,
        )

    async def delete_session(self, session_id: uuid.UUID) -> bool:
        """Delete metadata, then content. Repeat calls are no-ops.

        Removing metadata first means a crash in between leaves only orphan
        blobs, never rows pointing at missing content.
        """
        deleted_rows = await self.index.delete_session(session_id)
        deleted_content = await self.store.delete_session(session_id)
        if deleted_rows or deleted_content:
            logger.info(
                "Session deleted",
                extra={"service": "session", "session_id": str(session_id)},
            )
        return deleted_rows

    async def update_title(self, session_id: uuid.UUID, title: str | None) -> SessionResponse:
        session = await self.index.update_session(session_id, title=title, update_activity=False)
        return _session_response(session)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def add_message(
        self,
        session_id: uuid.UUID,
        role: str,
        content: str,
        *,
        tool_used: str | None = None,
        sources: list[dict[str, Any]] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> MessageResponse:
        """Persist content first, then the metadata row referencing it.

        Raises:
            InvalidRoleError: If role is not user/assistant/system.
            SessionNotFoundError: Before any write, if the session is unknown.
        """
        if role not in VALID_ROLES:
            raise InvalidRoleError(role, list(VALID_ROLES))
        await self.index.require_session(session_id)

        message_id = uuid.uuid4()
        tokens = self.token_estimator.estimate(content)
        record = MessageContent(
            id=message_id,
            session_id=session_id,
            role=role,
            content=content,
            tool_used=tool_used,
            sources=sources or [],
            metadata=metadata or {},
            created_at=self.clock(),
        )
        path = await self.store.save_message(record)
        row = await self.index.create_message(
            session_id,
            role=role,
            content_path=self.store.relative_path(path),
            tokens=tokens,
            message_id=message_id,
        )

        logger.info(
            "Message added",
            extra={
                "service": "session",
                "session_id": str(session_id),
                "message_id": str(message_id),
                "role": role,
                "tokens": tokens,
            },
        )
        return self._message_response(row, record)

    async def get_message(
        self, session_id: uuid.UUID, message_id: uuid.UUID
    ) -> MessageResponse | None:
        row = await self.index.get_message(session_id, message_id)
        if row is None:
            return None
        return await self._resolve(row)

    async def get_messages(
        self,
        session_id: uuid.UUID,
        limit: int = 50,
        before_id: uuid.UUID | None = None,
    ) -> MessageListResponse:
        """Cursor-paginated messages, oldest-first within the page."""
        rows = await self.index.list_messages(session_id, limit=limit, before_id=before_id)
        return MessageListResponse(messages=[await self._resolve(row) for row in rows])

    async def get_summary(
        self, session_id: uuid.UUID, summary_id: uuid.UUID
    ) -> SummaryContent | None:
        """Stored summary record; None (logged) when its blob is missing.

        Raises:
            SummaryNotFoundError: If the session has no such summary.
        """
        row = await self.index.get_summary(session_id, summary_id)
        if row is None:
            raise SummaryNotFoundError(summary_id, session_id)
        content = await self.store.get_summary(session_id, row.id)
        if content is None:
            report_missing_content(session_id, row.id, "summary")
        return content

    # ------------------------------------------------------------------
    # Context engine
    # ------------------------------------------------------------------

    async def get_context_for_request(self, session_id: uuid.UUID) -> ContextPackage:
        """Summarize if due, then return summary + unsummarized messages.

        Raises:
            SessionNotFoundError: If the session does not exist.
            TransientBackendError: If due summarization failed (no writes).
        """
        return await self.summarizer.get_session_context(session_id)

    async def start_turn(
        self,
        session_id: uuid.UUID,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[MessageResponse, ContextPackage]:
        """Record an incoming user message and build the context for replying.

        The idle check runs before the append, since appending moves
        ``last_activity_at``. The returned context includes the new message.
        """
        await self.index.require_session(session_id)
        await self.summarizer.maybe_summarize(session_id)
        user_message = await self.add_message(session_id, "user", content, metadata=metadata)
        context = await self.summarizer.build_context(session_id)
        return user_message, context

    async def get_context_for_api_call(self, session_id: uuid.UUID) -> ApiContext:
        """Context package with the summary rendered as a leading system message."""
        context = await self.get_context_for_request(session_id)
        return self.render_api_context(context)

    @staticmethod
    def render_api_context(context: ContextPackage) -> ApiContext:
        messages: list[LLMMessage] = []
        if context.summary_text:
            messages.append(summary_system_message(context.summary_text))
        messages.extend(
            LLMMessage(role=m.role, content=m.content) for m in context.active_messages
        )
        return ApiContext(
            messages=messages,
            has_summary=context.has_summary,
            active_message_count=context.active_message_count,
        )

    async def run_maintenance_summary(self, session_id: uuid.UUID) -> SummaryResult | None:
        """Summarize unconditionally (ignores idle window and threshold)."""
        await self.index.require_session(session_id)
        return await self.summarizer.generate_summary(session_id)

    # ------------------------------------------------------------------
    # Titles
    # ------------------------------------------------------------------

    async def generate_title(self, session_id: uuid.UUID) -> str | None:
        """Title the session from its first user message.

        Never raises: backend, storage and index failures are logged and
        leave the session untitled.
        """
        if self.title_backend is None:
            return None

        try:
            first = await self.index.get_first_message(session_id, role="user")
            if first is None:
                return None
            content = await self.store.get_message(session_id, first.id)
            if content is None:
                report_missing_content(session_id, first.id, "message")
                return None

            response = await self.title_backend.generate(
                build_title_messages(content.content),
                operation="title",
                temperature=TITLE_TEMPERATURE,
                max_tokens=TITLE_MAX_TOKENS,
                session_id=session_id,
            )
            title = clean_title(response.content)
            if not title:
                return None

            await self.index.update_session(session_id, title=title, update_activity=False)
        except Exception as e:
            # Titles are cosmetic; any failure leaves the session untitled
            logger.warning(
                "Title generation failed",
                extra={
                    "service": "session",
                    "session_id": str(session_id),
                    "error_code": e.code if isinstance(e, AppError) else type(e).__name__,
                    "error": str(e),
                },
                exc_info=not isinstance(e, AppError),
            )
            return None

        logger.info(
            "Title generated",
            extra={
                "service": "session",
                "session_id": str(session_id),
                "metadata": {"title": title},
            },
        )
        return title

    def schedule_title_generation(self, session_id: uuid.UUID) -> asyncio.Task[str | None]:
        """Fire-and-forget title generation, off the request path."""
        return track_title_task(self._maybe_generate_title(session_id))

    async def _maybe_generate_title(self, session_id: uuid.UUID) -> str | None:
        try:
            session = await self.index.get_session(session_id)
            if session is None or session.title:
                return None
            if await self.index.count_messages(session_id) < 2:
                return None
            return await self.generate_title(session_id)
        except Exception:
            logger.error(
                "Background title task failed",
                extra={"service": "session", "session_id": str(session_id)},
                exc_info=True,
            )
            return None

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    async def check_integrity(
        self,
        session_id: uuid.UUID,
        *,
        strict: bool = False,
    ) -> IntegrityReport:
        """Compare metadata rows with stored blobs.

        Rows without content are reported (and logged); blobs without rows are
        listed as orphans, which are harmless leftovers of interrupted writes.

        Raises:
            SessionNotFoundError: If the session does not exist.
            StorageInconsistencyError: In strict mode, on the first missing blob.
        """
        await self.index.require_session(session_id)

        report = IntegrityReport(session_id=session_id)
        errors: list[StorageInconsistencyError] = []

        message_rows = await self.index.list_messages(session_id, limit=None)
        stored_messages = await self.store.list_content_ids(session_id, "messages")
        for row in message_rows:
            if str(row.id) not in stored_messages:
                report.missing_message_ids.append(row.id)
                errors.append(report_missing_content(session_id, row.id, "message"))

        summary_rows = await self.index.list_summaries(session_id)
        stored_summaries = await self.store.list_content_ids(session_id, "summaries")
        for summary in summary_rows:
            if str(summary.id) not in stored_summaries:
                report.missing_summary_ids.append(summary.id)
                errors.append(report_missing_content(session_id, summary.id, "summary"))

        known = {str(r.id) for r in message_rows} | {str(s.id) for s in summary_rows}
        report.orphan_content_ids = sorted((stored_messages | stored_summaries) - known)

        if strict and errors:
            raise errors[0]
        return report

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _resolve(self, row: Message) -> MessageResponse:
        content = await self.store.get_message(row.session_id, row.id)
        if content is None:
            report_missing_content(row.session_id, row.id, "message")
        return self._message_response(row, content)

    @staticmethod
    def _message_response(row: Message, content: MessageContent | None) -> MessageResponse:
        return MessageResponse(
            id=row.id,
            role=content.role if content else row.role,
            content=content.content if content else "",
            tool_used=content.tool_used if content else None,
            sources=content.sources if content else [],
            metadata=content.metadata if content else {},
            is_summarized=row.is_summarized,
            created_at=row.created_at,
        )


__all__ = [
    "ApiContext",
    "IntegrityReport",
    "SessionService",
    "summary_system_message",
]
