"""Relational index of sessions, message references and summary references.

Every public method opens its own transaction, so multi-statement updates
(summary insert + message marking + pointer move) commit or roll back as one.
"""

import logging
import uuid
from collections.abc import Iterable
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from diychat.exceptions import InvalidRoleError, MessageNotFoundError, SessionNotFoundError
from diychat.infrastructure.clock import Clock, now_ms
from diychat.models import VALID_ROLES, Message, Session, Summary

logger = logging.getLogger("storage")

# Sentinel for "leave this field unchanged" in partial updates
UNSET: Any = object()

# Attempts for inserts that can lose a per-session numbering race
WRITE_ATTEMPTS = 10


class MetadataIndex:
    """Queryable metadata for sessions, messages and summaries."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = now_ms,
        write_attempts: int = WRITE_ATTEMPTS,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.write_attempts = max(1, write_attempts)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(
        self,
        title: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Session:
        now = self.clock()
        session = Session(
            id=uuid.uuid4(),
            title=title,
            created_at=now,
            updated_at=now,
            last_activity_at=now,
            current_summary_id=None,
            metadata_=dict(metadata or {}),
        )
        async with self.session_factory() as db, db.begin():
            db.add(session)

        logger.info(
            "Session created",
            extra={"service": "storage", "session_id": str(session.id)},
        )
        return session

    async def get_session(self, session_id: uuid.UUID) -> Session | None:
        async with self.session_factory() as db:
            return await db.get(Session, session_id)

    async def require_session(self, session_id: uuid.UUID) -> Session:
        session = await self.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def list_sessions(self, limit: int = 20, offset: int = 0) -> tuple[list[Session], int]:
        """Sessions ordered by most recent activity, plus the total count."""
        async with self.session_factory() as db:
            total = await db.scalar(select(func.count()).select_from(Session))
            result = await db.execute(
                select(Session)
                .order_by(Session.last_activity_at.desc(), Session.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all()), int(total or 0)

    async def update_session(
        self,
        session_id: uuid.UUID,
        *,
        title: str | None = UNSET,
        metadata: dict[str, Any] = UNSET,
        update_activity: bool = True,
    ) -> Session:
        """Apply a partial update.

        ``updated_at`` always moves; ``last_activity_at`` only moves when
        ``update_activity`` is true, so background writes (titles) do not
        reset the idle timer.
        """
        async with self.session_factory() as db, db.begin():
            session = await db.get(Session, session_id)
            if session is None:
                raise SessionNotFoundError(session_id)

            now = self.clock()
            if title is not UNSET:
                session.title = title
            if metadata is not UNSET:
                session.metadata_ = dict(metadata or {})
            session.updated_at = max(now, session.updated_at)
            if update_activity:
                session.last_activity_at = max(now, session.last_activity_at)
        return session

    async def delete_session(self, session_id: uuid.UUID) -> bool:
        """Delete a session with its messages and summaries. False if absent."""
        async with self.session_factory() as db, db.begin():
            await db.execute(delete(Message).where(Message.session_id == session_id))
            await db.execute(delete(Summary).where(Summary.session_id == session_id))
            result = await db.execute(delete(Session).where(Session.id == session_id))
            deleted = (result.rowcount or 0) > 0

        if deleted:
            logger.info(
                "Session metadata deleted",
                extra={"service": "storage", "session_id": str(session_id)},
            )
        return deleted

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def create_message(
        self,
        session_id: uuid.UUID,
        *,
        role: str,
        content_path: str,
        tokens: int,
        message_id: uuid.UUID | None = None,
    ) -> Message:
        """Insert a message reference and bump the session's activity.

        ``sequence`` is the next integer for the session and ``created_at``
        never goes below the previous message's, so both orderings agree.
        Concurrent appends to one session are serialized on the session row;
        where the database cannot lock rows, a lost race on ``sequence`` is
        retried with a fresh read.
        """
        if role not in VALID_ROLES:
            raise InvalidRoleError(role, list(VALID_ROLES))

        message_id = message_id or uuid.uuid4()
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.session_factory() as db, db.begin():
                    return await self._insert_message(
                        db, session_id, role, content_path, tokens, message_id
                    )
            except IntegrityError:
                if attempt >= self.write_attempts:
                    raise
                logger.debug(
                    "Message sequence conflict, retrying",
                    extra={
                        "service": "storage",
                        "session_id": str(session_id),
                        "message_id": str(message_id),
                        "attempt": attempt,
                    },
                )

    async def _insert_message(
        self,
        db: AsyncSession,
        session_id: uuid.UUID,
        role: str,
        content_path: str,
        tokens: int,
        message_id: uuid.UUID,
    ) -> Message:
        session = await db.get(Session, session_id, with_for_update=True)
        if session is None:
            raise SessionNotFoundError(session_id)

        row = (
            await db.execute(
                select(Message.sequence, Message.created_at)
                .where(Message.session_id == session_id)
                .order_by(Message.sequence.desc())
                .limit(1)
            )
        ).first()
        last_sequence, last_created_at = (row[0], row[1]) if row else (0, 0)

        created_at = max(self.clock(), last_created_at)
        message = Message(
            id=message_id,
            session_id=session_id,
            role=role,
            content_path=content_path,
            tokens=tokens,
            is_summarized=False,
            sequence=last_sequence + 1,
            created_at=created_at,
        )
        db.add(message)

        session.last_activity_at = max(created_at, session.last_activity_at)
        session.updated_at = max(created_at, session.updated_at)
        await db.flush()
        return message

    async def get_message(
        self, session_id: uuid.UUID, message_id: uuid.UUID
    ) -> Message | None:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Message).where(
                    Message.id == message_id,
                    Message.session_id == session_id,
                )
            )
            return result.scalar_one_or_none()

    async def get_first_message(
        self, session_id: uuid.UUID, role: str | None = None
    ) -> Message | None:
        """Oldest message in the session, optionally restricted to one role."""
        async with self.session_factory() as db:
            query = select(Message).where(Message.session_id == session_id)
            if role is not None:
                query = query.where(Message.role == role)
            result = await db.execute(query.order_by(Message.sequence).limit(1))
            return result.scalar_one_or_none()

    async def count_messages(self, session_id: uuid.UUID) -> int:
        async with self.session_factory() as db:
            count = await db.scalar(
                select(func.count()).select_from(Message).where(Message.session_id == session_id)
            )
            return int(count or 0)

    async def list_messages(
        self,
        session_id: uuid.UUID,
        limit: int | None = 50,
        before_id: uuid.UUID | None = None,
    ) -> list[Message]:
        """Page backwards from the newest message; each page is oldest-first.

        ``limit=None`` returns the whole history.
        """
        async with self.session_factory() as db:
            if await db.get(Session, session_id) is None:
                raise SessionNotFoundError(session_id)

            query = select(Message).where(Message.session_id == session_id)
            if before_id is not None:
                cursor = await db.scalar(
                    select(Message.sequence).where(
                        Message.id == before_id,
                        Message.session_id == session_id,
                    )
                )
                if cursor is None:
                    raise MessageNotFoundError(before_id, session_id)
                query = query.where(Message.sequence < cursor)

            result = await db.execute(query.order_by(Message.sequence.desc()).limit(limit))
            messages = list(result.scalars().all())

        messages.reverse()
        return messages

    async def list_unsummarized_messages(self, session_id: uuid.UUID) -> list[Message]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Message)
                .where(
                    Message.session_id == session_id,
                    Message.is_summarized.is_(False),
                )
                .order_by(Message.created_at, Message.sequence)
            )
            return list(result.scalars().all())

    async def mark_messages_summarized(
        self,
        session_id: uuid.UUID,
        message_ids: Iterable[uuid.UUID],
    ) -> int:
        ids = list(message_ids)
        if not ids:
            return 0
        async with self.session_factory() as db, db.begin():
            return await self._mark_summarized(db, session_id, ids)

    async def count_meaningful_messages(self, session_id: uuid.UUID) -> int:
        """Unsummarized assistant replies: one per completed exchange."""
        async with self.session_factory() as db:
            count = await db.scalar(
                select(func.count())
                .select_from(Message)
                .where(
                    Message.session_id == session_id,
                    Message.role == "assistant",
                    Message.is_summarized.is_(False),
                )
            )
            return int(count or 0)

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    async def create_summary(
        self,
        session_id: uuid.UUID,
        *,
        content_path: str,
        tokens: int,
        covers_until_message_id: uuid.UUID,
        covered_message_ids: Iterable[uuid.UUID],
        summary_id: uuid.UUID | None = None,
    ) -> Summary:
        """Record a summary, mark its messages and make it current, atomically.

        Two summarizers racing on one session both succeed: the loser of the
        ``version`` race retries on top of the winner, marks nothing new and
        becomes the current summary.
        """
        covered = list(covered_message_ids)
        summary_id = summary_id or uuid.uuid4()

        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.session_factory() as db, db.begin():
                    summary, marked = await self._insert_summary(
                        db,
                        session_id,
                        content_path,
                        tokens,
                        covers_until_message_id,
                        covered,
                        summary_id,
                    )
                break
            except IntegrityError:
                if attempt >= self.write_attempts:
                    raise
                logger.warning(
                    "Concurrent summary detected, retrying with next version",
                    extra={
                        "service": "storage",
                        "session_id": str(session_id),
                        "summary_id": str(summary_id),
                        "attempt": attempt,
                    },
                )

        logger.info(
            "Summary recorded",
            extra={
                "service": "storage",
                "session_id": str(session_id),
                "summary_id": str(summary.id),
                "covered_messages": marked,
                "metadata": {"version": summary.version},
            },
        )
        return summary

    async def _insert_summary(
        self,
        db: AsyncSession,
        session_id: uuid.UUID,
        content_path: str,
        tokens: int,
        covers_until_message_id: uuid.UUID,
        covered: list[uuid.UUID],
        summary_id: uuid.UUID,
    ) -> tuple[Summary, int]:
        session = await db.get(Session, session_id, with_for_update=True)
        if session is None:
            raise SessionNotFoundError(session_id)

        boundary_created_at = await db.scalar(
            select(Message.created_at).where(
                Message.id == covers_until_message_id,
                Message.session_id == session_id,
            )
        )
        if boundary_created_at is None:
            raise MessageNotFoundError(covers_until_message_id, session_id)

        latest_version = await db.scalar(
            select(func.max(Summary.version)).where(Summary.session_id == session_id)
        )
        summary = Summary(
            id=summary_id,
            session_id=session_id,
            version=(latest_version or 0) + 1,
            content_path=content_path,
            tokens=tokens,
            covers_until_message_id=covers_until_message_id,
            created_at=max(self.clock(), boundary_created_at),
        )
        db.add(summary)
        await db.flush()

        marked = await self._mark_summarized(db, session_id, covered)

        session.current_summary_id = summary.id
        session.updated_at = max(summary.created_at, session.updated_at)
        return summary, marked

    async def get_summary(
        self, session_id: uuid.UUID, summary_id: uuid.UUID
    ) -> Summary | None:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Summary).where(
                    Summary.id == summary_id,
                    Summary.session_id == session_id,
                )
            )
            return result.scalar_one_or_none()

    async def get_current_summary(self, session_id: uuid.UUID) -> Summary | None:
        async with self.session_factory() as db:
            session = await db.get(Session, session_id)
            if session is None or session.current_summary_id is None:
                return None
            result = await db.execute(
                select(Summary).where(
                    Summary.id == session.current_summary_id,
                    Summary.session_id == session_id,
                )
            )
            return result.scalar_one_or_none()

    async def list_summaries(self, session_id: uuid.UUID) -> list[Summary]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Summary)
                .where(Summary.session_id == session_id)
                .order_by(Summary.version)
            )
            return list(result.scalars().all())

    @staticmethod
    async def _mark_summarized(
        db: AsyncSession,
        session_id: uuid.UUID,
        message_ids: list[uuid.UUID],
    ) -> int:
        if not message_ids:
            return 0
        result = await db.execute(
            update(Message)
            .where(
                Message.session_id == session_id,
                Message.id.in_(message_ids),
                Message.is_summarized.is_(False),
            )
            .values(is_summarized=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


__all__ = ["UNSET", "MetadataIndex"]
