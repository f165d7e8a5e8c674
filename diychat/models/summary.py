"""Session summary model for context compression."""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from diychat.infrastructure.database import Base

if TYPE_CHECKING:
    from diychat.models.session import Session


class Summary(Base):
    """Immutable summary records for conversation context compression.

    Each summary captures the conversation up to a certain message,
    allowing older messages to be dropped while retaining context.
    Version numbers increment per session as new summaries are created;
    older versions are kept when the session's current pointer moves on.
    """

    __tablename__ = "summaries"
    __table_args__ = (
        UniqueConstraint("session_id", "version", name="uq_summaries_session_version"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Incrementing version per session",
    )
    content_path: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Content store path relative to the storage root",
    )
    tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    covers_until_message_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        comment="Last message folded into this summary",
    )
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Relationships
    session: Mapped["Session"] = relationship(
        back_populates="summaries",
    )

    def __repr__(self) -> str:
        return f"<Summary(id={self.id}, session_id={self.session_id}, version={self.version})>"
