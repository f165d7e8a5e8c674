"""Message reference model (content lives in the content store)."""

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from diychat.infrastructure.database import Base

if TYPE_CHECKING:
    from diychat.models.session import Session

VALID_ROLES = ("user", "assistant", "system")


class Message(Base):
    """One turn in a session.

    Immutable after insert except for the one-way ``is_summarized`` flag.
    ``sequence`` increments per session and breaks ``created_at`` ties.
    """

    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("session_id", "sequence", name="uq_messages_session_sequence"),
        CheckConstraint(
            "role IN ('user', 'assistant', 'system')",
            name="ck_messages_role",
        ),
        Index("idx_messages_session_created", "session_id", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    session_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(String(10), nullable=False)
    content_path: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Content store path relative to the storage root",
    )
    tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_summarized: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Relationships
    session: Mapped["Session"] = relationship("Session", back_populates="messages")

    def __repr__(self) -> str:
        return f"<Message {self.id} role={self.role} seq={self.sequence}>"
