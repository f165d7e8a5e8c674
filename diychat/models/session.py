"""Session model."""

from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, BigInteger, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from diychat.infrastructure.database import Base

if TYPE_CHECKING:
    from diychat.models.message import Message
    from diychat.models.summary import Summary


class Session(Base):
    """Conversation session metadata.

    Timestamps are integer milliseconds since the epoch. The current summary
    pointer is a plain reference (no foreign key) so that sessions and
    summaries can be deleted together without a dependency cycle.
    """

    __tablename__ = "sessions"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    last_activity_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    current_summary_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
    )
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON().with_variant(JSONB(), "postgresql"),
        default=dict,
        nullable=False,
    )

    # Relationships
    messages: Mapped[list["Message"]] = relationship(
        "Message",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.sequence",
    )
    summaries: Mapped[list["Summary"]] = relationship(
        "Summary",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Summary.version",
    )

    def __repr__(self) -> str:
        return f"<Session {self.id} title={self.title!r}>"
