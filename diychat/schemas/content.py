"""Content records persisted by the content store."""

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

Role = Literal["user", "assistant", "system"]


class MessageContent(BaseModel):
    """Full message payload stored as one JSON blob per message."""

    id: UUID
    session_id: UUID
    role: Role
    content: str
    tool_used: str | None = None
    sources: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: int


class SummaryContent(BaseModel):
    """Summary text plus the ids of the messages it folds in."""

    id: UUID
    session_id: UUID
    summary: str
    covered_message_ids: list[UUID] = Field(default_factory=list)
    tokens: int = 0
    created_at: int
