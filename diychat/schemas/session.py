"""Pydantic schemas for the session boundary (camelCase on the wire)."""

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SessionResponse(_CamelModel):
    """Session metadata as exposed to clients."""

    id: UUID
    title: str | None = None
    created_at: int
    updated_at: int
    last_activity_at: int


class MessageResponse(_CamelModel):
    """A single message with its content resolved."""

    id: UUID
    role: str
    content: str
    tool_used: str | None = None
    sources: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_summarized: bool = False
    created_at: int


class SessionDetailResponse(SessionResponse):
    """Session plus its most recent page of messages."""

    messages: list[MessageResponse] = Field(default_factory=list)


class MessageListResponse(_CamelModel):
    """One page of messages, oldest first."""

    messages: list[MessageResponse] = Field(default_factory=list)


class SessionListResponse(_CamelModel):
    sessions: list[SessionResponse] = Field(default_factory=list)
    total: int
    limit: int
    offset: int

