"""Pydantic schemas."""

from diychat.schemas.content import MessageContent, Role, SummaryContent
from diychat.schemas.context import ContextMessage, ContextPackage
from diychat.schemas.session import (
    MessageListResponse,
    MessageResponse,
    SessionDetailResponse,
    SessionListResponse,
    SessionResponse,
)

__all__ = [
    "ContextMessage",
    "ContextPackage",
    "MessageContent",
    "MessageListResponse",
    "MessageResponse",
    "Role",
    "SessionDetailResponse",
    "SessionListResponse",
    "SessionResponse",
    "SummaryContent",
]
