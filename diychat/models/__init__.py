"""SQLAlchemy models."""

from diychat.models.message import VALID_ROLES, Message
from diychat.models.session import Session
from diychat.models.summary import Summary

__all__ = [
    "Message",
    "Session",
    "Summary",
    "VALID_ROLES",
]
