"""Session domain - conversation persistence and the per-turn context engine.

Services:
    - SessionService: sessions, messages, context packages, titles, integrity
    - SessionLockRegistry: optional in-process per-session serialization
"""

from diychat.domains.session.locks import SessionLockRegistry
from diychat.domains.session.service import (
    ApiContext,
    IntegrityReport,
    SessionService,
    summary_system_message,
)
from diychat.domains.session.titles import wait_for_title_tasks

__all__ = [
    "ApiContext",
    "IntegrityReport",
    "SessionLockRegistry",
    "SessionService",
    "summary_system_message",
    "wait_for_title_tasks",
]
