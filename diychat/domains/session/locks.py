"""Per-session mutual exclusion within one process."""

import asyncio
import contextlib
import weakref
from collections.abc import AsyncIterator
from uuid import UUID


class SessionLockRegistry:
    """Hands out one ``asyncio.Lock`` per session id.

    Locks are held weakly and disappear once no caller holds or awaits them.
    When disabled, ``hold`` is a no-op and sessions are not serialized.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._locks: weakref.WeakValueDictionary[UUID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def get(self, session_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    @contextlib.asynccontextmanager
    async def hold(self, session_id: UUID) -> AsyncIterator[None]:
        if not self.enabled:
            yield
            return
        lock = self.get(session_id)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


__all__ = ["SessionLockRegistry"]
