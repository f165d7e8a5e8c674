"""Tests for per-session locking."""

import asyncio
import uuid

from diychat.domains.session import SessionLockRegistry


class TestSessionLockRegistry:
    """Test SessionLockRegistry."""

    def test_same_session_same_lock(self):
        """One lock per session id while referenced."""
        registry = SessionLockRegistry()
        session_id = uuid.uuid4()

        lock = registry.get(session_id)

        assert registry.get(session_id) is lock
        assert registry.get(uuid.uuid4()) is not lock

    async def test_hold_serializes(self):
        """Two holders of the same session run one after the other."""
        registry = SessionLockRegistry()
        session_id = uuid.uuid4()
        events: list[str] = []

        async def worker(name: str):
            async with registry.hold(session_id):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    async def test_disabled_registry_does_not_lock(self):
        """Disabled registries let holders overlap."""
        registry = SessionLockRegistry(enabled=False)
        session_id = uuid.uuid4()

        async with registry.hold(session_id):
            async with registry.hold(session_id):
                pass

        assert len(registry) == 0
