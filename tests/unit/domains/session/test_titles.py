"""Tests for title generation and background title tasks."""

import uuid
from unittest.mock import AsyncMock

import pytest

from diychat.ai.generation import GenerationBackend
from diychat.domains.session import SessionService, wait_for_title_tasks
from diychat.domains.session.titles import TITLE_SYSTEM_PROMPT, build_title_messages, clean_title
from diychat.exceptions import TransientBackendError


class TestTitleHelpers:
    """Test the pure title helpers."""

    def test_build_title_messages_truncates(self):
        """Only the first 200 characters are sent."""
        messages = build_title_messages("a" * 500)

        assert messages[0].content == TITLE_SYSTEM_PROMPT
        assert messages[1].content == f'Generate a concise title for this message: "{"a" * 200}"'

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ('"Learning Python."', "Learning Python"),
            ("  Basic Math Question  ", "Basic Math Question"),
            ("'French Revolution Overview'!", "French Revolution Overview"),
            ("", ""),
        ],
    )
    def test_clean_title(self, raw, expected):
        """Quotes and a trailing sentence mark are removed."""
        assert clean_title(raw) == expected


class TestGenerateTitle:
    """Test SessionService.generate_title."""

    async def test_titles_from_first_user_message(self, sessions, clock, monkeypatch):
        """The stub title is cleaned and stored without touching activity."""
        monkeypatch.setenv("STUB_LLM_TITLE", '"Learning Python."')
        session = await sessions.create_session()
        await sessions.add_message(session.id, "user", "How do I learn Python?")
        before = await sessions.get_session(session.id)
        clock.advance(minutes=1)

        title = await sessions.generate_title(session.id)

        assert title == "Learning Python"
        after = await sessions.get_session(session.id)
        assert after.title == "Learning Python"
        assert after.last_activity_at == before.last_activity_at

    async def test_no_user_message(self, sessions):
        """Sessions without user messages are not titled."""
        session = await sessions.create_session()

        assert await sessions.generate_title(session.id) is None

    async def test_backend_failure_is_swallowed(self, index, store, summarizer):
        """Title failures never propagate."""
        backend = AsyncMock(spec=GenerationBackend)
        backend.generate.side_effect = TransientBackendError("mock", "title", "down")
        service = SessionService(index, store, summarizer, title_backend=backend)
        session = await service.create_session()
        await service.add_message(session.id, "user", "hi")

        assert await service.generate_title(session.id) is None
        assert (await service.get_session(session.id)).title is None

    async def test_corrupt_blob_is_swallowed(self, sessions, index, store):
        """Unreadable content leaves the session untitled instead of raising."""
        session = await sessions.create_session()
        message = await sessions.add_message(session.id, "user", "hi")
        store.path_for(session.id, message.id, "messages").write_text("{not json")

        assert await sessions.generate_title(session.id) is None
        assert (await index.get_session(session.id)).title is None

    async def test_index_failure_is_swallowed(self, sessions, index, monkeypatch):
        """Database errors during titling are logged, not raised."""
        session = await sessions.create_session()
        await sessions.add_message(session.id, "user", "hi")
        monkeypatch.setattr(
            index, "get_first_message", AsyncMock(side_effect=RuntimeError("db went away"))
        )

        assert await sessions.generate_title(session.id) is None

    async def test_without_backend(self, index, store, summarizer):
        """A service without a title backend never titles."""
        service = SessionService(index, store, summarizer)
        session = await service.create_session()
        await service.add_message(session.id, "user", "hi")

        assert await service.generate_title(session.id) is None


class TestScheduledTitles:
    """Test the fire-and-forget path."""

    async def test_titles_after_first_exchange(self, sessions, add_exchanges):
        """The background task titles a session with one exchange."""
        session = await sessions.create_session()
        await add_exchanges(session.id, 1)

        sessions.schedule_title_generation(session.id)
        await wait_for_title_tasks()

        assert (await sessions.get_session(session.id)).title == "Stub Conversation"

    async def test_skips_titled_and_short_sessions(self, sessions):
        """Titled sessions and single messages are left alone."""
        titled = await sessions.create_session(title="Keep me")
        await sessions.add_message(titled.id, "user", "a")
        await sessions.add_message(titled.id, "assistant", "b")
        short = await sessions.create_session()
        await sessions.add_message(short.id, "user", "a")

        first = sessions.schedule_title_generation(titled.id)
        second = sessions.schedule_title_generation(short.id)
        await wait_for_title_tasks()

        assert first.result() is None
        assert second.result() is None
        assert (await sessions.get_session(titled.id)).title == "Keep me"
        assert (await sessions.get_session(short.id)).title is None

    async def test_unknown_session_does_not_raise(self, sessions):
        """Scheduling for a deleted session completes quietly."""
        task = sessions.schedule_title_generation(uuid.uuid4())
        await wait_for_title_tasks()

        assert task.result() is None
