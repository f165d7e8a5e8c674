"""Unit tests for SummarizerService."""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from diychat.ai.providers.base import LLMResponse
from diychat.domains.summary import (
    RECENT_TAG,
    SUMMARIZER_SYSTEM_PROMPT,
    SummarizerService,
    build_summary_prompt,
)
from diychat.exceptions import SessionNotFoundError, TransientBackendError

NOW = 1_700_000_000_000


class TestBuildSummaryPrompt:
    """Test the summarization request body."""

    def test_first_summary_layout(self):
        """Without a previous summary the conversation header is used."""
        prompt = build_summary_prompt(None, [("user", "hi"), ("assistant", "hello")])

        assert prompt.startswith("## Conversation to Summarize\n")
        assert "Previous Conversation Summary" not in prompt
        assert prompt.endswith("\nGenerate a comprehensive summary following the guidelines.")

    def test_previous_summary_is_folded_in(self):
        """A previous summary precedes the new messages."""
        prompt = build_summary_prompt("old facts", [("user", "new")])

        assert prompt.startswith("## Previous Conversation Summary\nold facts\n\n")
        assert "## New Messages to Incorporate\n" in prompt

    def test_recent_tag_on_last_three(self):
        """Only the last three messages carry the recency tag."""
        messages = [("user", f"m{i}") if i % 2 == 0 else ("assistant", f"m{i}") for i in range(5)]

        prompt = build_summary_prompt(None, messages)

        assert "User: m0\n\n" in prompt
        assert f"{RECENT_TAG} User: m0" not in prompt
        assert "Assistant: m1\n\n" in prompt
        assert f"{RECENT_TAG} Assistant: m1" not in prompt
        assert f"{RECENT_TAG} User: m2\n\n" in prompt
        assert f"{RECENT_TAG} Assistant: m3\n\n" in prompt
        assert f"{RECENT_TAG} User: m4\n\n" in prompt

    def test_short_batches_are_all_recent(self):
        """Fewer than three messages are all tagged."""
        prompt = build_summary_prompt(None, [("user", "a"), ("assistant", "b")])

        assert f"{RECENT_TAG} User: a" in prompt
        assert f"{RECENT_TAG} Assistant: b" in prompt


class TestSummarizationDecision:
    """Test check_summarization_needed against a mocked index."""

    @pytest.fixture
    def mock_index(self):
        index = AsyncMock()
        index.count_meaningful_messages = AsyncMock(return_value=0)
        return index

    @pytest.fixture
    def service(self, mock_index):
        return SummarizerService(
            mock_index,
            MagicMock(),
            MagicMock(),
            cache_expiry_minutes=5,
            meaningful_message_threshold=5,
            clock=lambda: NOW,
        )

    def _idle(self, mock_index, minutes: float):
        mock_index.get_session = AsyncMock(
            return_value=SimpleNamespace(last_activity_at=NOW - int(minutes * 60_000))
        )

    async def test_unknown_session(self, service, mock_index):
        """Unknown sessions never need a summary."""
        mock_index.get_session = AsyncMock(return_value=None)

        decision = await service.check_summarization_needed(uuid.uuid4())

        assert decision.needs_summary is False
        assert decision.reason == "session_not_found"

    async def test_cache_still_valid(self, service, mock_index):
        """Recent activity keeps the cache warm regardless of message count."""
        self._idle(mock_index, 3)
        mock_index.count_meaningful_messages.return_value = 10

        decision = await service.check_summarization_needed(uuid.uuid4())

        assert decision.needs_summary is False
        assert decision.reason == "cache_still_valid"
        mock_index.count_meaningful_messages.assert_not_awaited()

    async def test_exactly_at_expiry_is_still_valid(self, service, mock_index):
        """The idle window is inclusive."""
        self._idle(mock_index, 5)
        mock_index.count_meaningful_messages.return_value = 10

        decision = await service.check_summarization_needed(uuid.uuid4())

        assert decision.reason == "cache_still_valid"

    async def test_not_enough_messages(self, service, mock_index):
        """An expired cache with few replies does not summarize."""
        self._idle(mock_index, 6)
        mock_index.count_meaningful_messages.return_value = 4

        decision = await service.check_summarization_needed(uuid.uuid4())

        assert decision.needs_summary is False
        assert decision.reason == "not_enough_messages"
        assert decision.meaningful_count == 4

    async def test_expired_and_threshold_met(self, service, mock_index):
        """Both conditions together trigger summarization."""
        self._idle(mock_index, 6)
        mock_index.count_meaningful_messages.return_value = 5

        decision = await service.check_summarization_needed(uuid.uuid4())

        assert decision.needs_summary is True
        assert decision.reason == "cache_expired_and_threshold_met"
        assert decision.minutes_since_activity == pytest.approx(6)

    async def test_maybe_summarize_skips_when_not_due(self, service, mock_index):
        """No generation happens when the decision is negative."""
        self._idle(mock_index, 1)
        service.generate_summary = AsyncMock()

        assert await service.maybe_summarize(uuid.uuid4()) is None
        service.generate_summary.assert_not_awaited()


class TestGenerateSummary:
    """Test generate_summary against real storage fixtures."""

    @pytest.fixture
    def backend(self):
        backend = MagicMock()
        backend.provider.name = "mock"
        backend.generate = AsyncMock(
            return_value=LLMResponse(
                content="  ## Context\nA summary.  ", model="m", tokens_in=30, tokens_out=12
            )
        )
        return backend

    @pytest.fixture
    def service(self, index, store, backend, clock):
        return SummarizerService(
            index,
            store,
            backend,
            cache_expiry_minutes=5,
            meaningful_message_threshold=5,
            clock=clock,
        )

    async def test_nothing_to_summarize(self, service, index, backend):
        """An empty batch is a no-op without a backend call."""
        session = await index.create_session()

        assert await service.generate_summary(session.id) is None
        backend.generate.assert_not_awaited()
        assert await index.list_summaries(session.id) == []

    async def test_generates_and_records(self, service, sessions, index, store, backend):
        """The backend sees the fixed prompt and the result is stored."""
        session = await sessions.create_session()
        await sessions.add_message(session.id, "user", "What is Python?")
        await sessions.add_message(session.id, "assistant", "A language.")

        result = await service.generate_summary(session.id)

        assert result is not None
        assert result.summary == "## Context\nA summary."
        assert result.covered_messages == 2
        assert result.tokens == 42
        assert result.version == 1

        messages = backend.generate.await_args.args[0]
        kwargs = backend.generate.await_args.kwargs
        assert messages[0].role == "system"
        assert messages[0].content == SUMMARIZER_SYSTEM_PROMPT
        assert "[RECENT] User: What is Python?" in messages[1].content
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 1000

        blob = await store.get_summary(session.id, result.summary_id)
        assert blob.summary == result.summary
        assert len(blob.covered_message_ids) == 2
        assert await index.list_unsummarized_messages(session.id) == []

    async def test_token_estimate_when_usage_missing(self, service, sessions, backend):
        """Without usage numbers the summary text is estimated."""
        backend.generate.return_value = LLMResponse(
            content="x" * 40, model="m", tokens_in=0, tokens_out=0
        )
        session = await sessions.create_session()
        await sessions.add_message(session.id, "user", "hi")

        result = await service.generate_summary(session.id)

        assert result.tokens == 10

    async def test_backend_failure_writes_nothing(self, service, sessions, index, store, backend):
        """A failed call leaves no summary row, blob or marking."""
        backend.generate.side_effect = TransientBackendError("mock", "summarize", "boom")
        session = await sessions.create_session()
        await sessions.add_message(session.id, "user", "hi")

        with pytest.raises(TransientBackendError):
            await service.generate_summary(session.id)

        assert await index.list_summaries(session.id) == []
        assert await store.list_content_ids(session.id, "summaries") == set()
        assert len(await index.list_unsummarized_messages(session.id)) == 1

    async def test_empty_summary_is_a_failure(self, service, sessions, index, backend):
        """Blank backend output is treated as a transient failure."""
        backend.generate.return_value = LLMResponse(
            content="   ", model="m", tokens_in=1, tokens_out=0
        )
        session = await sessions.create_session()
        await sessions.add_message(session.id, "user", "hi")

        with pytest.raises(TransientBackendError):
            await service.generate_summary(session.id)

        assert await index.list_summaries(session.id) == []

    async def test_build_context_unknown_session(self, service):
        """Context for an unknown session raises."""
        with pytest.raises(SessionNotFoundError):
            await service.build_context(uuid.uuid4())
