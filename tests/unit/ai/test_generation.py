"""Tests for GenerationBackend timeout and fallback handling."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from diychat.ai.generation import GenerationBackend, build_generation_backend
from diychat.ai.providers.base import LLMMessage, LLMProvider, LLMResponse
from diychat.ai.providers.llm.stub import StubLLMProvider
from diychat.exceptions import BackendTimeoutError, TransientBackendError


class FailingProvider(LLMProvider):
    """Provider that always raises."""

    def __init__(self, provider_name: str = "failing"):
        self._name = provider_name
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    async def generate(self, messages, model=None, temperature=0.7, max_tokens=1024, **kwargs):
        self.calls += 1
        raise RuntimeError("upstream 503")


class SlowProvider(LLMProvider):
    """Provider that never answers within the test timeout."""

    @property
    def name(self) -> str:
        return "slow"

    async def generate(self, messages, model=None, temperature=0.7, max_tokens=1024, **kwargs):
        await asyncio.sleep(5)
        return LLMResponse(content="late", model="m", tokens_in=0, tokens_out=0)


MESSAGES = [LLMMessage(role="user", content="hi")]


class TestGenerationBackend:
    """Test GenerationBackend."""

    async def test_passes_parameters_through(self):
        """Temperature, max tokens and model reach the provider."""
        provider = StubLLMProvider()
        provider.generate = AsyncMock(
            return_value=LLMResponse(content="ok", model="m", tokens_in=1, tokens_out=1)
        )
        backend = GenerationBackend(provider, model_id="default-model")

        response = await backend.generate(
            MESSAGES, operation="reply", temperature=0.2, max_tokens=42
        )

        assert response.content == "ok"
        provider.generate.assert_awaited_once_with(
            MESSAGES, model="default-model", temperature=0.2, max_tokens=42
        )

    async def test_explicit_model_overrides_default(self):
        """A per-call model wins over the backend default."""
        provider = StubLLMProvider()
        backend = GenerationBackend(provider, model_id="default-model")

        response = await backend.generate(MESSAGES, operation="reply", model="special")

        assert response.model == "special"

    async def test_provider_error_is_normalized(self):
        """Any provider exception surfaces as TransientBackendError."""
        backend = GenerationBackend(FailingProvider())

        with pytest.raises(TransientBackendError) as exc_info:
            await backend.generate(MESSAGES, operation="summarize")

        assert exc_info.value.provider == "failing"
        assert exc_info.value.operation == "summarize"
        assert exc_info.value.retryable is True

    async def test_timeout(self):
        """Slow providers raise BackendTimeoutError."""
        backend = GenerationBackend(SlowProvider(), timeout_seconds=0.05)

        with pytest.raises(BackendTimeoutError) as exc_info:
            await backend.generate(MESSAGES, operation="title")

        assert isinstance(exc_info.value, TransientBackendError)
        assert exc_info.value.timeout_seconds == 0.05

    async def test_per_call_timeout_override(self):
        """A caller-supplied timeout wins over the backend default."""
        backend = GenerationBackend(SlowProvider(), timeout_seconds=60)

        with pytest.raises(BackendTimeoutError) as exc_info:
            await backend.generate(MESSAGES, operation="reply", timeout_seconds=0.05)

        assert exc_info.value.timeout_seconds == 0.05
        assert backend.timeout_seconds == 60

    async def test_falls_back_to_backup(self):
        """A failing primary is retried once on the backup provider."""
        primary = FailingProvider()
        backend = GenerationBackend(primary, backup_provider=StubLLMProvider())

        response = await backend.generate(MESSAGES, operation="reply")

        assert primary.calls == 1
        assert response.content.startswith("Stub reply to: hi")

    async def test_backup_failure_propagates(self):
        """When both providers fail the backup's error is raised."""
        backend = GenerationBackend(
            FailingProvider("primary"), backup_provider=FailingProvider("backup")
        )

        with pytest.raises(TransientBackendError) as exc_info:
            await backend.generate(MESSAGES, operation="reply")

        assert exc_info.value.provider == "backup"

    async def test_same_backup_is_not_retried(self):
        """A backup with the primary's name is skipped."""
        primary = FailingProvider("same")
        backup = FailingProvider("same")
        backend = GenerationBackend(primary, backup_provider=backup)

        with pytest.raises(TransientBackendError):
            await backend.generate(MESSAGES, operation="reply")

        assert backup.calls == 0


class TestBuildGenerationBackend:
    """Test build_generation_backend."""

    def test_uses_settings(self, monkeypatch):
        """Provider, model and timeout come from settings."""
        monkeypatch.setenv("PROVIDER_TIMEOUT_LLM_SECONDS", "12")
        monkeypatch.setenv("CHAT_MODEL_ID", "chat-model")

        backend = build_generation_backend("stub")

        assert backend.provider.name == "stub"
        assert backend.model_id == "chat-model"
        assert backend.timeout_seconds == 12.0
        assert backend.backup_provider is None

    def test_backup_from_settings(self, monkeypatch):
        """A configured backup provider is attached."""
        monkeypatch.setenv("LLM_BACKUP_PROVIDER", "stub")

        backend = build_generation_backend("stub", "m")

        assert backend.model_id == "m"
        assert backend.backup_provider is not None
        assert backend.backup_provider.name == "stub"
