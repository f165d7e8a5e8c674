"""Tests for LLMResponseProducer."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from diychat.ai.providers.base import LLMResponse
from diychat.domains.chat import IntentResult, LLMResponseProducer, ModelProfile
from diychat.domains.chat.prompts import CAPABILITY_FRAGMENTS
from diychat.schemas.context import ContextMessage, ContextPackage

PROFILES = {
    "chat": ModelProfile("chat", "chat-model", 0.7, 2000),
    "reasoning": ModelProfile("reasoning", "reasoning-model", 0.5, 4000),
    "creative": ModelProfile("creative", "creative-model", 0.9, 3000),
    "code": ModelProfile("code", "code-model", 0.2, 2500),
}


def _classifier(intent: str, tools: tuple[str, ...] = ()):
    classifier = MagicMock()
    classifier.classify = AsyncMock(
        return_value=IntentResult(intent=intent, confidence=0.9, tools=tools, source="model")
    )
    return classifier


def _context(summary: str | None = None) -> ContextPackage:
    messages = [
        ContextMessage(role="user", content="first"),
        ContextMessage(role="assistant", content="reply"),
        ContextMessage(role="user", content="latest"),
    ]
    return ContextPackage(
        summary_text=summary,
        active_messages=messages,
        has_summary=summary is not None,
        active_message_count=len(messages),
    )


class TestLLMResponseProducer:
    """Test reply production."""

    @pytest.fixture
    def backend(self):
        backend = MagicMock()
        backend.generate = AsyncMock(
            return_value=LLMResponse(content="answer", model="m", tokens_in=7, tokens_out=3)
        )
        return backend

    async def test_message_order(self, backend):
        """System prompt, then summary, then active messages in order."""
        producer = LLMResponseProducer(
            backend, _classifier("chat"), profiles=PROFILES, base_prompt="Base."
        )

        await producer.produce(_context(summary="## Context\nEarlier."))

        messages = backend.generate.await_args.args[0]
        assert [m.role for m in messages] == ["system", "system", "user", "assistant", "user"]
        assert messages[0].content == "Base."
        assert messages[1].content.startswith("## Previous Conversation Summary\n## Context")
        assert [m.content for m in messages[2:]] == ["first", "reply", "latest"]

    async def test_no_summary_item_without_summary(self, backend):
        """Without a summary only the system prompt precedes the messages."""
        producer = LLMResponseProducer(
            backend, _classifier("chat"), profiles=PROFILES, base_prompt="Base."
        )

        await producer.produce(_context())

        messages = backend.generate.await_args.args[0]
        assert [m.role for m in messages] == ["system", "user", "assistant", "user"]

    async def test_classifies_latest_message(self, backend):
        """The newest active message is what gets classified."""
        classifier = _classifier("chat")
        producer = LLMResponseProducer(backend, classifier, profiles=PROFILES, base_prompt="B")

        await producer.produce(_context())

        classifier.classify.assert_awaited_once_with("latest")

    @pytest.mark.parametrize(
        ("intent", "model", "temperature", "max_tokens"),
        [
            ("chat", "chat-model", 0.7, 2000),
            ("search", "chat-model", 0.7, 2000),
            ("research", "reasoning-model", 0.5, 4000),
            ("code", "code-model", 0.2, 2500),
            ("creative", "creative-model", 0.9, 3000),
        ],
    )
    async def test_profile_selection(self, backend, intent, model, temperature, max_tokens):
        """Each intent maps to its model profile."""
        producer = LLMResponseProducer(
            backend, _classifier(intent), profiles=PROFILES, base_prompt="B"
        )

        await producer.produce(_context())

        kwargs = backend.generate.await_args.kwargs
        assert kwargs["model"] == model
        assert kwargs["temperature"] == temperature
        assert kwargs["max_tokens"] == max_tokens

    async def test_capability_fragments_and_instructions(self, backend):
        """Intent tools and enabled capabilities shape the system prompt."""
        producer = LLMResponseProducer(
            backend,
            _classifier("search", tools=("web_search",)),
            profiles=PROFILES,
            base_prompt="Base.",
            enabled_capabilities=("study",),
        )

        await producer.produce(_context(), custom_instructions="Be brief.")

        system = backend.generate.await_args.args[0][0].content
        assert CAPABILITY_FRAGMENTS["web_search"] in system
        assert CAPABILITY_FRAGMENTS["study"] in system
        assert system.index(CAPABILITY_FRAGMENTS["web_search"]) < system.index(
            CAPABILITY_FRAGMENTS["study"]
        )
        assert system.endswith("Additional instructions:\nBe brief.")

    async def test_reply_fields(self, backend):
        """The produced reply carries tool and metadata."""
        producer = LLMResponseProducer(
            backend, _classifier("code"), profiles=PROFILES, base_prompt="B"
        )

        reply = await producer.produce(_context())

        assert reply.content == "answer"
        assert reply.tool_used == "code"
        assert reply.sources == []
        assert reply.metadata["intent"] == "code"
        assert reply.metadata["tokens"] == 10
