"""Response producer: turns a context package into assistant reply content."""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Protocol

from diychat.ai.generation import GenerationBackend
from diychat.ai.providers.base import LLMMessage
from diychat.config import Settings, get_settings
from diychat.domains.chat.intent import IntentClassifier, IntentResult, PatternIntentClassifier
from diychat.domains.chat.prompts import CAPABILITY_FRAGMENTS, build_system_prompt, default_base_prompt
from diychat.domains.session.service import summary_system_message
from diychat.schemas.context import ContextPackage

logger = logging.getLogger("chat")


@dataclass(frozen=True)
class ModelProfile:
    """Generation parameters for one class of task."""

    key: str
    model_id: str
    temperature: float
    max_tokens: int


# intent -> profile key
TASK_PROFILES: dict[str, str] = {
    "chat": "chat",
    "search": "chat",
    "research": "reasoning",
    "study": "chat",
    "code": "code",
    "creative": "creative",
}

# Intents whose reply is produced directly by a specialised prompt
_DIRECT_TOOLS = {"code", "creative"}


def model_profiles_from_settings(settings: Settings | None = None) -> dict[str, ModelProfile]:
    settings = settings or get_settings()
    return {
        "chat": ModelProfile("chat", settings.chat_model_id, 0.7, 2000),
        "reasoning": ModelProfile("reasoning", settings.reasoning_model_id, 0.5, 4000),
        "creative": ModelProfile("creative", settings.creative_model_id, 0.9, 3000),
        "code": ModelProfile("code", settings.code_model_id, 0.2, 2500),
    }


@dataclass
class ProducedReply:
    """Assistant reply plus the auxiliary fields stored with it."""

    content: str
    tool_used: str | None = None
    sources: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


class ResponseProducer(Protocol):
    async def produce(
        self,
        context: ContextPackage,
        *,
        custom_instructions: str | None = None,
    ) -> ProducedReply: ...


class LLMResponseProducer:
    """Classifies the latest message, picks a model profile and generates a reply.

    Search, research and study handlers live outside this package; those
    intents are answered through the chat path with their prompt fragment
    applied.
    """

    def __init__(
        self,
        backend: GenerationBackend,
        classifier: IntentClassifier | None = None,
        *,
        profiles: dict[str, ModelProfile] | None = None,
        base_prompt: str | None = None,
        enabled_capabilities: tuple[str, ...] = (),
    ):
        self.backend = backend
        self.classifier = classifier or PatternIntentClassifier()
        self.profiles = profiles or model_profiles_from_settings()
        self.base_prompt = base_prompt
        self.enabled_capabilities = enabled_capabilities

    async def produce(
        self,
        context: ContextPackage,
        *,
        custom_instructions: str | None = None,
    ) -> ProducedReply:
        last_text = context.active_messages[-1].content if context.active_messages else ""
        intent = await self.classifier.classify(last_text)
        profile = self.profiles.get(TASK_PROFILES.get(intent.intent, "chat")) or self.profiles["chat"]

        system_prompt = build_system_prompt(
            self.base_prompt or default_base_prompt(date.today()),
            self._capabilities_for(intent),
            custom_instructions,
        )
        messages = self.build_messages(system_prompt, context)

        logger.info(
            "Producing reply",
            extra={
                "service": "chat",
                "intent": intent.intent,
                "confidence": intent.confidence,
                "model_id": profile.model_id,
                "message_count": len(messages),
            },
        )

        response = await self.backend.generate(
            messages,
            operation="reply",
            temperature=profile.temperature,
            max_tokens=profile.max_tokens,
            model=profile.model_id,
        )

        return ProducedReply(
            content=response.content,
            tool_used=intent.intent if intent.intent in _DIRECT_TOOLS else None,
            sources=[],
            metadata={
                "intent": intent.intent,
                "confidence": intent.confidence,
                "classifier": intent.source,
                "model": response.model,
                "tokens": response.tokens_in + response.tokens_out,
            },
        )

    @staticmethod
    def build_messages(system_prompt: str, context: ContextPackage) -> list[LLMMessage]:
        """System prompt, then the summary as one system item, then active messages."""
        messages = [LLMMessage(role="system", content=system_prompt)]
        if context.summary_text:
            messages.append(summary_system_message(context.summary_text))
        messages.extend(
            LLMMessage(role=m.role, content=m.content) for m in context.active_messages
        )
        return messages

    def _capabilities_for(self, intent: IntentResult) -> set[str]:
        enabled = set(self.enabled_capabilities) | set(intent.tools)
        if intent.intent in CAPABILITY_FRAGMENTS:
            enabled.add(intent.intent)
        return enabled


__all__ = [
    "LLMResponseProducer",
    "ModelProfile",
    "ProducedReply",
    "ResponseProducer",
    "TASK_PROFILES",
    "model_profiles_from_settings",
]
