"""Intent classification for incoming user messages.

Two strategies share one interface: a model-backed classifier that asks the
planner model for JSON, and a regex classifier used when the model fails.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Literal, Protocol

from pydantic import BaseModel, Field, field_validator

from diychat.ai.generation import GenerationBackend
from diychat.ai.providers.base import LLMMessage
from diychat.exceptions import TransientBackendError

logger = logging.getLogger("chat")

Intent = Literal["chat", "search", "research", "study", "code", "creative"]
Complexity = Literal["simple", "moderate", "complex"]

INTENTS: tuple[str, ...] = ("chat", "search", "research", "study", "code", "creative")

PLANNER_TEMPERATURE = 0.3
PLANNER_MAX_TOKENS = 500

CLASSIFY_INTENT_PROMPT = """You are an intent classifier. Analyze the user message and classify it.

Output ONLY valid JSON:
{
  "intent": "chat|search|research|study|code|creative",
  "confidence": 0.0-1.0,
  "needs_tools": ["web_search", "code_exec", "none"],
  "complexity": "simple|moderate|complex",
  "extracted_query": "refined search query if applicable"
}

Classification rules:
- "search": User wants current/recent info, news, prices, weather, or explicitly asks to search
- "research": User wants in-depth analysis, comprehensive reports, multiple perspectives
- "study": User wants to learn, be taught, get explanations, flashcards, quizzes
- "code": User wants code written, debugged, or explained
- "creative": User wants creative writing, brainstorming, ideas
- "chat": General conversation, questions about concepts, opinions"""


@dataclass(frozen=True)
class IntentResult:
    """Tagged classifier output consumed by the response producer."""

    intent: Intent
    confidence: float
    tools: tuple[str, ...] = ()
    complexity: Complexity = "simple"
    extracted_query: str | None = None
    source: Literal["model", "pattern"] = "pattern"
    metadata: dict = field(default_factory=dict, compare=False)


class IntentClassifier(Protocol):
    async def classify(self, message: str) -> IntentResult: ...


class _IntentPayload(BaseModel):
    intent: Intent = "chat"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    needs_tools: list[str] = Field(default_factory=list)
    complexity: Complexity = "simple"
    extracted_query: str | None = None

    @field_validator("needs_tools")
    @classmethod
    def _drop_none(cls, v: list[str]) -> list[str]:
        return [t for t in v if t and t != "none"]


# (pattern, intent, tools, complexity), first match wins
_PATTERN_RULES: tuple[tuple[re.Pattern[str], Intent, tuple[str, ...], Complexity], ...] = (
    (
        re.compile(r"search|look up|find|current|latest|news|weather|price", re.IGNORECASE),
        "search",
        ("web_search",),
        "simple",
    ),
    (
        re.compile(r"research|analyze|in-depth|comprehensive|report", re.IGNORECASE),
        "research",
        ("web_search",),
        "complex",
    ),
    (
        re.compile(r"teach|explain|learn|lesson|flashcard|quiz", re.IGNORECASE),
        "study",
        (),
        "moderate",
    ),
    (
        re.compile(r"code|program|function|debug|implement|script", re.IGNORECASE),
        "code",
        (),
        "moderate",
    ),
    (
        re.compile(r"write|story|creative|brainstorm|ideas", re.IGNORECASE),
        "creative",
        (),
        "moderate",
    ),
)


class PatternIntentClassifier:
    """Keyword classifier; never fails."""

    async def classify(self, message: str) -> IntentResult:
        return self.classify_text(message)

    @staticmethod
    def classify_text(message: str) -> IntentResult:
        for pattern, intent, tools, complexity in _PATTERN_RULES:
            if pattern.search(message):
                return IntentResult(
                    intent=intent,
                    confidence=0.7,
                    tools=tools,
                    complexity=complexity,
                    extracted_query=message,
                )
        return IntentResult(intent="chat", confidence=0.8, extracted_query=message)


class ModelIntentClassifier:
    """Asks the planner model for a JSON classification."""

    def __init__(self, backend: GenerationBackend, model_id: str | None = None):
        self.backend = backend
        self.model_id = model_id

    async def classify(self, message: str) -> IntentResult:
        """Classify with the planner model.

        Raises:
            TransientBackendError: Backend call failed.
            ValueError: Response was not a valid classification.
        """
        response = await self.backend.generate(
            [
                LLMMessage(role="system", content=CLASSIFY_INTENT_PROMPT),
                LLMMessage(role="user", content=message),
            ],
            operation="classify_intent",
            temperature=PLANNER_TEMPERATURE,
            max_tokens=PLANNER_MAX_TOKENS,
            model=self.model_id,
        )
        payload = self._parse_response(response.content)
        return IntentResult(
            intent=payload.intent,
            confidence=payload.confidence,
            tools=tuple(payload.needs_tools),
            complexity=payload.complexity,
            extracted_query=payload.extracted_query or message,
            source="model",
            metadata={"planner_tokens": response.tokens_in + response.tokens_out},
        )

    @staticmethod
    def _parse_response(raw: str) -> _IntentPayload:
        """Parse classifier JSON, tolerating code fences and surrounding text."""
        text = raw.strip()
        if text.startswith("```"):
            text = text.strip("`")
        if "{" in text and "}" in text:
            text = text[text.index("{") : text.rfind("}") + 1]

        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("Intent response JSON must be an object")
        return _IntentPayload.model_validate(data)


class FallbackIntentClassifier:
    """Try the primary classifier, fall back to the secondary on failure."""

    def __init__(self, primary: IntentClassifier, fallback: IntentClassifier | None = None):
        self.primary = primary
        self.fallback = fallback or PatternIntentClassifier()

    async def classify(self, message: str) -> IntentResult:
        try:
            return await self.primary.classify(message)
        except (TransientBackendError, ValueError) as e:
            logger.warning(
                "Intent classifier failed, using fallback",
                extra={"service": "chat", "error": str(e)},
            )
            return await self.fallback.classify(message)


__all__ = [
    "CLASSIFY_INTENT_PROMPT",
    "INTENTS",
    "FallbackIntentClassifier",
    "IntentClassifier",
    "IntentResult",
    "ModelIntentClassifier",
    "PatternIntentClassifier",
]
