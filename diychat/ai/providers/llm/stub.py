"""Stub LLM provider for testing and development."""

import asyncio
import json
import os

from diychat.ai.providers.base import LLMMessage, LLMProvider, LLMResponse
from diychat.ai.providers.registry import register_llm_provider


def _env_str(name: str) -> str | None:
    value = os.environ.get(name)
    if value is None:
        return None
    s = str(value).strip()
    return s if s else None


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@register_llm_provider
class StubLLMProvider(LLMProvider):
    """Deterministic offline provider.

    Recognizes the summary, title and intent-classification prompts by
    their fixed wording and returns well-formed output for each, so the
    whole pipeline runs without network access.
    """

    @property
    def name(self) -> str:
        return "stub"

    async def generate(
        self,
        messages: list[LLMMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        **kwargs,
    ) -> LLMResponse:
        delay = _env_float("STUB_LLM_DELAY_SECONDS", 0.0)
        if delay > 0:
            await asyncio.sleep(delay)

        prompt_text = "\n".join(m.content for m in messages)
        tokens_in = sum(len(m.content.split()) for m in messages)

        if "Generate a comprehensive summary" in prompt_text:
            user_lines = [
                line.strip()
                for line in prompt_text.splitlines()
                if line.strip().startswith(("User:", "[RECENT] User:"))
            ]
            content = "## Context\nStub summary of the conversation.\n\n## Key Discussion Points\n" + (
                "\n".join(f"- {line}" for line in user_lines) or "- (none)"
            )
        elif "Generate a concise title" in prompt_text:
            content = _env_str("STUB_LLM_TITLE") or "Stub Conversation"
        elif "You are an intent classifier" in prompt_text:
            content = json.dumps(
                {
                    "intent": "chat",
                    "confidence": 0.9,
                    "tools": [],
                    "complexity": "simple",
                }
            )
        else:
            last_user = next(
                (m.content for m in reversed(messages) if m.role == "user"),
                "",
            )
            content = _env_str("STUB_LLM_REPLY") or f"Stub reply to: {last_user[:80]}"

        return LLMResponse(
            content=content,
            model=model or "stub-model",
            tokens_in=tokens_in,
            tokens_out=len(content.split()),
            finish_reason="stop",
        )
