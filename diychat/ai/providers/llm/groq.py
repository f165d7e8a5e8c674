"""Groq chat-completions adapter."""

import logging
import time
from typing import Any

from groq import AsyncGroq

from diychat.ai.providers.base import LLMMessage, LLMProvider, LLMResponse, as_chat_payload
from diychat.ai.providers.registry import register_llm_provider

logger = logging.getLogger("llm")


@register_llm_provider
class GroqProvider(LLMProvider):
    """Hosted Llama models on Groq; used for replies, summaries and titles."""

    DEFAULT_MODEL = "llama-3.1-8b-instant"

    @classmethod
    def resolve_model(cls, model: str | None) -> str | None:
        requested = (model or "").strip()
        # Namespaced ids ("vendor/model") belong to OpenRouter
        if not requested or "/" in requested:
            return cls.DEFAULT_MODEL
        return requested

    def __init__(self, api_key: str):
        self._client = AsyncGroq(api_key=api_key)

    @property
    def name(self) -> str:
        return "groq"

    async def generate(
        self,
        messages: list[LLMMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        **kwargs: Any,
    ) -> LLMResponse:
        model_id = type(self).resolve_model(model) or self.DEFAULT_MODEL
        started = time.perf_counter()

        try:
            completion = await self._client.chat.completions.create(
                model=model_id,
                messages=as_chat_payload(messages),
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except Exception as e:
            logger.warning(
                "Groq completion failed",
                extra={
                    "service": "llm",
                    "provider": self.name,
                    "model": model_id,
                    "error": str(e),
                    "duration_ms": int((time.perf_counter() - started) * 1000),
                },
            )
            raise

        choice = completion.choices[0]
        usage = completion.usage
        result = LLMResponse(
            content=choice.message.content or "",
            model=model_id,
            tokens_in=usage.prompt_tokens if usage else 0,
            tokens_out=usage.completion_tokens if usage else 0,
            finish_reason=choice.finish_reason,
        )

        logger.debug(
            "Groq completion",
            extra={
                "service": "llm",
                "provider": self.name,
                "model": model_id,
                "message_count": len(messages),
                "tokens_in": result.tokens_in,
                "tokens_out": result.tokens_out,
                "duration_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return result
