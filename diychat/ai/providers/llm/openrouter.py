"""OpenRouter adapter over its OpenAI-compatible HTTP endpoint."""

import logging
import time
from typing import Any

import httpx

from diychat.ai.providers.base import LLMMessage, LLMProvider, LLMResponse, as_chat_payload
from diychat.ai.providers.registry import register_llm_provider

logger = logging.getLogger("llm")

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


@register_llm_provider
class OpenRouterProvider(LLMProvider):
    """Routes to any vendor model by namespaced id (``vendor/model``)."""

    DEFAULT_MODEL = "meta-llama/llama-3.1-8b-instruct"

    @classmethod
    def resolve_model(cls, model: str | None) -> str | None:
        requested = (model or "").strip()
        if "/" not in requested:
            return cls.DEFAULT_MODEL
        return requested

    def __init__(
        self,
        api_key: str,
        http_referer: str | None = None,
        x_title: str | None = None,
        base_url: str = OPENROUTER_BASE_URL,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {api_key}"}
        if http_referer and http_referer.strip():
            headers["HTTP-Referer"] = http_referer.strip()
        if x_title and x_title.strip():
            headers["X-Title"] = x_title.strip()

        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "openrouter"

    async def aclose(self) -> None:
        await self._client.aclose()

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

        response = await self._client.post(
            "/chat/completions",
            json={
                "model": model_id,
                "messages": as_chat_payload(messages),
                "temperature": temperature,
                "max_tokens": max_tokens,
                **kwargs,
            },
        )
        response.raise_for_status()
        result = self._parse_completion(response.json(), model_id)

        logger.debug(
            "OpenRouter completion",
            extra={
                "service": "llm",
                "provider": self.name,
                "model": result.model,
                "message_count": len(messages),
                "tokens_in": result.tokens_in,
                "tokens_out": result.tokens_out,
                "duration_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return result

    @staticmethod
    def _parse_completion(data: dict[str, Any], requested_model: str) -> LLMResponse:
        """Map an OpenAI-style completion body onto ``LLMResponse``."""
        choice = (data.get("choices") or [{}])[0]
        usage = data.get("usage") or {}
        return LLMResponse(
            content=(choice.get("message") or {}).get("content") or "",
            model=str(data.get("model") or requested_model),
            tokens_in=int(usage.get("prompt_tokens") or 0),
            tokens_out=int(usage.get("completion_tokens") or 0),
            finish_reason=choice.get("finish_reason"),
        )
