"""Generation backend: one provider call with timeout and optional fallback.

Callers hand in an ordered list of role-tagged items and get text back.
Every provider failure is normalized into ``TransientBackendError`` (or its
``BackendTimeoutError`` subclass) so the engine can abort without writes.
"""

import asyncio
import logging
import time
import uuid

from diychat.ai.providers.base import LLMMessage, LLMProvider, LLMResponse
from diychat.ai.providers.factory import get_llm_provider
from diychat.config import get_settings
from diychat.exceptions import BackendTimeoutError, TransientBackendError

logger = logging.getLogger("generation")


class GenerationBackend:
    """Wraps a primary LLM provider and an optional backup."""

    def __init__(
        self,
        provider: LLMProvider,
        *,
        model_id: str | None = None,
        backup_provider: LLMProvider | None = None,
        timeout_seconds: float = 60.0,
    ):
        self.provider = provider
        self.model_id = model_id
        self.backup_provider = backup_provider
        self.timeout_seconds = timeout_seconds

    async def generate(
        self,
        messages: list[LLMMessage],
        *,
        operation: str,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        model: str | None = None,
        session_id: uuid.UUID | None = None,
        timeout_seconds: float | None = None,
    ) -> LLMResponse:
        """Generate a completion, falling back to the backup provider once.

        ``timeout_seconds`` overrides the backend default for this call only
        and applies to each provider attempt.

        Raises:
            TransientBackendError: If every configured provider failed.
            BackendTimeoutError: If the last attempted provider timed out.
        """
        model_id = model or self.model_id
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        try:
            return await self._call(
                self.provider,
                messages,
                operation,
                temperature,
                max_tokens,
                model_id,
                session_id,
                timeout,
            )
        except TransientBackendError as primary_error:
            backup = self.backup_provider
            if backup is None or backup.name == self.provider.name:
                raise

            logger.warning(
                "Primary LLM failed, will try backup",
                extra={
                    "service": "generation",
                    "operation": operation,
                    "session_id": str(session_id) if session_id else None,
                    "error": str(primary_error),
                    "metadata": {"backup_provider": backup.name},
                },
            )
            response = await self._call(
                backup,
                messages,
                operation,
                temperature,
                max_tokens,
                model_id,
                session_id,
                timeout,
            )
            logger.info(
                "Backup LLM succeeded",
                extra={
                    "service": "generation",
                    "operation": operation,
                    "provider": backup.name,
                    "session_id": str(session_id) if session_id else None,
                },
            )
            return response

    async def _call(
        self,
        provider: LLMProvider,
        messages: list[LLMMessage],
        operation: str,
        temperature: float,
        max_tokens: int,
        model_id: str | None,
        session_id: uuid.UUID | None,
        timeout: float,
    ) -> LLMResponse:
        resolved_model = type(provider).resolve_model(model_id)
        start_time = time.time()
        try:
            response = await asyncio.wait_for(
                provider.generate(
                    messages,
                    model=resolved_model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                ),
                timeout=timeout,
            )
        except TimeoutError as e:
            logger.error(
                "LLM call timed out",
                extra={
                    "service": "generation",
                    "operation": operation,
                    "provider": provider.name,
                    "model_id": resolved_model,
                    "session_id": str(session_id) if session_id else None,
                    "error_code": BackendTimeoutError.code,
                },
            )
            raise BackendTimeoutError(provider.name, operation, timeout) from e
        except Exception as e:
            logger.error(
                "LLM call failed",
                extra={
                    "service": "generation",
                    "operation": operation,
                    "provider": provider.name,
                    "model_id": resolved_model,
                    "session_id": str(session_id) if session_id else None,
                    "error_code": TransientBackendError.code,
                    "error": str(e),
                },
            )
            raise TransientBackendError(provider.name, operation, str(e)) from e

        logger.debug(
            "LLM call complete",
            extra={
                "service": "generation",
                "operation": operation,
                "provider": provider.name,
                "model_id": resolved_model,
                "tokens_in": response.tokens_in,
                "tokens_out": response.tokens_out,
                "duration_ms": int((time.time() - start_time) * 1000),
            },
        )
        return response


def build_generation_backend(
    provider_name: str | None = None,
    model_id: str | None = None,
) -> GenerationBackend:
    """Build a backend from settings (primary, backup, timeout)."""
    settings = get_settings()
    backup_name = settings.llm_backup_provider
    return GenerationBackend(
        get_llm_provider(provider_name),
        model_id=model_id or settings.chat_model_id,
        backup_provider=get_llm_provider(backup_name) if backup_name else None,
        timeout_seconds=float(settings.provider_timeout_llm_seconds),
    )


__all__ = ["GenerationBackend", "build_generation_backend"]
