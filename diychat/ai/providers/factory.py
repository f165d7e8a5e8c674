"""Factory for LLM provider instances.

Providers self-register at import time, so the factory only looks names up
in the registry and supplies credentials from settings.
"""

import logging
from functools import lru_cache
from typing import Any

from diychat.ai.providers.base import LLMProvider
from diychat.ai.providers.llm.stub import StubLLMProvider
from diychat.ai.providers.registry import ProviderNotFoundError, _llm_registry
from diychat.config import get_settings
from diychat.exceptions import ConfigurationError

logger = logging.getLogger("providers")

_ENV_VARS = {
    "groq": "GROQ_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}


def _get_provider_class(provider_name: str) -> type[LLMProvider]:
    if provider_name not in _llm_registry:
        registered = ", ".join(sorted(_llm_registry.keys())) or "(none)"
        raise ProviderNotFoundError(
            f"Unknown LLM provider: '{provider_name}'. Registered providers: {registered}"
        )
    return _llm_registry[provider_name]


def _provider_kwargs(provider: str) -> dict[str, Any] | None:
    """Constructor kwargs for a provider, or None when its API key is missing."""
    settings = get_settings()
    if provider == "groq":
        if not settings.groq_api_key:
            return None
        return {"api_key": settings.groq_api_key}
    if provider == "openrouter":
        if not settings.openrouter_api_key:
            return None
        return {
            "api_key": settings.openrouter_api_key,
            "http_referer": settings.openrouter_http_referer,
            "x_title": settings.openrouter_x_title,
            "timeout": float(settings.provider_timeout_llm_seconds),
        }
    return {}


@lru_cache
def get_llm_provider(provider: str | None = None) -> LLMProvider:
    """Get an LLM provider instance.

    Falls back to the stub provider when the requested provider has no API
    key configured or fails to initialize. In production a missing key is
    an error instead.

    Args:
        provider: Provider name ('groq', 'openrouter', 'stub').
            If None, uses settings.llm_provider.

    Raises:
        ProviderNotFoundError: If provider is not registered
        ConfigurationError: If the provider has no API key in production
    """
    settings = get_settings()

    if provider is None:
        provider = settings.llm_provider

    provider = (provider or "").lower().strip() or "groq"
    provider_class = _get_provider_class(provider)

    if provider == "stub":
        logger.warning(
            "Using stub LLM provider (explicitly requested)",
            extra={"service": "providers", "provider": "stub", "reason": "explicit_request"},
        )
        return provider_class()

    kwargs = _provider_kwargs(provider)
    if kwargs is None:
        env_var = _ENV_VARS.get(provider, f"{provider.upper()}_API_KEY")
        if settings.environment == "production":
            # Production never degrades to the stub
            raise ConfigurationError(
                f"{env_var} is required for the {provider} provider in production",
                details={"provider": provider, "env_var": env_var},
            )
        logger.warning(
            f"Using stub LLM provider - {env_var} not configured",
            extra={
                "service": "providers",
                "provider": "stub",
                "reason": "missing_api_key",
                "metadata": {"requested_provider": provider, "expected_env_var": env_var},
            },
        )
        return StubLLMProvider()

    try:
        instance = provider_class(**kwargs)
    except Exception as e:
        logger.warning(
            f"Using stub LLM provider - failed to initialize {provider}: {e}",
            extra={
                "service": "providers",
                "provider": "stub",
                "reason": "initialization_error",
                "error": str(e),
                "metadata": {"requested_provider": provider},
            },
        )
        return StubLLMProvider()

    logger.info(
        "LLM provider initialized",
        extra={"service": "providers", "provider": provider},
    )
    return instance
