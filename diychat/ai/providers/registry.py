"""Provider registry for self-registration of LLM providers.

Providers register themselves at import time, so the factory never needs
to know about concrete implementations.

Usage:
    from diychat.ai.providers.registry import register_llm_provider

    @register_llm_provider
    class GroqProvider(LLMProvider):
        ...
"""

from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from diychat.ai.providers.base import LLMProvider

LLM = TypeVar("LLM", bound="LLMProvider")

# Populated by the decorator at import time
_llm_registry: dict[str, type["LLMProvider"]] = {}


class ProviderRegistryError(Exception):
    """Base error for provider registry issues."""
    pass


class ProviderNotFoundError(ProviderRegistryError):
    """Raised when a requested provider is not registered."""
    pass


class DuplicateProviderError(ProviderRegistryError):
    """Raised when a provider name is registered twice."""
    pass


def _provider_name(provider_class: type) -> str:
    name = getattr(provider_class, "name", None)
    if name is None:
        raise ProviderRegistryError(
            f"Provider {provider_class.__name__} is missing required 'name' property"
        )
    # `name` is normally an abstract property; read it off the getter
    if isinstance(name, property):
        if name.fget is None:
            raise ProviderRegistryError(
                f"Provider {provider_class.__name__} has a 'name' property without a getter"
            )
        name = name.fget(provider_class)
    elif callable(name):
        name = name()
    if not isinstance(name, str):
        raise ProviderRegistryError(
            f"Provider {provider_class.__name__} has an invalid 'name' property type: {type(name)}"
        )
    return name


def register_llm_provider(provider_class: type[LLM]) -> type[LLM]:
    """Register an LLM provider class under its ``name``.

    Raises:
        DuplicateProviderError: If a provider with this name is already registered.
    """
    name = _provider_name(provider_class)
    if name in _llm_registry:
        raise DuplicateProviderError(f"LLM provider '{name}' is already registered")
    _llm_registry[name] = provider_class
    return provider_class


def get_registered_llm_providers() -> dict[str, type["LLMProvider"]]:
    """Get a copy of the registered LLM providers."""
    return _llm_registry.copy()


def is_llm_provider_registered(name: str) -> bool:
    return name in _llm_registry
