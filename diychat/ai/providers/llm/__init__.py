"""LLM provider implementations."""

from diychat.ai.providers.llm.groq import GroqProvider
from diychat.ai.providers.llm.openrouter import OpenRouterProvider
from diychat.ai.providers.llm.stub import StubLLMProvider

__all__ = [
    "GroqProvider",
    "OpenRouterProvider",
    "StubLLMProvider",
]
