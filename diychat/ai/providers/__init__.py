"""Generation backend providers.

Importing this package registers every bundled provider.
"""

from diychat.ai.providers.base import LLMMessage, LLMProvider, LLMResponse
from diychat.ai.providers.factory import get_llm_provider
from diychat.ai.providers.llm import GroqProvider, OpenRouterProvider, StubLLMProvider

__all__ = [
    "get_llm_provider",
    "LLMProvider",
    "LLMMessage",
    "LLMResponse",
    "GroqProvider",
    "OpenRouterProvider",
    "StubLLMProvider",
]
