"""Abstract base classes for generation backend providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class LLMMessage:
    """A message in an LLM conversation."""

    role: str  # 'system', 'user', 'assistant'
    content: str


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str
    model: str
    tokens_in: int
    tokens_out: int
    finish_reason: str | None = None


def as_chat_payload(messages: list[LLMMessage]) -> list[dict[str, str]]:
    """Role/content dicts in the shape chat-completions APIs expect."""
    return [{"role": m.role, "content": m.content} for m in messages]


class LLMProvider(ABC):
    """Abstract base class for LLM providers (e.g., Groq, OpenRouter)."""

    DEFAULT_MODEL: str | None = None

    @classmethod
    def resolve_model(cls, model: str | None) -> str | None:
        """Resolve a model ID for this provider.

        Subclasses can override this to reject model ids from another
        provider's family. By default, returns the configured model if set,
        otherwise DEFAULT_MODEL.
        """

        m = (model or "").strip() if model is not None else ""
        return m or cls.DEFAULT_MODEL

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging."""
        pass

    @abstractmethod
    async def generate(
        self,
        messages: list[LLMMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        **kwargs,
    ) -> LLMResponse:
        """Generate a complete response.

        Args:
            messages: Ordered conversation items (system/user/assistant)
            model: Model ID (provider-specific)
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate
            **kwargs: Provider-specific options

        Returns:
            LLMResponse with full content and usage
        """
        pass
