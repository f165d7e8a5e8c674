"""Session title generation and background task tracking."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from diychat.ai.providers.base import LLMMessage

logger = logging.getLogger("session")

TITLE_INPUT_CHARS = 200
TITLE_MAX_TOKENS = 20
TITLE_TEMPERATURE = 0.5

TITLE_SYSTEM_PROMPT = """You are a title generator. Create a concise 3-6 word title that summarizes the user's question or topic.
Rules:
- Output ONLY the title, no quotes, no punctuation at the end
- Be descriptive but brief
- Focus on the main topic or intent

Example inputs and outputs:
"What is 2+2?" -> "Basic Math Question"
"How do I learn Python?" -> "Learning Python Programming"
"Tell me about the French Revolution" -> "French Revolution Overview\""""

_pending_title_tasks: set[asyncio.Task[Any]] = set()


def build_title_messages(first_user_message: str) -> list[LLMMessage]:
    excerpt = first_user_message[:TITLE_INPUT_CHARS]
    return [
        LLMMessage(role="system", content=TITLE_SYSTEM_PROMPT),
        LLMMessage(
            role="user",
            content=f'Generate a concise title for this message: "{excerpt}"',
        ),
    ]


def clean_title(raw: str) -> str:
    """Strip quotes and one trailing sentence mark."""
    title = raw.strip().replace('"', "").replace("'", "").strip()
    if title and title[-1] in ".!?":
        title = title[:-1]
    return title.strip()


def track_title_task(coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
    """Run a title coroutine in the background, keeping a strong reference."""
    task = asyncio.get_running_loop().create_task(coro)
    _pending_title_tasks.add(task)
    task.add_done_callback(_pending_title_tasks.discard)
    return task


async def wait_for_title_tasks() -> None:
    """Await any pending title tasks (used in tests and on shutdown)."""

    if not _pending_title_tasks:
        return

    pending = list(_pending_title_tasks)
    try:
        await asyncio.gather(*pending, return_exceptions=True)
    finally:
        for task in pending:
            _pending_title_tasks.discard(task)


__all__ = [
    "TITLE_SYSTEM_PROMPT",
    "build_title_messages",
    "clean_title",
    "track_title_task",
    "wait_for_title_tasks",
]
