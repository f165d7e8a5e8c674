"""Summary service for context window compression.

Decides when a session's unsummarized history is due for compaction and
folds it, together with the previous summary, into a new rolling summary.
"""

import logging
import time
import uuid
from dataclasses import dataclass

from diychat.ai.generation import GenerationBackend
from diychat.ai.providers.base import LLMMessage
from diychat.ai.tokens import CharRatioTokenEstimator, TokenEstimator
from diychat.exceptions import SessionNotFoundError, TransientBackendError
from diychat.infrastructure.clock import Clock, now_ms
from diychat.infrastructure.storage import (
    FileContentStore,
    MetadataIndex,
    report_missing_content,
)
from diychat.models import Message
from diychat.schemas.content import SummaryContent
from diychat.schemas.context import ContextMessage, ContextPackage

logger = logging.getLogger("summary")

# Number of trailing messages tagged for extra detail
RECENT_MESSAGE_COUNT = 3
RECENT_TAG = "[RECENT]"

SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_TOKENS = 1000

SUMMARIZER_SYSTEM_PROMPT = """You are a conversation summarizer. Create concise but comprehensive summaries.

## Output Format
Provide a summary with these sections:

### Context
Brief description of what this conversation is about (1-2 sentences)

### Key Discussion Points
- Main topics discussed (bullet points)
- Important conclusions reached

### User Instructions & Preferences
- Any specific instructions the user gave
- Preferences or constraints mentioned
- These should be preserved for context

### Important Facts & Details
- Specific facts, numbers, or technical details mentioned
- Code snippets or examples if relevant (keep brief)

## Guidelines
1. **Recency Weighting**: Give more detail to [RECENT] messages - they represent the current focus
2. **Instruction Preservation**: User instructions should NEVER be lost
3. **Conciseness**: Keep under 500 words while preserving essential context
4. **Actionable**: The summary should allow continuing the conversation seamlessly
5. **No Opinions**: Just summarize, don't add interpretation"""


@dataclass(frozen=True)
class SummarizationDecision:
    """Outcome of the cache-expiry / threshold check."""

    needs_summary: bool
    reason: str
    minutes_since_activity: float | None = None
    meaningful_count: int | None = None


@dataclass(frozen=True)
class SummaryResult:
    summary_id: uuid.UUID
    summary: str
    covered_messages: int
    tokens: int
    version: int


@dataclass(frozen=True)
class _BatchItem:
    id: uuid.UUID
    role: str
    content: str


def build_summary_prompt(
    previous_summary: str | None,
    messages: list[tuple[str, str]],
) -> str:
    """Render the summarization request body.

    Args:
        previous_summary: Text of the current summary, if any
        messages: (role, content) pairs, oldest first

    The last ``RECENT_MESSAGE_COUNT`` messages carry the recency tag.
    """
    parts: list[str] = []
    if previous_summary:
        parts.append(f"## Previous Conversation Summary\n{previous_summary}\n\n")
        parts.append("## New Messages to Incorporate\n")
    else:
        parts.append("## Conversation to Summarize\n")

    total = len(messages)
    for index, (role, content) in enumerate(messages):
        speaker = "User" if role == "user" else "Assistant"
        prefix = f"{RECENT_TAG} " if index >= total - RECENT_MESSAGE_COUNT else ""
        parts.append(f"{prefix}{speaker}: {content}\n\n")

    parts.append("\nGenerate a comprehensive summary following the guidelines.")
    return "".join(parts)


class SummarizerService:
    """Service for session summarization and context assembly."""

    def __init__(
        self,
        index: MetadataIndex,
        store: FileContentStore,
        backend: GenerationBackend,
        *,
        cache_expiry_minutes: float | None = None,
        meaningful_message_threshold: int | None = None,
        token_estimator: TokenEstimator | None = None,
        clock: Clock = now_ms,
    ):
        """Initialize summarizer.

        Args:
            index: Metadata index
            store: Content store
            backend: Generation backend used for summaries
            cache_expiry_minutes: Idle window (None = configured default)
            meaningful_message_threshold: Minimum unsummarized assistant
                replies before compaction (None = configured default)
            token_estimator: Fallback when the backend reports no usage
            clock: Epoch-ms clock
        """
        from diychat.config import get_settings

        settings = get_settings()
        self.index = index
        self.store = store
        self.backend = backend
        self.cache_expiry_minutes = (
            settings.cache_expiry_minutes if cache_expiry_minutes is None else cache_expiry_minutes
        )
        self.meaningful_message_threshold = (
            settings.meaningful_message_threshold
            if meaningful_message_threshold is None
            else meaningful_message_threshold
        )
        self.token_estimator = token_estimator or CharRatioTokenEstimator()
        self.clock = clock

    async def check_summarization_needed(self, session_id: uuid.UUID) -> SummarizationDecision:
        """Evaluate the per-session cache state.

        Summarization is due only when the session has been idle longer than
        the expiry window AND enough assistant replies are unsummarized.
        """
        session = await self.index.get_session(session_id)
        if session is None:
            return SummarizationDecision(False, "session_not_found")

        minutes_since_activity = (self.clock() - session.last_activity_at) / 60_000
        if minutes_since_activity <= self.cache_expiry_minutes:
            return SummarizationDecision(
                False,
                "cache_still_valid",
                minutes_since_activity=minutes_since_activity,
            )

        meaningful_count = await self.index.count_meaningful_messages(session_id)
        if meaningful_count < self.meaningful_message_threshold:
            return SummarizationDecision(
                False,
                "not_enough_messages",
                minutes_since_activity=minutes_since_activity,
                meaningful_count=meaningful_count,
            )

        return SummarizationDecision(
            True,
            "cache_expired_and_threshold_met",
            minutes_since_activity=minutes_since_activity,
            meaningful_count=meaningful_count,
        )

    async def maybe_summarize(self, session_id: uuid.UUID) -> SummaryResult | None:
        """Run summarization if the session is due for it."""
        decision = await self.check_summarization_needed(session_id)
        logger.debug(
            "Summarization check",
            extra={
                "service": "summary",
                "session_id": str(session_id),
                "reason": decision.reason,
                "minutes_since_activity": decision.minutes_since_activity,
                "meaningful_count": decision.meaningful_count,
            },
        )
        if not decision.needs_summary:
            return None

        logger.info(
            "Cache expired, generating summary",
            extra={
                "service": "summary",
                "session_id": str(session_id),
                "minutes_since_activity": round(decision.minutes_since_activity or 0, 2),
                "meaningful_count": decision.meaningful_count,
            },
        )
        return await self.generate_summary(session_id)

    async def generate_summary(self, session_id: uuid.UUID) -> SummaryResult | None:
        """Fold the previous summary and all unsummarized messages into a new summary.

        Returns None (no writes) when there is nothing to summarize. The
        blob is written before the metadata transaction, which inserts the
        summary, marks the batch and moves the current pointer together.

        Raises:
            TransientBackendError: Backend failed; nothing was written.
        """
        start_time = time.time()

        previous_summary = await self._current_summary_text(session_id)
        batch = await self._load_batch(session_id)
        if not batch:
            logger.info(
                "No unsummarized messages",
                extra={"service": "summary", "session_id": str(session_id)},
            )
            return None

        prompt = build_summary_prompt(
            previous_summary,
            [(item.role, item.content) for item in batch],
        )
        messages = [
            LLMMessage(role="system", content=SUMMARIZER_SYSTEM_PROMPT),
            LLMMessage(role="user", content=prompt),
        ]

        try:
            response = await self.backend.generate(
                messages,
                operation="summarize",
                temperature=SUMMARY_TEMPERATURE,
                max_tokens=SUMMARY_MAX_TOKENS,
                session_id=session_id,
            )
        except TransientBackendError as e:
            logger.warning(
                "Summary generation failed, messages left unsummarized",
                extra={
                    "service": "summary",
                    "session_id": str(session_id),
                    "error_code": e.code,
                    "error": str(e),
                    "message_count": len(batch),
                },
            )
            raise

        summary_text = response.content.strip()
        if not summary_text:
            raise TransientBackendError(
                self.backend.provider.name,
                "summarize",
                "empty summary returned",
            )

        tokens = (response.tokens_in + response.tokens_out) or self.token_estimator.estimate(
            summary_text
        )
        covered_ids = [item.id for item in batch]
        summary_id = uuid.uuid4()

        path = await self.store.save_summary(
            SummaryContent(
                id=summary_id,
                session_id=session_id,
                summary=summary_text,
                covered_message_ids=covered_ids,
                tokens=tokens,
                created_at=self.clock(),
            )
        )
        summary = await self.index.create_summary(
            session_id,
            content_path=self.store.relative_path(path),
            tokens=tokens,
            covers_until_message_id=covered_ids[-1],
            covered_message_ids=covered_ids,
            summary_id=summary_id,
        )

        logger.info(
            "Summary generated",
            extra={
                "service": "summary",
                "session_id": str(session_id),
                "summary_id": str(summary.id),
                "covered_messages": len(covered_ids),
                "tokens": tokens,
                "duration_ms": int((time.time() - start_time) * 1000),
                "metadata": {"version": summary.version},
            },
        )

        return SummaryResult(
            summary_id=summary.id,
            summary=summary_text,
            covered_messages=len(covered_ids),
            tokens=tokens,
            version=summary.version,
        )

    async def build_context(self, session_id: uuid.UUID) -> ContextPackage:
        """Current summary plus unsummarized messages, without triggering compaction.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        session = await self.index.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        summary_text: str | None = None
        has_summary = False
        if session.current_summary_id is not None:
            summary_text = await self._current_summary_text(session_id)
            has_summary = summary_text is not None

        active_messages = [
            ContextMessage(role=item.role, content=item.content)
            for item in await self._load_batch(session_id)
        ]

        return ContextPackage(
            summary_text=summary_text,
            active_messages=active_messages,
            has_summary=has_summary,
            active_message_count=len(active_messages),
        )

    async def get_session_context(self, session_id: uuid.UUID) -> ContextPackage:
        """Summarize first if due, then build the context package."""
        await self.maybe_summarize(session_id)
        return await self.build_context(session_id)

    async def _current_summary_text(self, session_id: uuid.UUID) -> str | None:
        """Text of the current summary; "" when its blob is missing."""
        summary = await self.index.get_current_summary(session_id)
        if summary is None:
            return None
        content = await self.store.get_summary(session_id, summary.id)
        if content is None:
            report_missing_content(session_id, summary.id, "summary")
            return ""
        return content.summary

    async def _load_batch(self, session_id: uuid.UUID) -> list[_BatchItem]:
        rows = await self.index.list_unsummarized_messages(session_id)
        return [await self._load_item(session_id, row) for row in rows]

    async def _load_item(self, session_id: uuid.UUID, row: Message) -> _BatchItem:
        content = await self.store.get_message(session_id, row.id)
        if content is None:
            report_missing_content(session_id, row.id, "message")
            return _BatchItem(id=row.id, role=row.role, content="")
        return _BatchItem(id=row.id, role=content.role, content=content.content)


__all__ = [
    "RECENT_TAG",
    "SUMMARIZER_SYSTEM_PROMPT",
    "SummarizationDecision",
    "SummarizerService",
    "SummaryResult",
    "build_summary_prompt",
]
