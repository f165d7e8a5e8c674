"""Chat service: one user turn from append to stored assistant reply."""

import logging
import time
import uuid
from dataclasses import dataclass

from diychat.domains.chat.producer import ResponseProducer
from diychat.domains.session import SessionLockRegistry, SessionService
from diychat.infrastructure.logging import set_request_context
from diychat.schemas.context import ContextPackage
from diychat.schemas.session import MessageResponse

logger = logging.getLogger("chat")


@dataclass
class ChatTurn:
    user_message: MessageResponse
    assistant_message: MessageResponse
    context: ContextPackage


class ChatService:
    """Drives the context engine and the response producer for each turn."""

    def __init__(
        self,
        sessions: SessionService,
        producer: ResponseProducer,
        *,
        locks: SessionLockRegistry | None = None,
    ):
        from diychat.config import get_settings

        self.sessions = sessions
        self.producer = producer
        self.locks = locks or SessionLockRegistry(enabled=get_settings().session_lock_enabled)

    async def handle_user_message(
        self,
        session_id: uuid.UUID,
        content: str,
        *,
        custom_instructions: str | None = None,
    ) -> ChatTurn:
        """Append the user message, produce a reply and store it.

        Raises:
            SessionNotFoundError: If the session does not exist.
            TransientBackendError: If summarization or the reply call failed.
        """
        set_request_context(request_id=str(uuid.uuid4()), session_id=str(session_id))
        start_time = time.time()

        async with self.locks.hold(session_id):
            user_message, context = await self.sessions.start_turn(session_id, content)
            reply = await self.producer.produce(context, custom_instructions=custom_instructions)
            assistant_message = await self.sessions.add_message(
                session_id,
                "assistant",
                reply.content,
                tool_used=reply.tool_used,
                sources=reply.sources,
                metadata=reply.metadata,
            )

        self.sessions.schedule_title_generation(session_id)

        logger.info(
            "Turn complete",
            extra={
                "service": "chat",
                "session_id": str(session_id),
                "message_id": str(assistant_message.id),
                "duration_ms": int((time.time() - start_time) * 1000),
                "metadata": {
                    "has_summary": context.has_summary,
                    "active_message_count": context.active_message_count,
                },
            },
        )
        return ChatTurn(
            user_message=user_message,
            assistant_message=assistant_message,
            context=context,
        )


__all__ = ["ChatService", "ChatTurn"]
