"""Application wiring: builds the engine services from settings."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from diychat.ai.generation import build_generation_backend
from diychat.config import Settings, get_settings
from diychat.domains.chat import (
    ChatService,
    FallbackIntentClassifier,
    LLMResponseProducer,
    ModelIntentClassifier,
)
from diychat.domains.session import SessionLockRegistry, SessionService, wait_for_title_tasks
from diychat.domains.summary import SummarizerService
from diychat.infrastructure.database import close_db, get_session_factory, init_db
from diychat.infrastructure.logging import setup_logging
from diychat.infrastructure.storage import FileContentStore, MetadataIndex

logger = logging.getLogger("app")


@dataclass
class AppServices:
    index: MetadataIndex
    store: FileContentStore
    summarizer: SummarizerService
    sessions: SessionService
    chat: ChatService


def build_services(settings: Settings | None = None) -> AppServices:
    """Wire stores, backends and domain services from settings."""
    settings = settings or get_settings()

    index = MetadataIndex(get_session_factory())
    store = FileContentStore(settings.storage_base_path)

    summarizer = SummarizerService(
        index,
        store,
        build_generation_backend(settings.summary_llm_provider, settings.effective_summary_model_id),
    )
    sessions = SessionService(
        index,
        store,
        summarizer,
        title_backend=build_generation_backend(
            settings.title_llm_provider, settings.effective_title_model_id
        ),
    )

    reply_backend = build_generation_backend(settings.llm_provider, settings.chat_model_id)
    classifier = FallbackIntentClassifier(
        ModelIntentClassifier(reply_backend, model_id=settings.planner_model_id)
    )
    chat = ChatService(
        sessions,
        LLMResponseProducer(reply_backend, classifier),
        locks=SessionLockRegistry(enabled=settings.session_lock_enabled),
    )
    return AppServices(index=index, store=store, summarizer=summarizer, sessions=sessions, chat=chat)


@asynccontextmanager
async def lifespan() -> AsyncIterator[AppServices]:
    """Startup/shutdown around a fully wired set of services."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.debug_namespaces)

    logger.info("Starting diychat", extra={"service": "app"})
    settings.log_config_summary()
    await init_db()

    try:
        yield build_services(settings)
    finally:
        logger.info("Shutting down diychat", extra={"service": "app"})
        await wait_for_title_tasks()
        await close_db()


__all__ = ["AppServices", "build_services", "lifespan"]
