"""Shared fixtures: SQLite metadata index, temp content store, fake clock."""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Keep every provider offline regardless of the developer's .env
os.environ["ENVIRONMENT"] = "development"
os.environ["LLM_PROVIDER"] = "stub"
os.environ["SUMMARY_LLM_PROVIDER"] = "stub"
os.environ["TITLE_LLM_PROVIDER"] = "stub"
os.environ["LLM_BACKUP_PROVIDER"] = ""

from diychat.ai.generation import GenerationBackend  # noqa: E402
from diychat.ai.providers.factory import get_llm_provider  # noqa: E402
from diychat.ai.providers.llm.stub import StubLLMProvider  # noqa: E402
from diychat.config import get_settings  # noqa: E402
from diychat.domains.session import SessionService  # noqa: E402
from diychat.domains.summary import SummarizerService  # noqa: E402
from diychat.infrastructure.database import (  # noqa: E402
    build_session_factory,
    create_engine_for_url,
    create_schema,
)
from diychat.infrastructure.storage import FileContentStore, MetadataIndex  # noqa: E402

START_MS = 1_700_000_000_000


class FakeClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, *, minutes: float = 0, seconds: float = 0) -> int:
        self.now += int(minutes * 60_000 + seconds * 1000)
        return self.now


@pytest.fixture(autouse=True)
def _clear_cached_settings():
    """Settings and providers are lru_cached; reset them around every test."""
    get_settings.cache_clear()
    get_llm_provider.cache_clear()
    yield
    get_settings.cache_clear()
    get_llm_provider.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with the schema created."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'index.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
def index(session_factory, clock) -> MetadataIndex:
    return MetadataIndex(session_factory, clock=clock)


@pytest.fixture
def store(tmp_path) -> FileContentStore:
    return FileContentStore(tmp_path / "sessions")


@pytest.fixture
def stub_backend() -> GenerationBackend:
    return GenerationBackend(StubLLMProvider(), timeout_seconds=5)


@pytest.fixture
def summarizer(index, store, stub_backend, clock) -> SummarizerService:
    return SummarizerService(
        index,
        store,
        stub_backend,
        cache_expiry_minutes=5,
        meaningful_message_threshold=5,
        clock=clock,
    )


@pytest.fixture
def sessions(index, store, summarizer, stub_backend, clock) -> SessionService:
    return SessionService(
        index,
        store,
        summarizer,
        title_backend=stub_backend,
        default_page_size=4,
        clock=clock,
    )


@pytest.fixture
def add_exchanges(sessions, clock):
    """Append N user/assistant pairs, one second apart."""

    async def _add(session_id, count: int, prefix: str = "turn"):
        added = []
        for i in range(count):
            added.append(await sessions.add_message(session_id, "user", f"{prefix} {i} question"))
            clock.advance(seconds=1)
            added.append(await sessions.add_message(session_id, "assistant", f"{prefix} {i} answer"))
            clock.advance(seconds=1)
        return added

    return _add
