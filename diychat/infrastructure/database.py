"""Database connection and session management (infrastructure layer)."""

import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from diychat.config import get_settings

logger = logging.getLogger("db")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# Engine will be created on startup
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_for_url(
    database_url: str,
    *,
    echo: bool = False,
    disable_pooling: bool = False,
    pool_size: int = 10,
) -> AsyncEngine:
    """Build an async engine, applying backend-specific options."""
    engine_kwargs: dict = {"echo": echo}
    is_sqlite = database_url.startswith("sqlite")
    if disable_pooling or is_sqlite:
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs.update(
            {"pool_pre_ping": True, "pool_size": pool_size, "max_overflow": 0}
        )
    engine = create_async_engine(database_url, **engine_kwargs)
    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the given engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    """Get the SQLAlchemy async engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine_for_url(
            settings.database_url,
            echo=False,
            disable_pooling=settings.database_disable_pooling,
            pool_size=settings.database_pool_size,
        )
        logger.info(
            "Database engine created",
            extra={
                "service": "db",
                "metadata": {"database": settings._redact_url(settings.database_url)},
            },
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the async session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = build_session_factory(get_engine())
    return _async_session_factory


async def create_schema(engine: AsyncEngine) -> None:
    """Create all metadata index tables if they do not exist."""
    # Import models so they register on Base.metadata
    import diychat.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """Initialize database connection and schema (call on startup)."""
    engine = get_engine()
    await create_schema(engine)
    logger.info("Database schema initialized", extra={"service": "db"})


async def close_db() -> None:
    """Close database connection (call on shutdown)."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
    logger.info("Database connections closed", extra={"service": "db"})


__all__ = [
    "Base",
    "create_engine_for_url",
    "build_session_factory",
    "get_engine",
    "get_session_factory",
    "create_schema",
    "init_db",
    "close_db",
]
