"""Database engine and session lifecycle."""

import os
import logging
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    create_async_engine as sa_create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.pool import StaticPool

from . import models

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./payment_sessions.db"

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_database_url() -> str:
    """DATABASE_URL with plain Postgres schemes pointed at asyncpg."""
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        return DEFAULT_DATABASE_URL
    for scheme in ("postgresql://", "postgres://"):
        if db_url.startswith(scheme):
            return "postgresql+asyncpg://" + db_url[len(scheme):]
    return db_url


def create_async_engine(database_url: Optional[str] = None, echo: bool = False) -> AsyncEngine:
    url = database_url or get_database_url()
    if url.startswith("sqlite"):
        # one shared connection so in-memory databases outlive a session
        return sa_create_async_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return sa_create_async_engine(url, echo=echo, pool_pre_ping=True)


def _sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


def get_async_session_factory(
    engine: Optional[AsyncEngine] = None,
) -> async_sessionmaker[AsyncSession]:
    """
    Session factory bound to ``engine``, or to the engine set up by init_db()
    when no engine is given.

    Raises:
        RuntimeError: If no engine is given and init_db() has not run.
    """
    if engine is not None:
        return _sessionmaker(engine)
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


async def init_db(database_url: Optional[str] = None) -> None:
    """Create the shared engine and any missing payment session tables."""
    global _engine, _session_factory

    _engine = create_async_engine(database_url)
    _session_factory = _sessionmaker(_engine)
    async with _engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)
    logger.info(f"Database ready at {_engine.url.render_as_string(hide_password=True)}")


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connection closed.")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session that commits on success."""
    async with get_async_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
