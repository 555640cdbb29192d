"""
Database engine and session lifecycle for the journal store.

Job tasks and API requests write concurrently, so file-backed SQLite runs in
WAL mode with a busy timeout; other backends are used as configured. Code
outside this module only ever calls ``get_session()``, which commits on a
clean exit and rolls back otherwise.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from mindwell.core.config import get_settings

SQLITE_BUSY_TIMEOUT_MS = 5000


class Base(DeclarativeBase):
    """Declarative base for the job and entry tables."""


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _on_sqlite_connect(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()


def build_engine(db_url: str) -> AsyncEngine:
    """Create an engine for *db_url*, preparing SQLite files for concurrent use."""
    url = make_url(db_url)
    engine = create_async_engine(db_url, echo=False)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        event.listen(engine.sync_engine, "connect", _on_sqlite_connect)
    return engine


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, built from ``DATABASE_URL`` on first use."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings().database_url)
    return _engine


def use_engine(engine: AsyncEngine) -> None:
    """Route all sessions through *engine* (tests, scripts with their own DB)."""
    global _engine, _session_factory
    _engine = engine
    _session_factory = None


def _get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield a session that commits on success and rolls back on any error.

    Cancellation counts as an error: a job task cancelled mid-write leaves
    nothing half-committed.
    """
    async with _get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create any missing tables."""
    from mindwell.services.storage import models_db  # noqa: F401  (registers tables)

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the engine; the next session builds a fresh one."""
    engine = _engine
    reset_engine()
    if engine is not None:
        await engine.dispose()


def reset_engine() -> None:
    """Forget the engine without disposing it."""
    global _engine, _session_factory
    _engine = None
    _session_factory = None
