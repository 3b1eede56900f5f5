"""Declarative base plus the process-wide engine and session factory."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from paybroker.core.config import get_settings


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(db_url: str, echo: bool) -> dict:
    if db_url.startswith("sqlite"):
        # Serialize on SQLite's single writer lock rather than failing fast
        return {"echo": echo, "connect_args": {"timeout": 30}}
    return {"echo": echo, "pool_pre_ping": True}


async def init_db(url: str | None = None) -> None:
    """Open the checkout database and create any missing tables.

    Safe to call twice; the second call keeps the existing engine.
    """
    global _engine, _session_factory

    if _engine is not None:
        return

    settings = get_settings()
    db_url = url or settings.database_url

    _engine = create_async_engine(db_url, **_engine_options(db_url, settings.debug))
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)

    # Registers every table on Base.metadata
    import paybroker.db.models  # noqa: F401

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Checkout database is not open; call init_db() during startup")
    return _session_factory
