from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (AsyncEngine, AsyncSession, async_sessionmaker,
                                    create_async_engine)

from refbot.db.urls import make_async_db_url

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None

log = logging.getLogger(__name__)


def init_engine(database_url: str, *, echo: bool = False) -> None:
    """Create the process-wide engine once; later calls are no-ops."""
    global _engine, _sessionmaker
    if _engine is not None:
        return
    _engine = create_async_engine(make_async_db_url(database_url), pool_pre_ping=True, echo=echo)
    # handlers read attributes after commit (send_replacing, admin cards)
    _sessionmaker = async_sessionmaker(_engine, expire_on_commit=False)
    log.info("db_engine_initialized echo=%s", echo)


async def dispose_engine() -> None:
    global _engine, _sessionmaker
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _sessionmaker = None
    log.info("db_engine_disposed")


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    if _sessionmaker is None:
        raise RuntimeError("DB engine not initialized. Call init_engine() first.")
    return _sessionmaker


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """One AsyncSession per handler step.

    Nothing is committed implicitly: callers commit what they want to keep,
    anything left open is rolled back when the session closes.
    """
    async with get_sessionmaker()() as session:
        yield session
