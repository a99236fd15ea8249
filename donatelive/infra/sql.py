from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncContextManager, AsyncIterator, Callable, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)

Gated = Callable[[], AsyncContextManager[None]]

_ASYNC_DRIVERS = (
    ("sqlite://", "sqlite+aiosqlite://"),
    ("postgresql://", "postgresql+asyncpg://"),
    # Heroku-style URLs
    ("postgres://", "postgresql+asyncpg://"),
)


def normalize_async_url(url: str) -> str:
    for plain, driver in _ASYNC_DRIVERS:
        if url.startswith(plain):
            return driver + url[len(plain):]
    return url


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite+aiosqlite://")


@dataclass
class Database:
    """Engine, session factory and the gate that bounds concurrent work."""
    engine: AsyncEngine
    sessions: async_sessionmaker
    gate: asyncio.Semaphore

    @asynccontextmanager
    async def _hold_gate(self) -> AsyncIterator[None]:
        async with self.gate:
            yield

    def gated(self) -> AsyncContextManager[None]:
        return self._hold_gate()

    async def dispose(self) -> None:
        await self.engine.dispose()


def make_async_engine(
    database_url: str, *,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_timeout: float = 30.0,
    gate_limit: Optional[int] = None,
    busy_timeout_ms: int = 5000,
) -> Database:
    url = normalize_async_url(database_url)
    kw = dict(future=True, pool_pre_ping=True)
    if not _is_sqlite(url):
        kw.update(pool_size=pool_size, max_overflow=max_overflow,
                  pool_timeout=pool_timeout)
    engine = create_async_engine(url, **kw)

    if _is_sqlite(url):
        # writers queue for up to busy_timeout_ms
        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_pragmas(dbapi_connection, _):
            cur = dbapi_connection.cursor()
            cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)};")
            cur.execute("PRAGMA synchronous=NORMAL;")
            cur.close()

    sessions = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    # no more storage coroutines in flight than the pool can serve
    limit = gate_limit if gate_limit is not None else pool_size
    return Database(engine=engine, sessions=sessions,
                    gate=asyncio.Semaphore(max(1, limit)))
