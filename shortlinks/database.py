"""Database engine and session management for the short-link engine.

This module provides SQLAlchemy async engine setup and session factories using
PostgreSQL as the backend. Engines are owned by a ``Database`` instance that the
service manager constructs at startup; nothing here is a process-wide global.

Flow Diagram — Database Lifecycle
=================================
::
    ┌─────────────┐
    │ Database(   │
    │   url)      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Create async │
    │ engine +     │
    │ sessionmaker │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ create_all() │
    │ (startup)    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ LinkStore    │
    │ opens one    │
    │ session per  │
    │ operation    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ dispose()    │
    │ (shutdown)   │
    └─────────────┘

How to Use
===========
**Step 1 — Build on startup**::
    database = Database(settings.DATABASE_URL)
    await database.create_all()

**Step 2 — Hand the session factory to the store**::
    store = LinkStore(database.sessions, timeout=settings.STORE_TIMEOUT_SECONDS)

**Step 3 — Cleanup on shutdown**::
    await database.dispose()

Key Behaviours
===============
- Connection pooling is configured for production workloads on PostgreSQL.
- In-memory SQLite shares one connection through StaticPool; file-backed
  SQLite (tests) keeps the default pool so sessions do not share a transaction.
- Sessions do not expire objects on commit, so returned rows stay readable.

Classes:
    Base:  SQLAlchemy declarative base for all models.
    Database:  Owner of one engine and its session factory.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

__all__ = ["Base", "Database", "engine_options"]


class Base(DeclarativeBase):
    pass


def engine_options(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        in_memory = ":memory:" in url or url.rstrip("/").endswith(":")
        if in_memory:
            return {
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            }
        return {}
    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_pre_ping": True,
    }


class Database:
    """Owns an async engine and the session factory bound to it."""

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, **engine_options(url))
        self.sessions: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
