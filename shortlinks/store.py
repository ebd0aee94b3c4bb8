"""Durable link store adapter.

This module is the only place that talks SQL. Every operation opens its own
session, runs under a bounded deadline, and converts driver failures into
``StoreError`` so callers see one failure kind for "the store is unavailable".

Operation Overview
==================
::
    LinkStore
    ├─ find_by_destination_and_owner(digest, user_id, now)  → Link | None
    ├─ find_by_code(short_code)                             → Link | None
    ├─ insert_link(link)                                    → bool (False on code conflict)
    ├─ find_expired_before(moment, limit)                   → list[Link]
    ├─ delete_by_ids(ids)                                   → int
    ├─ insert_click_event(event)                            → None
    ├─ list_click_events_by_code(short_code)                → list[ClickEvent] (newest first)
    └─ ping()                                               → None

Flow Diagram — Conditional Insert
=================================
::
    ┌─────────────┐
    │ insert_link │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ INSERT row  │
    │ (unique     │
    │ short_code) │
    └──────┬──────┘
    CONFLICT? │
    ┌─────┴─────┐
    │ NO         │ YES (IntegrityError)
    ▼            ▼
┌─────────┐  ┌─────────┐
│ COMMIT  │  │ ROLLBACK│
│ → True  │  │ → False │
└─────────┘  └─────────┘

Key Behaviours
===============
- The unique constraint on short_code is the collision signal for concurrent
  allocations that both passed the read-side check.
- The reaper deletes by primary key, never by re-evaluating the time predicate.
- Timeouts and driver errors surface as StoreError with the cause chained.
"""

import asyncio
import datetime
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlinks.errors import StoreError
from shortlinks.metrics import STORE_ERRORS_TOTAL
from shortlinks.models import ClickEvent, Link

__all__ = ["LinkStore"]

T = TypeVar("T")


class LinkStore:
    """Predicate-based CRUD over link records and click events."""

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        timeout: float = 2.0,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._sessions = sessions
        self._timeout = timeout
        self._logger = logger or logging.getLogger("shortlinks.store")

    async def _run(self, operation: str, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async def in_session() -> T:
            async with self._sessions() as session:
                return await work(session)

        try:
            return await asyncio.wait_for(in_session(), timeout=self._timeout)
        except TimeoutError as exc:
            STORE_ERRORS_TOTAL.labels(operation=operation).inc()
            self._logger.error(f"Store {operation} timed out after {self._timeout}s")
            raise StoreError(f"Store {operation} timed out") from exc
        except (SQLAlchemyError, OSError) as exc:
            STORE_ERRORS_TOTAL.labels(operation=operation).inc()
            self._logger.error(f"Store {operation} failed: {exc}")
            raise StoreError(f"Store {operation} failed") from exc

    async def find_by_destination_and_owner(
        self, destination_digest: str, user_id: str, now: datetime.datetime
    ) -> Link | None:
        async def work(session: AsyncSession) -> Link | None:
            result = await session.execute(
                select(Link)
                .where(
                    Link.destination_digest == destination_digest,
                    Link.user_id == user_id,
                    Link.is_active.is_(True),
                    or_(Link.expires_at.is_(None), Link.expires_at > now),
                )
                .order_by(Link.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

        return await self._run("find_by_destination_and_owner", work)

    async def find_by_code(self, short_code: str) -> Link | None:
        async def work(session: AsyncSession) -> Link | None:
            result = await session.execute(select(Link).where(Link.short_code == short_code))
            return result.scalar_one_or_none()

        return await self._run("find_by_code", work)

    async def insert_link(self, link: Link) -> bool:
        """Insert ``link`` unless its short code already exists.

        Returns False when the unique constraint rejects the row; any other
        failure raises ``StoreError``.
        """

        async def work(session: AsyncSession) -> bool:
            session.add(link)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                self._logger.warning(f"Short code conflict on insert: {link.short_code}")
                return False
            await session.refresh(link)
            return True

        return await self._run("insert_link", work)

    async def find_expired_before(self, moment: datetime.datetime, limit: int) -> list[Link]:
        async def work(session: AsyncSession) -> list[Link]:
            result = await session.execute(
                select(Link)
                .where(Link.expires_at.is_not(None), Link.expires_at < moment)
                .order_by(Link.expires_at)
                .limit(limit)
            )
            return list(result.scalars().all())

        return await self._run("find_expired_before", work)

    async def delete_by_ids(self, ids: Sequence[int]) -> int:
        if not ids:
            return 0

        async def work(session: AsyncSession) -> int:
            result = await session.execute(delete(Link).where(Link.id.in_(list(ids))))
            await session.commit()
            return result.rowcount or 0

        return await self._run("delete_by_ids", work)

    async def insert_click_event(self, event: ClickEvent) -> None:
        async def work(session: AsyncSession) -> None:
            session.add(event)
            await session.commit()

        await self._run("insert_click_event", work)

    async def list_click_events_by_code(self, short_code: str) -> list[ClickEvent]:
        async def work(session: AsyncSession) -> list[ClickEvent]:
            result = await session.execute(
                select(ClickEvent)
                .where(ClickEvent.short_code == short_code)
                .order_by(ClickEvent.clicked_at.desc(), ClickEvent.id.desc())
            )
            return list(result.scalars().all())

        return await self._run("list_click_events_by_code", work)

    async def ping(self) -> None:
        async def work(session: AsyncSession) -> None:
            await session.execute(select(1))

        await self._run("ping", work)
