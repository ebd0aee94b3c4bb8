"""Background sweep that deletes expired links and evicts their cache entries."""

import asyncio
import logging

from shortlinks.cache import LinkCache, link_key, stats_key
from shortlinks.enums import ServiceStatus
from shortlinks.errors import LinkError
from shortlinks.metrics import REAPED_LINKS_TOTAL, REAPER_RUNS_TOTAL
from shortlinks.models import utcnow
from shortlinks.store import LinkStore

__all__ = ["ExpiryReaper"]


class ExpiryReaper:
    """Periodic task with no caller-facing contract.

    The store handed in here should be built from the privileged DSN, since
    deletion happens outside any request's authorization context.
    """

    def __init__(
        self,
        store: LinkStore,
        cache: LinkCache,
        interval_seconds: float = 60.0,
        batch_size: int = 100,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        assert interval_seconds > 0, f"interval_seconds must be positive, got {interval_seconds!r}"
        assert batch_size > 0, f"batch_size must be positive, got {batch_size!r}"
        self._store = store
        self._cache = cache
        self._interval_seconds = interval_seconds
        self._batch_size = batch_size
        self._logger = logger or logging.getLogger("shortlinks.reaper")
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """Sweep one batch. Returns the number of deleted records."""
        expired = await self._store.find_expired_before(utcnow(), self._batch_size)
        if not expired:
            self._logger.debug("No expired links to reap")
            return 0

        # Delete exactly the rows we read, by identity
        deleted = await self._store.delete_by_ids([link.id for link in expired])
        REAPED_LINKS_TOTAL.inc(deleted)

        evicted = 0
        for link in expired:
            try:
                await self._cache.delete(link_key(link.short_code), stats_key(link.short_code))
                evicted += 1
            except LinkError as exc:
                if exc.fatal:
                    raise
                self._logger.warning(f"Cache eviction failed for reaped {link.short_code}: {exc}")

        self._logger.info(
            f"Reaped {deleted} expired links, evicted {evicted} cache entries",
            extra={"operation": "reap"},
        )
        return deleted

    async def run_forever(self) -> None:
        self._logger.info(f"Starting expiry reaper every {self._interval_seconds}s")
        while not self._stopping.is_set():
            try:
                await self.run_once()
                REAPER_RUNS_TOTAL.labels(status=ServiceStatus.COMPLETED).inc()
            except LinkError as exc:
                REAPER_RUNS_TOTAL.labels(status=ServiceStatus.FAILED).inc()
                self._logger.error(f"Reaper run failed: {exc}")
            except Exception as exc:
                REAPER_RUNS_TOTAL.labels(status=ServiceStatus.FAILED).inc()
                self._logger.exception(f"Reaper run crashed: {exc}")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval_seconds)
            except TimeoutError:
                pass
        self._logger.info("Expiry reaper stopped")

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._stopping.clear()
        self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        try:
            await asyncio.wait_for(self._task, timeout=self._interval_seconds)
        except TimeoutError:
            self._task.cancel()
        self._task = None
