"""Cache-aside resolution of short codes on the redirect hot path.

Flow Diagram — Resolve
======================
::
    ┌─────────────┐
    │ resolve(    │
    │  code)      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Cache GET   │ tightest deadline; CacheError → treat as miss
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────────────────────┐
    │ YES                        │ NO
    ▼                            ▼
┌──────────┐              ┌─────────────┐
│ dispatch │              │ find_by_code│
│ click    │              └──────┬──────┘
│ return   │                     ▼
└──────────┘              missing → NotFound
                          expires_at < now → Expired (before the active check)
                          not active → Inactive
                                 ▼
                          ┌─────────────┐
                          │ decrypt     │
                          └──────┬──────┘
                                 ▼
                          ┌─────────────┐
                          │ Cache SET   │ 24h, best-effort
                          └──────┬──────┘
                                 ▼
                          dispatch click, return destination

Key Behaviours
===============
- The hit path performs no store access.
- Expiry is enforced at read time, independent of the reaper's cadence.
- Click recording is dispatched, never awaited; its failures never reach the caller.
- Concurrent resolutions of one code converge: destinations never change
  after creation, so the last cache write wins harmlessly.
"""

import logging
import time

from shortlinks.cache import LinkCache, link_key
from shortlinks.clicks import ClickRecorder, RequestMetadata
from shortlinks.crypto import InvalidToken, URLCipher
from shortlinks.enums import CacheStatus, RequestStatus
from shortlinks.errors import Expired, Inactive, LinkError, NotFound, StoreError
from shortlinks.metrics import LINK_RESOLUTION_DURATION, LINK_RESOLUTIONS_TOTAL
from shortlinks.models import as_utc, utcnow
from shortlinks.store import LinkStore

__all__ = ["Resolver"]

_STATUS_BY_ERROR: dict[type[LinkError], RequestStatus] = {
    Expired: RequestStatus.EXPIRED,
    Inactive: RequestStatus.INACTIVE,
    NotFound: RequestStatus.NOT_FOUND,
}


class Resolver:
    def __init__(
        self,
        store: LinkStore,
        cache: LinkCache,
        cipher: URLCipher,
        recorder: ClickRecorder,
        cache_ttl_seconds: int = 24 * 3600,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._cipher = cipher
        self._recorder = recorder
        self._cache_ttl_seconds = cache_ttl_seconds
        self._logger = logger or logging.getLogger("shortlinks.resolver")

    async def resolve(self, short_code: str, metadata: RequestMetadata | None = None) -> str:
        """Turn ``short_code`` into its destination URL.

        Raises:
            NotFound: No record for the code.
            Expired: The record's expiry is in the past.
            Inactive: The record is deactivated.
            StoreError: The store failed, timed out, or holds an undecryptable record.
        """
        start_time = time.perf_counter()

        destination = await self._lookup_from_cache(short_code)
        if destination is not None:
            self._recorder.dispatch(short_code, metadata)
            LINK_RESOLUTION_DURATION.observe(time.perf_counter() - start_time)
            LINK_RESOLUTIONS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=CacheStatus.HIT).inc()
            self._logger.debug(f"Cache hit for {short_code}")
            return destination

        try:
            destination = await self._lookup_from_store(short_code)
        except LinkError as exc:
            status = _STATUS_BY_ERROR.get(type(exc), RequestStatus.ERROR)
            LINK_RESOLUTIONS_TOTAL.labels(status=status, cache_hit=CacheStatus.MISS).inc()
            log = self._logger.error if status is RequestStatus.ERROR else self._logger.info
            log(f"Resolution failed for {short_code}: {exc.detail}", extra={"operation": "resolve"})
            raise

        try:
            await self._cache.set(link_key(short_code), destination, self._cache_ttl_seconds)
        except LinkError as exc:
            if exc.fatal:
                raise
            self._logger.warning(f"Could not cache {short_code}: {exc}")

        self._recorder.dispatch(short_code, metadata)
        duration = time.perf_counter() - start_time
        LINK_RESOLUTION_DURATION.observe(duration)
        LINK_RESOLUTIONS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=CacheStatus.MISS).inc()
        self._logger.debug(f"Store hit and cached for {short_code} in {duration:.3f}s")
        return destination

    async def _lookup_from_cache(self, short_code: str) -> str | None:
        try:
            return await self._cache.get(link_key(short_code))
        except LinkError as exc:
            if exc.fatal:
                raise
            self._logger.warning(f"Cache lookup degraded to store for {short_code}: {exc}")
            return None

    async def _lookup_from_store(self, short_code: str) -> str:
        link = await self._store.find_by_code(short_code)
        if link is None:
            raise NotFound(short_code=short_code)

        expires_at = as_utc(link.expires_at)
        if expires_at is not None and expires_at < utcnow():
            raise Expired(short_code=short_code)
        if not link.is_active:
            raise Inactive(short_code=short_code)

        try:
            return self._cipher.decrypt(link.long_url)
        except InvalidToken as exc:
            raise StoreError(f"Stored destination for {short_code} cannot be decrypted") from exc
