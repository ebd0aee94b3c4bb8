"""Time-windowed click statistics with a short-TTL snapshot cache.

Flow Diagram — get_stats()
==========================
::
    ┌──────────────┐
    │ get_stats(   │
    │ code, user)  │
    └──────┬───────┘
           ▼
    ┌──────────────┐  missing ──► NotFound
    │ find_by_code │  other owner ──► Forbidden
    └──────┬───────┘  (no click events read yet)
           ▼
    ┌──────────────┐
    │ stats:{code} │──HIT──► StatsSnapshot
    └──────┬───────┘
         MISS
           ▼
    ┌──────────────┐
    │ list events  │ newest first
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ aggregate_   │ one pass
    │ clicks()     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ cache 5 min  │ best-effort
    └──────┬───────┘
           ▼
      StatsSnapshot

Key Behaviours
===============
- Windows are relative to aggregation time: ``clicked_at >= now - N days``.
- The per-day histogram uses UTC calendar days and only the trailing 30 days.
- Rankings keep the top 10 by count; ties keep first-encountered order.
- A missing referrer counts as "Direct"; other missing fields as "Unknown".
"""

import datetime
import logging
from collections import Counter
from collections.abc import Iterable

from pydantic import ValidationError

from shortlinks.cache import LinkCache, stats_key
from shortlinks.enums import CacheStatus
from shortlinks.errors import Forbidden, LinkError, NotFound
from shortlinks.metrics import STATS_REQUESTS_TOTAL
from shortlinks.models import ClickEvent, as_utc, utcnow
from shortlinks.schemas import DailyClicks, RankedValue, StatsSnapshot
from shortlinks.store import LinkStore

__all__ = ["StatsAggregator", "aggregate_clicks", "top_values"]

TOP_N = 10
DIRECT_REFERRER = "Direct"
UNKNOWN = "Unknown"


def top_values(counter: Counter, limit: int = TOP_N) -> list[RankedValue]:
    # sorted() is stable, so equal counts keep insertion (first-seen) order
    ranked = sorted(counter.items(), key=lambda item: item[1], reverse=True)
    return [RankedValue(value=value, clicks=clicks) for value, clicks in ranked[:limit]]


def aggregate_clicks(
    short_code: str,
    events: Iterable[ClickEvent],
    now: datetime.datetime | None = None,
) -> StatsSnapshot:
    now = now or utcnow()
    week_start = now - datetime.timedelta(days=7)
    month_start = now - datetime.timedelta(days=30)

    total = 0
    last_7 = 0
    last_30 = 0
    by_date: Counter = Counter()
    countries: Counter = Counter()
    referrers: Counter = Counter()
    devices: Counter = Counter()
    browsers: Counter = Counter()
    systems: Counter = Counter()

    for event in events:
        clicked_at = as_utc(event.clicked_at)
        total += 1
        if clicked_at >= week_start:
            last_7 += 1
        if clicked_at >= month_start:
            last_30 += 1
            by_date[clicked_at.date()] += 1
        countries[event.country or UNKNOWN] += 1
        referrers[event.referrer or DIRECT_REFERRER] += 1
        devices[event.device_type or UNKNOWN] += 1
        browsers[event.browser or UNKNOWN] += 1
        systems[event.os or UNKNOWN] += 1

    return StatsSnapshot(
        short_code=short_code,
        total_clicks=total,
        clicks_last_7_days=last_7,
        clicks_last_30_days=last_30,
        clicks_by_date=[DailyClicks(date=day, clicks=count) for day, count in sorted(by_date.items())],
        top_countries=top_values(countries),
        top_referrers=top_values(referrers),
        top_devices=top_values(devices),
        top_browsers=top_values(browsers),
        top_os=top_values(systems),
        generated_at=now,
    )


class StatsAggregator:
    def __init__(
        self,
        store: LinkStore,
        cache: LinkCache,
        cache_ttl_seconds: int = 300,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._cache_ttl_seconds = cache_ttl_seconds
        self._logger = logger or logging.getLogger("shortlinks.stats")

    async def get_stats(self, short_code: str, requesting_user_id: str) -> StatsSnapshot:
        """Return click statistics for ``short_code``.

        Raises:
            NotFound: No record for the code.
            Forbidden: ``requesting_user_id`` does not own the link.
            StoreError: The store failed or timed out.
        """
        link = await self._store.find_by_code(short_code)
        if link is None:
            raise NotFound(short_code=short_code)
        if link.user_id != requesting_user_id:
            self._logger.warning(
                f"Stats for {short_code} refused to non-owner",
                extra={"operation": "get_stats", "short_code": short_code},
            )
            raise Forbidden(short_code=short_code)

        cached = await self._cached_snapshot(short_code)
        if cached is not None:
            STATS_REQUESTS_TOTAL.labels(cache_hit=CacheStatus.HIT).inc()
            return cached

        STATS_REQUESTS_TOTAL.labels(cache_hit=CacheStatus.MISS).inc()
        events = await self._store.list_click_events_by_code(short_code)
        snapshot = aggregate_clicks(short_code, events)

        try:
            await self._cache.set(stats_key(short_code), snapshot.model_dump_json(), self._cache_ttl_seconds)
        except LinkError as exc:
            if exc.fatal:
                raise
            self._logger.warning(f"Could not cache stats for {short_code}: {exc}")

        self._logger.info(
            f"Stats computed for {short_code}: {snapshot.total_clicks} clicks",
            extra={"operation": "get_stats", "short_code": short_code},
        )
        return snapshot

    async def _cached_snapshot(self, short_code: str) -> StatsSnapshot | None:
        try:
            raw = await self._cache.get(stats_key(short_code))
        except LinkError as exc:
            if exc.fatal:
                raise
            return None
        if raw is None:
            return None
        try:
            return StatsSnapshot.model_validate_json(raw)
        except ValidationError as exc:
            self._logger.error(f"Cache deserialization error for stats {short_code}: {exc}")
            return None
