"""Tests for click aggregation and the stats snapshot cache."""

import datetime
from collections import Counter
from unittest.mock import AsyncMock

import pytest
from conftest import insert_link

from shortlinks.cache import stats_key
from shortlinks.errors import CacheError, Forbidden, NotFound, StoreError
from shortlinks.models import ClickEvent
from shortlinks.stats import aggregate_clicks, top_values

NOW = datetime.datetime(2024, 6, 30, 12, 0, tzinfo=datetime.timezone.utc)


def click(days_ago: float, **fields) -> ClickEvent:
    return ClickEvent(short_code="abc123", clicked_at=NOW - datetime.timedelta(days=days_ago), **fields)


# ============================================================================
# AGGREGATION
# ============================================================================


def test_aggregate_windows_and_histogram() -> None:
    events = [click(0), click(10), click(40)]

    snapshot = aggregate_clicks("abc123", events, now=NOW)

    assert snapshot.total_clicks == 3
    assert snapshot.clicks_last_7_days == 1
    assert snapshot.clicks_last_30_days == 2
    assert [(bucket.date, bucket.clicks) for bucket in snapshot.clicks_by_date] == [
        (datetime.date(2024, 6, 20), 1),
        (datetime.date(2024, 6, 30), 1),
    ]
    assert snapshot.generated_at == NOW


def test_aggregate_window_boundary_is_inclusive() -> None:
    snapshot = aggregate_clicks("abc123", [click(7), click(30)], now=NOW)

    assert snapshot.clicks_last_7_days == 1
    assert snapshot.clicks_last_30_days == 2


def test_aggregate_empty() -> None:
    snapshot = aggregate_clicks("abc123", [], now=NOW)

    assert snapshot.total_clicks == 0
    assert snapshot.clicks_by_date == []
    assert snapshot.top_countries == []


def test_aggregate_fills_missing_dimensions() -> None:
    events = [
        click(1, referrer=None, country=None, device_type="mobile", browser="Chrome", os="Android"),
        click(2, referrer="https://t.co/x", country="France", device_type="desktop", browser=None, os=None),
    ]

    snapshot = aggregate_clicks("abc123", events, now=NOW)

    assert {r.value for r in snapshot.top_referrers} == {"Direct", "https://t.co/x"}
    assert {r.value for r in snapshot.top_countries} == {"Unknown", "France"}
    assert {r.value for r in snapshot.top_browsers} == {"Chrome", "Unknown"}


def test_top_values_orders_by_count_and_keeps_first_seen_ties() -> None:
    counter = Counter()
    for value in ["b", "a", "c", "a", "c"]:
        counter[value] += 1

    ranked = top_values(counter)

    assert [(r.value, r.clicks) for r in ranked] == [("a", 2), ("c", 2), ("b", 1)]


def test_top_values_caps_at_ten() -> None:
    counter = Counter({f"country-{i}": 20 - i for i in range(15)})

    ranked = top_values(counter)

    assert len(ranked) == 10
    assert ranked[0].value == "country-0"
    assert ranked[-1].value == "country-9"


# ============================================================================
# AGGREGATOR
# ============================================================================


@pytest.mark.asyncio
async def test_get_stats_unknown_code(services) -> None:
    with pytest.raises(NotFound):
        await services.stats.get_stats("nope00", "alice")


@pytest.mark.asyncio
async def test_get_stats_non_owner_reads_no_events(services, monkeypatch) -> None:
    await insert_link(services, "own123", user_id="alice")
    list_events = AsyncMock(return_value=[])
    monkeypatch.setattr(services.store, "list_click_events_by_code", list_events)

    with pytest.raises(Forbidden):
        await services.stats.get_stats("own123", "bob")
    list_events.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_stats_caches_snapshot(services, redis_client, monkeypatch) -> None:
    await insert_link(services, "own123", user_id="alice")
    await services.store.insert_click_event(ClickEvent(short_code="own123", clicked_at=NOW, country="Spain"))

    first = await services.stats.get_stats("own123", "alice")
    assert first.total_clicks == 1
    assert await redis_client.ttl(stats_key("own123")) <= 300

    list_events = AsyncMock(return_value=[])
    monkeypatch.setattr(services.store, "list_click_events_by_code", list_events)
    second = await services.stats.get_stats("own123", "alice")

    list_events.assert_not_awaited()
    assert second == first


@pytest.mark.asyncio
async def test_get_stats_ignores_corrupt_cache_entry(services, redis_client) -> None:
    await insert_link(services, "own123", user_id="alice")
    await redis_client.set(stats_key("own123"), "{not json")

    snapshot = await services.stats.get_stats("own123", "alice")
    assert snapshot.total_clicks == 0


@pytest.mark.asyncio
async def test_get_stats_absorbs_only_non_fatal_cache_errors(services, monkeypatch) -> None:
    await insert_link(services, "own123", user_id="alice")
    monkeypatch.setattr(services.cache, "get", AsyncMock(side_effect=CacheError("timeout")))
    monkeypatch.setattr(services.cache, "set", AsyncMock(side_effect=CacheError("timeout")))

    assert (await services.stats.get_stats("own123", "alice")).total_clicks == 0

    monkeypatch.setattr(services.cache, "get", AsyncMock(side_effect=StoreError("wrong backend")))
    with pytest.raises(StoreError):
        await services.stats.get_stats("own123", "alice")
