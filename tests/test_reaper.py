"""Expiry reaper tests."""

import asyncio
import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import insert_link

from shortlinks.cache import link_key, stats_key
from shortlinks.errors import CacheError, NotFound, StoreError
from shortlinks.models import utcnow
from shortlinks.reaper import ExpiryReaper


@pytest.mark.asyncio
async def test_run_once_deletes_only_expired_links(services, redis_client) -> None:
    past = utcnow() - datetime.timedelta(minutes=5)
    await insert_link(services, "exp001", expires_at=past)
    await insert_link(services, "exp002", expires_at=past)
    await insert_link(services, "live01", expires_at=utcnow() + datetime.timedelta(days=1))
    await insert_link(services, "never1")
    await redis_client.set(link_key("exp001"), "https://example.com/stored")
    await redis_client.set(stats_key("exp001"), "{}")

    assert await services.reaper.run_once() == 2

    assert await services.store.find_by_code("exp001") is None
    assert await services.store.find_by_code("exp002") is None
    assert await services.store.find_by_code("live01") is not None
    assert await services.store.find_by_code("never1") is not None
    assert await redis_client.get(link_key("exp001")) is None
    assert await redis_client.get(stats_key("exp001")) is None


@pytest.mark.asyncio
async def test_reaped_link_resolves_as_not_found(services) -> None:
    await insert_link(services, "exp001", expires_at=utcnow() - datetime.timedelta(seconds=1))
    await services.reaper.run_once()

    with pytest.raises(NotFound) as exc_info:
        await services.resolver.resolve("exp001")
    assert type(exc_info.value) is NotFound


@pytest.mark.asyncio
async def test_run_once_nothing_to_do(services) -> None:
    await insert_link(services, "live01")
    assert await services.reaper.run_once() == 0


@pytest.mark.asyncio
async def test_run_once_honours_batch_size(services) -> None:
    past = utcnow() - datetime.timedelta(minutes=5)
    for i in range(3):
        await insert_link(services, f"exp00{i}", expires_at=past)
    reaper = ExpiryReaper(services.reaper_store, services.cache, batch_size=2)

    assert await reaper.run_once() == 2
    assert await reaper.run_once() == 1


@pytest.mark.asyncio
async def test_run_once_tolerates_cache_failure(services, monkeypatch) -> None:
    await insert_link(services, "exp001", expires_at=utcnow() - datetime.timedelta(minutes=5))
    monkeypatch.setattr(services.cache, "delete", AsyncMock(side_effect=CacheError("down")))

    assert await services.reaper.run_once() == 1
    assert await services.store.find_by_code("exp001") is None


@pytest.mark.asyncio
async def test_loop_survives_failures_and_stops() -> None:
    calls = 0

    async def find_expired_before(moment, limit):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise StoreError("down")
        return []

    store = MagicMock()
    store.find_expired_before = find_expired_before
    reaper = ExpiryReaper(store, MagicMock(), interval_seconds=0.01)

    reaper.start()
    assert reaper.running
    await asyncio.sleep(0.1)
    await reaper.stop()

    assert not reaper.running
    assert calls >= 2
