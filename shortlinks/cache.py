"""Redis cache adapter for link destinations and stats snapshots.

This module wraps an owned ``redis.asyncio`` client with per-call deadlines and a
single failure type. The cache carries no durability guarantee: callers treat
``CacheError`` as non-fatal and fall back to the durable store.

Flow Diagram — Cache Operations
===============================
::
    ┌─────────────┐
    │  Component  │
    │  (resolver, │
    │  allocator, │
    │  stats,     │
    │  reaper)    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ LinkCache   │
    │ get/set/    │
    │ delete      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ wait_for(   │
    │  deadline)  │
    └──────┬──────┘
    FAILED?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌──────────┐
│ Return  │  │ Raise    │
│ value   │  │CacheError│
└─────────┘  └──────────┘

How to Use
===========
**Step 1 — Build on startup**::
    client = create_redis_client(settings.REDIS_URL)
    cache = LinkCache(client, read_timeout=0.25, write_timeout=0.5)

**Step 2 — Use the key helpers**::
    await cache.set(link_key("abc123"), "https://example.com", ttl_seconds=86400)
    destination = await cache.get(link_key("abc123"))

**Step 3 — Cleanup on shutdown**::
    await client.aclose()

Key Behaviours
===============
- Destination entries live under ``url:{code}``, stats under ``stats:{code}``.
- Reads use the tightest deadline since they sit on the redirect hot path.
- UTF-8 encoding with decode_responses for string operations.

Functions:
    create_redis_client():  Build a client for the configured URL.
    link_key(), stats_key():  Key builders shared by all components.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

import redis.asyncio as redis
from redis.exceptions import RedisError

from shortlinks.errors import CacheError
from shortlinks.metrics import CACHE_ERRORS_TOTAL

__all__ = ["LinkCache", "create_redis_client", "link_key", "stats_key"]

T = TypeVar("T")

LINK_KEY_PREFIX = "url"
STATS_KEY_PREFIX = "stats"


def link_key(short_code: str) -> str:
    return f"{LINK_KEY_PREFIX}:{short_code}"


def stats_key(short_code: str) -> str:
    return f"{STATS_KEY_PREFIX}:{short_code}"


def create_redis_client(url: str) -> redis.Redis:
    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
    )


class LinkCache:
    """Key → string cache with per-entry TTL."""

    def __init__(
        self,
        client: redis.Redis,
        read_timeout: float = 0.25,
        write_timeout: float = 0.5,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._client = client
        self._read_timeout = read_timeout
        self._write_timeout = write_timeout
        self._logger = logger or logging.getLogger("shortlinks.cache")

    @property
    def client(self) -> redis.Redis:
        return self._client

    async def _run(self, operation: str, call: Awaitable[T], timeout: float) -> T:
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except TimeoutError as exc:
            CACHE_ERRORS_TOTAL.labels(operation=operation).inc()
            self._logger.warning(f"Cache {operation} timed out after {timeout}s")
            raise CacheError(f"Cache {operation} timed out after {timeout}s") from exc
        except (RedisError, OSError) as exc:
            CACHE_ERRORS_TOTAL.labels(operation=operation).inc()
            self._logger.warning(f"Cache {operation} failed: {exc}")
            raise CacheError(f"Cache {operation} failed: {exc}") from exc

    async def get(self, key: str) -> str | None:
        return await self._run("get", self._client.get(key), self._read_timeout)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        assert ttl_seconds > 0, f"ttl_seconds must be positive, got {ttl_seconds!r}"
        await self._run("set", self._client.set(key, value, ex=ttl_seconds), self._write_timeout)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._run("delete", self._client.delete(*keys), self._write_timeout)

    async def ping(self) -> bool:
        return bool(await self._run("ping", self._client.ping(), self._write_timeout))
