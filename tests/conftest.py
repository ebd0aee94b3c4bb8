"""Shared pytest fixtures: services on a file-backed SQLite store and a fake Redis."""

import datetime
from collections.abc import AsyncGenerator

import fakeredis
import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shortlinks.config import Settings
from shortlinks.dependencies import ServiceManager
from shortlinks.models import Link, utcnow

USERS_BY_TOKEN = {
    "token-alice": "alice",
    "token-bob": "bob",
}


def identity_handler(request: httpx.Request) -> httpx.Response:
    token = request.headers.get("authorization", "").removeprefix("Bearer ")
    user_id = USERS_BY_TOKEN.get(token)
    if request.url.path != "/auth/v1/user" or user_id is None:
        return httpx.Response(401, json={"msg": "invalid JWT"})
    return httpx.Response(200, json={"id": user_id, "aud": "authenticated"})


def geo_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"status": "success", "country": "Germany", "city": "Berlin"})


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        APP_ENV="test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'shortlinks.db'}",
        REDIS_URL="redis://fake:6379/0",
        SUPABASE_URL="http://identity.test",
        SUPABASE_ANON_KEY="anon-key",
        URL_ENCRYPTION_SECRET="test-secret",
        PASSWORD_HASH_ROUNDS=4,
        SHORT_URL_DOMAIN="https://sho.rt",
        GEOIP_URL="http://geo.test/json/{ip}",
        CACHE_READ_TIMEOUT_SECONDS=2.0,
        CACHE_WRITE_TIMEOUT_SECONDS=2.0,
        STORE_TIMEOUT_SECONDS=5.0,
        REAPER_ENABLED=False,
    )


@pytest.fixture
def redis_client() -> fakeredis.FakeAsyncRedis:
    # Own server per test so no keys leak between tests
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest_asyncio.fixture
async def services(settings: Settings, redis_client) -> AsyncGenerator[ServiceManager, None]:
    manager = ServiceManager(
        settings,
        redis_client=redis_client,
        identity_client=httpx.AsyncClient(transport=httpx.MockTransport(identity_handler)),
        geo_client=httpx.AsyncClient(transport=httpx.MockTransport(geo_handler)),
    )
    await manager.initialize()
    yield manager
    await manager.cleanup()


@pytest_asyncio.fixture
async def client(services: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    from shortlinks.main import app

    app.state.services = services
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_alice() -> dict[str, str]:
    return {"Authorization": "Bearer token-alice"}


@pytest.fixture
def auth_bob() -> dict[str, str]:
    return {"Authorization": "Bearer token-bob"}


async def insert_link(
    services: ServiceManager,
    short_code: str,
    destination: str = "https://example.com/stored",
    user_id: str = "alice",
    is_active: bool = True,
    expires_at: datetime.datetime | None = None,
) -> Link:
    """Persist a link directly, bypassing the allocator."""
    link = Link(
        short_code=short_code,
        long_url=services.cipher.encrypt(destination),
        destination_digest=services.cipher.digest(destination),
        user_id=user_id,
        custom_alias=True,
        is_active=is_active,
        created_at=utcnow(),
        expires_at=expires_at,
    )
    assert await services.store.insert_link(link)
    return link
