"""Shorten endpoint behavior tests."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from shortlinks.models import Link


async def count_links(services) -> int:
    async with services.database.sessions() as session:
        return (await session.execute(select(func.count()).select_from(Link))).scalar_one()


@pytest.mark.asyncio
async def test_shorten_valid_url(client: AsyncClient, auth_alice) -> None:
    response = await client.post("/api/shorten", json={"long_url": "https://www.google.com"}, headers=auth_alice)
    assert response.status_code == 201
    data = response.json()
    assert data["long_url"] == "https://www.google.com"
    assert len(data["short_code"]) == 6
    assert data["short_url"] == f"https://sho.rt/{data['short_code']}"


@pytest.mark.asyncio
async def test_shorten_requires_bearer_token(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"long_url": "https://www.google.com"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_shorten_rejects_unknown_token(client: AsyncClient) -> None:
    response = await client.post(
        "/api/shorten",
        json={"long_url": "https://www.google.com"},
        headers={"Authorization": "Bearer forged"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_shorten_invalid_url(client: AsyncClient, auth_alice) -> None:
    response = await client.post("/api/shorten", json={"long_url": "not-a-url"}, headers=auth_alice)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_shorten_non_http_scheme(client: AsyncClient, auth_alice) -> None:
    response = await client.post("/api/shorten", json={"long_url": "ftp://example.com/file"}, headers=auth_alice)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_shorten_with_custom_alias(client: AsyncClient, auth_alice) -> None:
    response = await client.post(
        "/api/shorten",
        json={"long_url": "https://www.github.com", "custom_alias": "my-code"},
        headers=auth_alice,
    )
    assert response.status_code == 201
    assert response.json()["short_code"] == "my-code"


@pytest.mark.asyncio
async def test_shorten_invalid_custom_alias(client: AsyncClient, auth_alice) -> None:
    response = await client.post(
        "/api/shorten",
        json={"long_url": "https://www.github.com", "custom_alias": "bad alias!"},
        headers=auth_alice,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_shorten_duplicate_custom_alias(client: AsyncClient, auth_alice, auth_bob) -> None:
    await client.post(
        "/api/shorten",
        json={"long_url": "https://www.github.com", "custom_alias": "taken"},
        headers=auth_alice,
    )
    response = await client.post(
        "/api/shorten",
        json={"long_url": "https://www.gitlab.com", "custom_alias": "taken"},
        headers=auth_bob,
    )
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}


@pytest.mark.asyncio
async def test_shorten_same_url_twice_returns_same_code(client: AsyncClient, services, auth_alice) -> None:
    first = await client.post("/api/shorten", json={"long_url": "https://www.python.org"}, headers=auth_alice)
    second = await client.post("/api/shorten", json={"long_url": "https://www.python.org"}, headers=auth_alice)
    assert first.status_code == second.status_code == 201
    assert first.json()["short_code"] == second.json()["short_code"]
    assert await count_links(services) == 1


@pytest.mark.asyncio
async def test_shorten_for_another_owner_is_rejected(client: AsyncClient, auth_alice) -> None:
    response = await client.post(
        "/api/shorten",
        json={"long_url": "https://www.python.org", "owner_id": "bob"},
        headers=auth_alice,
    )
    assert response.status_code == 500


@pytest.mark.asyncio
async def test_shorten_password_is_hashed(client: AsyncClient, services, auth_alice) -> None:
    response = await client.post(
        "/api/shorten",
        json={"long_url": "https://www.python.org/secret", "password": "hunter2"},
        headers=auth_alice,
    )
    assert response.status_code == 201
    link = await services.store.find_by_code(response.json()["short_code"])
    assert link.password_hash is not None
    assert link.password_hash != "hunter2"


@pytest.mark.asyncio
@pytest.mark.parametrize("alias", ["health", "metrics", "docs", "redoc", "Health"])
async def test_shorten_rejects_reserved_alias(client: AsyncClient, services, auth_alice, alias) -> None:
    response = await client.post(
        "/api/shorten",
        json={"long_url": "https://www.github.com", "custom_alias": alias},
        headers=auth_alice,
    )
    assert response.status_code == 422
    assert await count_links(services) == 0

    # The fixed route keeps answering instead of a redirect being created behind it
    if alias == "health":
        assert (await client.get("/health")).status_code == 200


def test_reserved_aliases_cover_app_routes() -> None:
    from shortlinks.main import app
    from shortlinks.schemas import RESERVED_ALIASES

    first_segments = {
        route.path.strip("/").split("/")[0]
        for route in app.routes
        if getattr(route, "path", "").strip("/") and "{" not in route.path.strip("/").split("/")[0]
    }
    # Dotted paths such as openapi.json can never match the alias pattern
    assert {segment for segment in first_segments if "." not in segment} <= RESERVED_ALIASES
