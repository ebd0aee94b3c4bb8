"""Bearer-token parsing and identity-service verification."""

import httpx
import pytest

from shortlinks.errors import Unauthorized
from shortlinks.identity import IdentityVerifier, bearer_token


def test_bearer_token_extracts_token() -> None:
    assert bearer_token("Bearer abc.def") == "abc.def"
    assert bearer_token("bearer  abc.def ") == "abc.def"


@pytest.mark.parametrize("header", [None, "", "Basic dXNlcjpwYXNz", "Bearer", "Bearer   "])
def test_bearer_token_rejects_bad_headers(header) -> None:
    with pytest.raises(Unauthorized):
        bearer_token(header)


@pytest.mark.asyncio
async def test_verify_sends_token_and_api_key() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "user-42"})

    verifier = IdentityVerifier(httpx.AsyncClient(transport=httpx.MockTransport(handler)), "http://auth.test/", "anon")

    assert await verifier.verify("tok") == "user-42"
    assert str(seen[0].url) == "http://auth.test/auth/v1/user"
    assert seen[0].headers["authorization"] == "Bearer tok"
    assert seen[0].headers["apikey"] == "anon"


@pytest.mark.asyncio
async def test_verify_rejected_token() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(401)))
    with pytest.raises(Unauthorized):
        await IdentityVerifier(client, "http://auth.test", "anon").verify("tok")


@pytest.mark.asyncio
async def test_verify_response_without_id() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})))
    with pytest.raises(Unauthorized):
        await IdentityVerifier(client, "http://auth.test", "anon").verify("tok")


@pytest.mark.asyncio
async def test_verify_unreachable_service() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("slow", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    with pytest.raises(Unauthorized):
        await IdentityVerifier(client, "http://auth.test", "anon").verify("tok")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>maintenance</html>"),
        httpx.Response(200, json=["user-42"]),
        httpx.Response(200, json="user-42"),
    ],
)
async def test_verify_malformed_body(response) -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: response))
    with pytest.raises(Unauthorized):
        await IdentityVerifier(client, "http://auth.test", "anon").verify("tok")
