"""Bearer-token verification against Supabase Auth.

The engine never validates credentials itself. Given an access token, the
verifier asks the identity service who it belongs to and returns that user id,
or raises ``Unauthorized``.
"""

import logging

import httpx

from shortlinks.errors import Unauthorized

__all__ = ["IdentityVerifier", "bearer_token"]


def bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise Unauthorized("Missing auth header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Malformed auth header")
    return token.strip()


class IdentityVerifier:
    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        api_key: str,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._client = client
        self._user_url = f"{base_url.rstrip('/')}/auth/v1/user"
        self._api_key = api_key
        self._logger = logger or logging.getLogger("shortlinks.identity")

    async def verify(self, access_token: str) -> str:
        """Return the verified user id for ``access_token``."""
        try:
            response = await self._client.get(
                self._user_url,
                headers={"Authorization": f"Bearer {access_token}", "apikey": self._api_key},
            )
        except httpx.HTTPError as exc:
            self._logger.error(f"Identity service unreachable: {exc}")
            raise Unauthorized("Identity service unavailable") from exc

        if response.status_code != 200:
            self._logger.warning(f"Token rejected by identity service: HTTP {response.status_code}")
            raise Unauthorized()

        try:
            payload = response.json()
        except ValueError as exc:
            self._logger.error(f"Identity service returned a non-JSON body: {exc}")
            raise Unauthorized() from exc

        user_id = payload.get("id") if isinstance(payload, dict) else None
        if not user_id:
            raise Unauthorized()
        return str(user_id)
