"""OAuth2 client-credentials tokens for Microsoft endpoints (Bot Framework, Graph)."""

import logging
import time
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

# Refresh a little before the advertised expiry
EXPIRY_MARGIN_SECONDS = 60


class ClientCredentialsTokenCache:
    """Caches access tokens per (token url, client id, scope).

    Args:
        http_timeout: Timeout for token requests in seconds.
    """

    def __init__(self, http_timeout: float = 10.0) -> None:
        self._http_timeout = http_timeout
        self._tokens: dict[tuple[str, str, str], tuple[str, float]] = {}

    async def get_token(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        scope: str,
        client: Optional[httpx.AsyncClient] = None,
    ) -> str:
        """Return a valid access token, requesting a new one when needed.

        Raises:
            httpx.HTTPStatusError: If the token endpoint rejects the credentials.
            ValueError: If the response carries no access token.
        """
        key = (token_url, client_id, scope)
        cached = self._tokens.get(key)
        if cached is not None and cached[1] > time.monotonic():
            return cached[0]

        form = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
            "scope": scope,
        }
        if client is not None:
            response = await client.post(token_url, data=form)
        else:
            async with httpx.AsyncClient(timeout=self._http_timeout) as owned:
                response = await owned.post(token_url, data=form)
        response.raise_for_status()

        data = response.json()
        token = data.get("access_token")
        if not token:
            raise ValueError("Token endpoint response has no access_token")
        expires_in = int(data.get("expires_in", 3600))
        self._tokens[key] = (token, time.monotonic() + max(expires_in - EXPIRY_MARGIN_SECONDS, 0))
        logger.debug("oauth_token_acquired: client_id=%s, expires_in=%d", client_id, expires_in)
        return token

    def invalidate(self, token_url: str, client_id: str, scope: str) -> None:
        self._tokens.pop((token_url, client_id, scope), None)
