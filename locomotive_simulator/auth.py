"""Bearer token acquisition via the OAuth2 client-credentials grant.

Failures are returned as ``None`` rather than raised so callers can
branch on "no credential" like any other value.
"""

from __future__ import annotations

import logging

import httpx

from locomotive_simulator.config import ServicesConfig
from locomotive_simulator.sinks.proxy import proxy_from_env

__all__ = ["TokenProvider", "fetch_token"]

logger = logging.getLogger("locomotive_simulator.auth")


async def fetch_token(
    auth_url: str,
    client_id: str,
    client_secret: str,
    *,
    timeout_s: float = 30.0,
    proxy: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str | None:
    """Request an access token from ``<auth_url>/oauth/token``.

    Returns:
        The access token, or ``None`` if it could not be obtained.
    """
    url = auth_url.rstrip("/") + "/oauth/token"
    logger.debug("Requesting a new token from %s", url)
    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s),
            proxy=proxy if proxy is not None else proxy_from_env(),
            transport=transport,
            trust_env=False,
        ) as client:
            resp = await client.post(
                url,
                data={"grant_type": "client_credentials"},
                auth=(client_id, client_secret),
            )
            resp.raise_for_status()
            token = resp.json()["access_token"]
    except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
        logger.error("Error getting token from %s: %s", url, exc)
        return None

    if not isinstance(token, str) or not token:
        logger.error("Token response from %s has no usable access_token", url)
        return None
    logger.debug("Obtained a new token from %s", url)
    return token


class TokenProvider:
    """Holds the client credentials and fetches tokens on demand.

    Instances are callable so they can be handed to a
    :class:`~locomotive_simulator.sinks.base.DeliveryQueue` as its
    ``refresh_token`` source.
    """

    def __init__(
        self,
        auth_url: str,
        client_id: str,
        client_secret: str,
        *,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.auth_url = auth_url
        self.client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout_s
        self._transport = transport
        self.requests = 0

    @classmethod
    def from_config(cls, services: ServicesConfig, *, timeout_s: float = 30.0) -> TokenProvider:
        return cls(services.auth_url, services.client_id, services.client_secret, timeout_s=timeout_s)

    async def acquire(self) -> str | None:
        self.requests += 1
        return await fetch_token(
            self.auth_url,
            self.client_id,
            self._client_secret,
            timeout_s=self._timeout,
            transport=self._transport,
        )

    async def __call__(self) -> str | None:
        return await self.acquire()
