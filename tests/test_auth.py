"""Tests for locomotive_simulator.auth - client-credentials token requests."""

from __future__ import annotations

import base64

import httpx
import pytest

from locomotive_simulator.auth import TokenProvider, fetch_token
from locomotive_simulator.config import ServicesConfig

# -----------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------


def _transport(status: int = 200, body: dict | None = None, seen: list | None = None) -> httpx.MockTransport:
    def _handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=body if body is not None else {"access_token": "abc123"})

    return httpx.MockTransport(_handler)


# -----------------------------------------------------------------------
# fetch_token
# -----------------------------------------------------------------------


class TestFetchToken:
    @pytest.mark.asyncio
    async def test_returns_access_token(self) -> None:
        seen: list[httpx.Request] = []
        token = await fetch_token("https://uaa.example.com/", "cid", "secret", transport=_transport(seen=seen))
        assert token == "abc123"

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://uaa.example.com/oauth/token"
        assert request.content == b"grant_type=client_credentials"
        expected = base64.b64encode(b"cid:secret").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"

    @pytest.mark.asyncio
    async def test_unauthorized_returns_none(self) -> None:
        token = await fetch_token("https://uaa.example.com", "cid", "bad", transport=_transport(status=401))
        assert token is None

    @pytest.mark.asyncio
    async def test_missing_access_token_returns_none(self) -> None:
        token = await fetch_token("https://uaa.example.com", "cid", "s", transport=_transport(body={"error": "x"}))
        assert token is None

    @pytest.mark.asyncio
    async def test_empty_access_token_returns_none(self) -> None:
        token = await fetch_token("https://uaa.example.com", "cid", "s", transport=_transport(body={"access_token": ""}))
        assert token is None

    @pytest.mark.asyncio
    async def test_non_json_body_returns_none(self) -> None:
        def _handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>oops</html>")

        token = await fetch_token("https://uaa.example.com", "cid", "s", transport=httpx.MockTransport(_handler))
        assert token is None

    @pytest.mark.asyncio
    async def test_connect_error_returns_none(self) -> None:
        def _refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        token = await fetch_token("https://uaa.example.com", "cid", "s", transport=httpx.MockTransport(_refuse))
        assert token is None


# -----------------------------------------------------------------------
# TokenProvider
# -----------------------------------------------------------------------


class TestTokenProvider:
    @pytest.mark.asyncio
    async def test_counts_requests(self) -> None:
        provider = TokenProvider("https://uaa.example.com", "cid", "s", transport=_transport())
        assert await provider.acquire() == "abc123"
        assert await provider() == "abc123"
        assert provider.requests == 2

    def test_from_config(self) -> None:
        services = ServicesConfig(
            auth_url="https://uaa.example.com",
            client_id="cid",
            client_secret="s",
            asset_url="https://asset.example.com",
            asset_zone_id="a",
            time_series_url="wss://ts.example.com",
            time_series_zone_id="t",
        )
        provider = TokenProvider.from_config(services, timeout_s=5.0)
        assert provider.auth_url == "https://uaa.example.com"
        assert provider.client_id == "cid"
        assert provider.requests == 0
