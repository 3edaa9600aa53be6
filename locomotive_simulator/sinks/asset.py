"""Asset sink - POSTs batches of threshold alerts as a JSON array.

One authenticated request per drain; any transport error or non-2xx
response fails the whole batch.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from locomotive_simulator.models import AlertRecord, QueueItem
from locomotive_simulator.sinks.base import SinkAdapter, SinkError
from locomotive_simulator.sinks.proxy import proxy_from_env

__all__ = ["AssetSink", "build_alert_body"]

logger = logging.getLogger("locomotive_simulator.sinks.asset")


def build_alert_body(items: list[QueueItem], *, locomotive_id: str, resource: str) -> list[dict[str, Any]]:
    """One JSON object per alert, stamped with its simulated time in ms."""
    body: list[dict[str, Any]] = []
    for item in items:
        alert: AlertRecord = item.payload
        timestamp = alert.timestamp_ms
        body.append(
            {
                "uri": f"/{resource}/{alert.key}.{timestamp}",
                "id": locomotive_id,
                "timestamp_ms": timestamp,
                "name": alert.key,
                "value": alert.value,
                "message": alert.message,
            }
        )
    return body


class AssetSink(SinkAdapter):
    """Deliver alert batches to the asset service.

    Parameters:
        base_url: Service root, e.g. ``"https://asset.example.com/"``.
        zone_id: Tenant identifier sent in *zone_header* on every request.
        locomotive_id: Identifier stamped on every alert.
        resource: Collection the alerts are posted to.
        zone_header: Name of the tenant header.
        timeout_s: Per-request timeout in seconds.
        proxy: Forward proxy URL; read from the environment when omitted.
        transport: Optional custom ``httpx`` transport.
    """

    name = "asset"

    def __init__(
        self,
        *,
        base_url: str,
        zone_id: str,
        locomotive_id: str,
        resource: str = "locomotive",
        zone_header: str = "Predix-Zone-Id",
        timeout_s: float = 30.0,
        proxy: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = base_url.rstrip("/") + "/" + resource
        self._zone_id = zone_id
        self._zone_header = zone_header
        self._locomotive_id = locomotive_id
        self._resource = resource
        self._timeout = timeout_s
        self._proxy = proxy if proxy is not None else proxy_from_env()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def url(self) -> str:
        return self._url

    async def connect(self) -> None:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            headers={"Content-Type": "application/json", self._zone_header: self._zone_id},
            proxy=self._proxy,
            transport=self._transport,
            trust_env=False,
        )
        logger.info("AssetSink ready - target: %s%s", self._url, f" via {self._proxy}" if self._proxy else "")

    async def write(self, items: list[QueueItem], token: str | None) -> None:
        body = build_alert_body(items, locomotive_id=self._locomotive_id, resource=self._resource)
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            if self._client is None:
                await self.connect()
            if self._client is None:
                raise SinkError("AssetSink is not connected")
            resp = await self._client.post(self._url, content=json.dumps(body), headers=headers)
            resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise SinkError(f"POST {self._url} failed: {exc}") from exc

        logger.debug("POST %s - %d alerts - HTTP %d", self._url, len(items), resp.status_code)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("AssetSink closed")
