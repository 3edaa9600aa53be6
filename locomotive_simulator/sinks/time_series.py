"""Time series sink - streams telemetry points over a persistent WebSocket.

Each drain sends one message holding every tracked field's new points and
waits for the service to answer on the same connection; any inbound
message counts as the acknowledgement.  A connection error discards the
socket and the next drain reconnects.  The socket is closed once the
queue runs empty.

Note:
    The service silently ignores attribute values containing spaces, so the
    ``details`` strings below use underscores.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import time
from typing import Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import WebSocketException

from locomotive_simulator.models import QueueItem, TelemetryPoint
from locomotive_simulator.sinks.base import SinkAdapter, SinkError
from locomotive_simulator.sinks.proxy import proxy_from_env

__all__ = ["TAGS", "ConnectionState", "TimeSeriesSink", "build_series_body"]

logger = logging.getLogger("locomotive_simulator.sinks.time_series")

# wire name -> attributes sent with every series
TAGS: dict[str, dict[str, str]] = {
    "distance": {
        "units": "meters",
        "details": "distance_travelled_by_the_locomotive",
    },
    "fuelMassBurning": {
        "units": "kg",
        "details": "fuel_mass_currently_ignited_and_burning_inside_the_fire_chamber",
    },
    "fuelMassInTender": {
        "units": "kg",
        "details": "fuel_mass_currently_in_tender",
    },
    "fuelMassInFireChamber": {
        "units": "kg",
        "details": "fuel_mass_currently_inside_the_fire_chamber_burning_and_non-burning",
    },
    "pressure": {
        "units": "bar",
        "details": "current_boiler_pressure_of_locomotive",
    },
    "speed": {
        "units": "meters_per_second",
        "details": "current_speed_of_the_locomotive",
    },
    "time": {
        "units": "seconds",
        "details": "time_that_has_passed_since_locomotive_began_traveling",
    },
}

# wire name -> LocomotiveState attribute
TRACKED_FIELDS: dict[str, str] = {
    "distance": "distance",
    "fuelMassBurning": "fuel_mass_burning",
    "fuelMassInTender": "fuel_mass_in_tender",
    "fuelMassInFireChamber": "fuel_mass_in_fire_chamber",
    "pressure": "pressure",
    "speed": "speed",
    "time": "time",
}


def build_series_body(items: list[QueueItem]) -> list[dict[str, Any]]:
    """Group points by field into named series, in ``TAGS`` order."""
    series: dict[str, list[list[float]]] = {}
    for item in items:
        point: TelemetryPoint = item.payload
        series.setdefault(point.name, []).append([point.timestamp_ms, point.value])

    ordered = [name for name in TAGS if name in series] + [name for name in series if name not in TAGS]
    return [
        {
            "name": name,
            "datapoints": series[name],
            "attributes": TAGS.get(name, {"units": "", "details": name}),
        }
        for name in ordered
    ]


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


class TimeSeriesSink(SinkAdapter):
    """Stream telemetry batches to the time series ingestion endpoint.

    Parameters:
        url: WebSocket endpoint, ``ws://`` or ``wss://``.
        zone_id: Tenant identifier sent in *zone_header* on connect.
        origin: Value of the ``Origin`` header.
        zone_header: Name of the tenant header.
        ack_timeout_s: Seconds to wait for the acknowledgement message.
        proxy: Forward proxy URL; read from the environment when omitted.
    """

    name = "time_series"

    def __init__(
        self,
        *,
        url: str,
        zone_id: str,
        origin: str = "http://www.topcoder.com",
        zone_header: str = "Predix-Zone-Id",
        ack_timeout_s: float = 30.0,
        proxy: str | None = None,
    ) -> None:
        self._url = url
        self._zone_id = zone_id
        self._origin = origin
        self._zone_header = zone_header
        self._ack_timeout = ack_timeout_s
        self._proxy = proxy if proxy is not None else proxy_from_env()
        self._ws: ClientConnection | None = None
        self.state = ConnectionState.DISCONNECTED
        self.messages_sent = 0

    # ------------------------------------------------------------------
    # Connection state machine
    # ------------------------------------------------------------------

    async def open(self, token: str | None) -> None:
        """DISCONNECTED -> CONNECTING -> OPEN, or back to DISCONNECTED on error."""
        if self.state is ConnectionState.OPEN:
            return
        self.state = ConnectionState.CONNECTING
        headers = {self._zone_header: self._zone_id}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        logger.debug("Opening WebSocket to %s%s", self._url, f" via {self._proxy}" if self._proxy else "")
        try:
            self._ws = await connect(
                self._url,
                additional_headers=headers,
                origin=self._origin,
                proxy=self._proxy,
            )
        except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
            self._ws = None
            self.state = ConnectionState.DISCONNECTED
            raise SinkError(f"could not connect to {self._url}: {exc}") from exc
        self.state = ConnectionState.OPEN
        logger.debug("WebSocket opened")

    async def shutdown(self) -> None:
        """OPEN -> CLOSING -> DISCONNECTED.  Close errors are only logged."""
        ws, self._ws = self._ws, None
        if ws is None:
            self.state = ConnectionState.DISCONNECTED
            return
        self.state = ConnectionState.CLOSING
        try:
            await ws.close()
        except (WebSocketException, OSError) as exc:
            logger.debug("Error while closing WebSocket: %s", exc)
        finally:
            self.state = ConnectionState.DISCONNECTED
        logger.debug("WebSocket closed")

    # ------------------------------------------------------------------
    # SinkAdapter interface
    # ------------------------------------------------------------------

    async def write(self, items: list[QueueItem], token: str | None) -> None:
        payload = {
            "messageId": int(time.time() * 1000),
            "body": build_series_body(items),
        }
        await self.open(token)
        if self._ws is None:
            raise SinkError("TimeSeriesSink is not connected")

        try:
            await self._ws.send(json.dumps(payload))
            ack = await asyncio.wait_for(self._ws.recv(), timeout=self._ack_timeout)
        except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
            logger.error("WebSocket error - discarding connection: %r", exc)
            await self.shutdown()
            raise SinkError(f"streaming {len(items)} points failed: {exc!r}") from exc

        self.messages_sent += 1
        logger.debug("Sent %d points, acknowledgement: %s", len(items), ack)

    async def release(self) -> None:
        if self.state is ConnectionState.OPEN:
            logger.debug("Time series queue is empty - closing socket")
        await self.shutdown()

    async def close(self) -> None:
        await self.shutdown()
