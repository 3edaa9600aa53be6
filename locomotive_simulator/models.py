"""Common data models for the steam locomotive simulator.

Defines the ``LocomotiveState`` snapshot produced every tick, the payloads
pushed onto the delivery queues (``TelemetryPoint`` and ``AlertRecord``)
and the ``QueueItem`` envelope that the queues own until delivery.
"""

from __future__ import annotations

import logging
import math
import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict

__all__ = [
    "AlertRecord",
    "IdGenerator",
    "LocomotiveState",
    "QueueItem",
    "TelemetryPoint",
    "to_timestamp_ms",
]

logger = logging.getLogger("locomotive_simulator.models")


def to_timestamp_ms(seconds: float) -> int:
    """Convert simulated seconds to integer milliseconds, rounding half up."""
    return int(math.floor(seconds * 1000 + 0.5))


class LocomotiveState(BaseModel):
    """Immutable snapshot of the locomotive after one tick.

    Attributes:
        distance: Metres travelled since the start of the run.
        fuel_mass_burning: Fuel (kg) currently ignited in the fire chamber.
        fuel_mass_in_tender: Fuel (kg) left in the tender.
        fuel_mass_in_fire_chamber: Fuel (kg) in the fire chamber, burning or not.
        locomotive_own_mass: Dry mass of the locomotive (kg).
        pressure: Boiler pressure (bar).
        speed: Speed in metres per second.
        time: Simulated seconds since the start of the run.
    """

    model_config = ConfigDict(frozen=True)

    distance: float = 0.0
    fuel_mass_burning: float = 0.0
    fuel_mass_in_tender: float = 0.0
    fuel_mass_in_fire_chamber: float = 0.0
    locomotive_own_mass: float = 0.0
    pressure: float = 0.0
    speed: float = 0.0
    time: float = 0.0

    @property
    def total_mass(self) -> float:
        """Mass moved by the engine: locomotive plus all fuel on board."""
        return self.locomotive_own_mass + self.fuel_mass_in_tender + self.fuel_mass_in_fire_chamber

    def evolve(self, **changes: float) -> LocomotiveState:
        """Return a new state with *changes* applied."""
        return self.model_copy(update=changes)

    def to_dict(self) -> dict[str, float]:
        return self.model_dump()


class TelemetryPoint(BaseModel):
    """One value of one tracked field, bound for the time series sink."""

    model_config = ConfigDict(frozen=True)

    name: str
    time: float
    value: float

    @property
    def timestamp_ms(self) -> int:
        return to_timestamp_ms(self.time)


class AlertRecord(BaseModel):
    """A threshold alert, bound for the asset sink.

    Attributes:
        key: Name of the monitored field, e.g. ``"pressure"``.
        value: Field value at the moment the threshold was crossed.
        time: Simulated seconds when the alert was raised.
        message: Human readable alert text.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    value: float
    time: float
    message: str

    @property
    def timestamp_ms(self) -> int:
        return to_timestamp_ms(self.time)


class QueueItem(BaseModel):
    """Envelope owned by a delivery queue until the sink acknowledges it.

    ``id`` is unique for the whole process; removal after a successful send
    always matches on it, never on the payload.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    key: str
    payload: Any


class IdGenerator:
    """Produces process-unique identifiers for queue items.

    A clash with an id handed out earlier is logged and a new one drawn.
    """

    def __init__(self) -> None:
        self._used: set[str] = set()

    def __call__(self) -> str:
        return self.next_id()

    def next_id(self) -> str:
        while True:
            candidate = self._generate()
            if candidate not in self._used:
                self._used.add(candidate)
                return candidate
            logger.debug("Duplicate id %s generated - drawing another", candidate)

    def _generate(self) -> str:
        return str(uuid.uuid4())

    def __len__(self) -> int:
        return len(self._used)
