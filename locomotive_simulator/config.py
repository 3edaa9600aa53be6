"""Configuration loader for the simulator YAML format.

Parses YAML files with the following top-level sections::

    simulator:   # run length, step size, logging
    physics:     # fuel and movement coefficients
    sampling:    # per-key send limits
    delivery:    # batching, retry and polling knobs
    alerts:      # thresholds for the three monitored fields
    services:    # sink endpoints and credentials (required)

Example:

.. code-block:: yaml

    simulator:
      iterations: 100000
      dt: 0.1

    services:
      auth_url: https://uaa.example.com
      client_id: simulator
      client_secret: secret
      asset_url: https://asset.example.com/
      asset_zone_id: 7f1c...
      time_series_url: wss://ts.example.com/v1/stream/messages
      time_series_zone_id: 93ab...

Only ``services`` is required; every other section falls back to the
defaults below.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

__all__ = [
    "AlertThresholds",
    "ConfigError",
    "DeliveryConfig",
    "PhysicsConfig",
    "RunConfig",
    "SamplingConfig",
    "ServicesConfig",
    "SimulatorYAMLConfig",
    "load_yaml_config",
]

logger = logging.getLogger("locomotive_simulator.config")


class ConfigError(ValueError):
    """Raised when a configuration file is missing required values."""


class RunConfig(BaseModel):
    """Run length and logging.

    Attributes:
        iterations: Number of ticks to simulate.
        dt: Simulation step in seconds.
        log_interval: Log the state every this many ticks.
        log_level: Logging level string.
        locomotive_id: Identifier sent with every alert.
    """

    iterations: int = Field(default=100_000, ge=0)
    dt: float = Field(default=0.1, gt=0)
    log_interval: int = Field(default=500, gt=0)
    log_level: str = "INFO"
    locomotive_id: str = "locomotive_topcoder"


class PhysicsConfig(BaseModel):
    """Coefficients of the transfer functions.

    ``x1`` multiplies pressure and ``x2`` multiplies speed in the force
    balance; ``x3`` is the dead-zone threshold on acceleration while standing.
    """

    x1: float = 425205.75
    x2: float = 325000.0
    x3: float = 1.7
    fuel_add_amt: float = 1.0
    max_fuel_mass_in_fire_chamber: float = 10.0
    pressure_multiplier: float = 2.0
    fuel_burn_amt: float = 0.1
    initial_fuel_mass_in_tender: float = 12700.0
    locomotive_own_mass: float = Field(default=500_000.0, gt=0)


class SamplingConfig(BaseModel):
    """Per-key limits applied before anything is queued."""

    max_sends_per_key: int = Field(default=100, ge=0)
    send_interval_s: float = Field(default=100.0, ge=0)
    eps: float = 1e-9


class DeliveryConfig(BaseModel):
    """Delivery queue and adapter knobs.

    Attributes:
        batch_size: Maximum items per drain.
        retry_delay_s: Seconds to wait after a failed drain.
        poll_interval_s: How often the completion monitor checks the queues.
        request_timeout_s: HTTP timeout for the asset sink and token requests.
        ack_timeout_s: How long the streaming sink waits for an acknowledgement.
    """

    batch_size: int = Field(default=10, gt=0)
    retry_delay_s: float = Field(default=5.0, ge=0)
    poll_interval_s: float = Field(default=0.35, gt=0)
    request_timeout_s: float = Field(default=30.0, gt=0)
    ack_timeout_s: float = Field(default=30.0, gt=0)


class AlertThresholds(BaseModel):
    max_pressure: float = 21.800000000007
    max_speed: float = 27.41731
    min_fuel_mass_in_tender: float = 2800.0


class ServicesConfig(BaseModel):
    """Static description of the two sinks and the authorization server."""

    auth_url: str
    client_id: str
    client_secret: str
    asset_url: str
    asset_zone_id: str
    time_series_url: str
    time_series_zone_id: str
    zone_header: str = "Predix-Zone-Id"
    origin: str = "http://www.topcoder.com"
    asset_resource: str = "locomotive"


class SimulatorYAMLConfig(BaseModel):
    """Parsed representation of the full YAML configuration."""

    simulator: RunConfig = Field(default_factory=RunConfig)
    physics: PhysicsConfig = Field(default_factory=PhysicsConfig)
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    alerts: AlertThresholds = Field(default_factory=AlertThresholds)
    services: ServicesConfig | None = None

    def require_services(self) -> ServicesConfig:
        """Return the ``services`` section or fail if it was never given."""
        if self.services is None:
            raise ConfigError("Missing 'services' section - sink endpoints and credentials are required")
        return self.services


def load_yaml_config(path: str | Path, *, require_services: bool = True) -> SimulatorYAMLConfig:
    """Load and validate a YAML configuration file.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ConfigError: If a value is invalid or ``services`` is incomplete.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")

    try:
        config = SimulatorYAMLConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(_describe(exc)) from exc

    if require_services:
        config.require_services()

    logger.info(
        "Loaded config: %d iterations, dt=%.3fs, batch_size=%d",
        config.simulator.iterations,
        config.simulator.dt,
        config.delivery.batch_size,
    )
    return config


def _describe(exc: ValidationError) -> str:
    """Flatten a pydantic error into one line naming every offending key."""
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"])
        problems.append(f"{location}: {err['msg']}")
    return "Invalid configuration - " + "; ".join(problems)
