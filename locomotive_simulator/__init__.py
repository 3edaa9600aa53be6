"""Steam Locomotive Simulator - step a small locomotive model and reliably
deliver its telemetry and threshold alerts to a time series sink and an
asset sink.

Quick start::

    from locomotive_simulator import LocomotiveSimulator, load_yaml_config

    sim = LocomotiveSimulator(load_yaml_config("simulator.yaml"))
    report = sim.run()
"""

from __future__ import annotations

from locomotive_simulator.config import ConfigError, SimulatorYAMLConfig, load_yaml_config
from locomotive_simulator.models import AlertRecord, LocomotiveState, TelemetryPoint
from locomotive_simulator.physics import TransferPipeline
from locomotive_simulator.sampling import SamplingPolicy
from locomotive_simulator.simulator import LocomotiveSimulator, SimulationReport

__all__ = [
    "AlertRecord",
    "ConfigError",
    "LocomotiveSimulator",
    "LocomotiveState",
    "SamplingPolicy",
    "SimulationReport",
    "SimulatorYAMLConfig",
    "TelemetryPoint",
    "TransferPipeline",
    "load_yaml_config",
]

__version__ = "0.1.0"
