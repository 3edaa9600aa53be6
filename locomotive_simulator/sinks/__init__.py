"""Delivery queue and the two sink adapters.

Import what you need directly from this package::

    from locomotive_simulator.sinks import AssetSink, DeliveryQueue, TimeSeriesSink
"""

from __future__ import annotations

from locomotive_simulator.sinks.asset import AssetSink
from locomotive_simulator.sinks.base import DeliveryQueue, DrainOutcome, QueueState, SinkAdapter, SinkError
from locomotive_simulator.sinks.time_series import ConnectionState, TimeSeriesSink

__all__ = [
    "AssetSink",
    "ConnectionState",
    "DeliveryQueue",
    "DrainOutcome",
    "QueueState",
    "SinkAdapter",
    "SinkError",
    "TimeSeriesSink",
]
