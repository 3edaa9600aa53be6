"""Simulator - top-level orchestrator that steps the locomotive model and
feeds sampled telemetry and alerts to the two delivery queues.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from functools import partial

from pydantic import BaseModel, ConfigDict, Field

from locomotive_simulator.auth import TokenProvider
from locomotive_simulator.config import AlertThresholds, SimulatorYAMLConfig
from locomotive_simulator.models import AlertRecord, IdGenerator, LocomotiveState, TelemetryPoint
from locomotive_simulator.monitor import CompletionMonitor
from locomotive_simulator.physics import TransferPipeline
from locomotive_simulator.sampling import SamplingPolicy
from locomotive_simulator.sinks.asset import AssetSink
from locomotive_simulator.sinks.base import DeliveryQueue, SinkAdapter
from locomotive_simulator.sinks.time_series import TRACKED_FIELDS, TimeSeriesSink

__all__ = ["AlertRule", "LocomotiveSimulator", "SimulationReport", "default_alert_rules"]

logger = logging.getLogger("locomotive_simulator")


class AlertRule(BaseModel):
    """Raise *message* for *key* whenever the field crosses *limit*.

    Attributes:
        key: Wire name of the monitored field, also the sampling key.
        attribute: ``LocomotiveState`` attribute holding the value.
        limit: Threshold value.
        above: ``True`` to alert on values above *limit*, ``False`` for below.
        message: Alert text.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    attribute: str
    limit: float
    above: bool
    message: str

    def check(self, state: LocomotiveState) -> AlertRecord | None:
        value = getattr(state, self.attribute)
        crossed = value > self.limit if self.above else value < self.limit
        if not crossed:
            return None
        return AlertRecord(key=self.key, value=value, time=state.time, message=self.message)


def default_alert_rules(thresholds: AlertThresholds) -> list[AlertRule]:
    return [
        AlertRule(
            key="pressure",
            attribute="pressure",
            limit=thresholds.max_pressure,
            above=True,
            message="Maximum pressure has been exceeded!",
        ),
        AlertRule(
            key="speed",
            attribute="speed",
            limit=thresholds.max_speed,
            above=True,
            message="Maximum speed has been exceeded!",
        ),
        AlertRule(
            key="fuelMassInTender",
            attribute="fuel_mass_in_tender",
            limit=thresholds.min_fuel_mass_in_tender,
            above=False,
            message="Fuel mass in tender is too low!",
        ),
    ]


class SimulationReport(BaseModel):
    """Final counters surfaced at the end of a run."""

    iterations: int
    final_state: LocomotiveState
    time_series_sent: dict[str, int] = Field(default_factory=dict)
    alerts_sent: dict[str, int] = Field(default_factory=dict)
    time_series_suppressed: dict[str, int] = Field(default_factory=dict)
    alerts_suppressed: dict[str, int] = Field(default_factory=dict)


class LocomotiveSimulator:
    """High-level API for running the locomotive and delivering its data.

    Example::

        from locomotive_simulator import LocomotiveSimulator, load_yaml_config

        sim = LocomotiveSimulator(load_yaml_config("simulator.yaml"))
        report = sim.run()

    Parameters:
        config:
            Parsed configuration.  ``services`` is only needed for the
            collaborators that are not passed in explicitly.
        token_provider:
            Credential source; built from ``config.services`` when omitted.
        asset_sink / time_series_sink:
            Transports for the two sinks; built from ``config.services``
            when omitted.
    """

    def __init__(
        self,
        config: SimulatorYAMLConfig,
        *,
        token_provider: TokenProvider | None = None,
        asset_sink: SinkAdapter | None = None,
        time_series_sink: SinkAdapter | None = None,
    ) -> None:
        self.config = config
        self.pipeline = TransferPipeline(config.physics, config.simulator.dt)
        self.telemetry_sampling = SamplingPolicy(config.sampling)
        self.alert_sampling = SamplingPolicy(config.sampling)
        self.alert_rules = default_alert_rules(config.alerts)
        self.state = self.pipeline.initial_state()
        self.iterations_done = 0

        self._token_provider = token_provider
        self._asset_sink = asset_sink
        self._time_series_sink = time_series_sink
        self.asset_queue: DeliveryQueue | None = None
        self.time_series_queue: DeliveryQueue | None = None

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, iterations: int | None = None) -> SimulationReport | None:
        """Blocking entry point - starts the event loop.

        Falls back to a dedicated thread when called from inside a running
        event loop (Jupyter, IPython).
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None or not loop.is_running():
            return asyncio.run(self.run_async(iterations))

        result: list[SimulationReport | None] = [None]
        exc: list[BaseException | None] = [None]

        def _target() -> None:
            try:
                result[0] = asyncio.run(self.run_async(iterations))
            except BaseException as e:
                exc[0] = e

        t = threading.Thread(target=_target, daemon=True)
        t.start()
        t.join()
        if exc[0] is not None:
            raise exc[0]
        return result[0]

    async def run_async(self, iterations: int | None = None) -> SimulationReport | None:
        """Run the simulation and wait for both sinks to drain.

        Returns ``None`` without sending anything if no initial credential
        could be obtained.
        """
        total = self.config.simulator.iterations if iterations is None else iterations

        tokens = self._token_provider or TokenProvider.from_config(
            self.config.require_services(), timeout_s=self.config.delivery.request_timeout_s
        )
        token = await tokens.acquire()
        if token is None:
            logger.error("Could not obtain an access token - aborting before any data is sent")
            return None

        self._build_queues(token, tokens)
        asset_queue, time_series_queue = self._queues()

        logger.info("Starting simulation: %d iterations, dt=%.3fs", total, self.config.simulator.dt)
        try:
            for _ in range(total):
                self.step()
                # let pending network work run between ticks
                await asyncio.sleep(0)

            monitor = CompletionMonitor(
                {"time_series": time_series_queue, "asset": asset_queue},
                poll_interval_s=self.config.delivery.poll_interval_s,
            )
            totals = await monitor.wait()
        finally:
            await time_series_queue.close()
            await asset_queue.close()

        report = SimulationReport(
            iterations=self.iterations_done,
            final_state=self.state,
            time_series_sent=totals["time_series"],
            alerts_sent=totals["asset"],
            time_series_suppressed=dict(self.telemetry_sampling.suppressed),
            alerts_suppressed=dict(self.alert_sampling.suppressed),
        )
        return report

    def step(self) -> LocomotiveState:
        """Advance one tick and hand the new state to the sampling policies."""
        self.iterations_done += 1
        log_now = self.iterations_done % self.config.simulator.log_interval == 0
        if log_now:
            logger.debug("------------------------------------")
            logger.debug("iteration %d, total mass = %s", self.iterations_done, self.state.total_mass)
            logger.debug("pressure = %s, speed = %s", self.state.pressure, self.state.speed)

        self.state = self.pipeline.advance(self.state)

        if log_now:
            logger.debug("state = %s", self.state.model_dump_json())

        self._on_state_change(self.state)
        return self.state

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _build_queues(self, token: str, tokens: TokenProvider) -> None:
        delivery = self.config.delivery
        asset_sink = self._asset_sink
        time_series_sink = self._time_series_sink
        if asset_sink is None or time_series_sink is None:
            services = self.config.require_services()
            if asset_sink is None:
                asset_sink = AssetSink(
                    base_url=services.asset_url,
                    zone_id=services.asset_zone_id,
                    locomotive_id=self.config.simulator.locomotive_id,
                    resource=services.asset_resource,
                    zone_header=services.zone_header,
                    timeout_s=delivery.request_timeout_s,
                )
            if time_series_sink is None:
                time_series_sink = TimeSeriesSink(
                    url=services.time_series_url,
                    zone_id=services.time_series_zone_id,
                    origin=services.origin,
                    zone_header=services.zone_header,
                    ack_timeout_s=delivery.ack_timeout_s,
                )

        ids = IdGenerator()
        self.time_series_queue = DeliveryQueue(
            time_series_sink,
            token=token,
            refresh_token=tokens.acquire,
            batch_size=delivery.batch_size,
            retry_delay_s=delivery.retry_delay_s,
            id_generator=ids,
        )
        self.asset_queue = DeliveryQueue(
            asset_sink,
            token=token,
            refresh_token=tokens.acquire,
            batch_size=delivery.batch_size,
            retry_delay_s=delivery.retry_delay_s,
            id_generator=ids,
        )

    def _queues(self) -> tuple[DeliveryQueue, DeliveryQueue]:
        if self.asset_queue is None or self.time_series_queue is None:
            raise RuntimeError("LocomotiveSimulator is not running - call run() first")
        return self.asset_queue, self.time_series_queue

    def _on_state_change(self, state: LocomotiveState) -> None:
        asset_queue, _ = self._queues()

        for wire_name, attribute in TRACKED_FIELDS.items():
            send = partial(self._send_point, wire_name, state.time, getattr(state, attribute))
            self.telemetry_sampling.offer(wire_name, state.time, send)

        for rule in self.alert_rules:
            alert = rule.check(state)
            if alert is not None:
                self.alert_sampling.offer(rule.key, state.time, partial(asset_queue.enqueue, rule.key, alert))

    def _send_point(self, name: str, time: float, value: float) -> None:
        _, time_series_queue = self._queues()
        time_series_queue.enqueue(name, TelemetryPoint(name=name, time=time, value=value))
