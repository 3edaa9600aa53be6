"""Tests for LocomotiveSimulator - end-to-end runs against in-memory sinks."""

from __future__ import annotations

import pytest

from locomotive_simulator.config import (
    AlertThresholds,
    DeliveryConfig,
    RunConfig,
    SamplingConfig,
    SimulatorYAMLConfig,
)
from locomotive_simulator.models import AlertRecord, LocomotiveState, QueueItem, TelemetryPoint
from locomotive_simulator.physics import TransferPipeline
from locomotive_simulator.simulator import AlertRule, LocomotiveSimulator, default_alert_rules
from locomotive_simulator.sinks.base import SinkAdapter, SinkError
from locomotive_simulator.sinks.time_series import TRACKED_FIELDS

# -----------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------


class _MemorySink(SinkAdapter):
    """Keeps every delivered item; fails the first *fail_count* writes."""

    def __init__(self, name: str, fail_count: int = 0) -> None:
        self.name = name
        self.fail_count = fail_count
        self.attempts = 0
        self.delivered: list[QueueItem] = []
        self.closed = False

    async def write(self, items: list[QueueItem], token: str | None) -> None:
        self.attempts += 1
        if self.attempts <= self.fail_count:
            raise SinkError(f"{self.name} unavailable")
        self.delivered.extend(items)

    async def close(self) -> None:
        self.closed = True


class _FakeTokens:
    def __init__(self, first: str | None = "token-0") -> None:
        self.first = first
        self.requests = 0

    async def acquire(self) -> str | None:
        self.requests += 1
        if self.requests == 1:
            return self.first
        return f"token-{self.requests - 1}"


def _make_config(iterations: int = 210) -> SimulatorYAMLConfig:
    return SimulatorYAMLConfig(
        simulator=RunConfig(iterations=iterations, dt=0.1),
        sampling=SamplingConfig(max_sends_per_key=100, send_interval_s=1.0),
        delivery=DeliveryConfig(batch_size=10, retry_delay_s=0.01, poll_interval_s=0.01),
        alerts=AlertThresholds(max_pressure=1e9, max_speed=-1.0, min_fuel_mass_in_tender=1e9),
    )


def _make_simulator(config: SimulatorYAMLConfig | None = None, **kwargs) -> tuple[LocomotiveSimulator, _MemorySink, _MemorySink]:
    asset = kwargs.pop("asset_sink", None) or _MemorySink("asset")
    series = kwargs.pop("time_series_sink", None) or _MemorySink("time_series")
    sim = LocomotiveSimulator(
        config or _make_config(),
        token_provider=kwargs.pop("token_provider", None) or _FakeTokens(),
        asset_sink=asset,
        time_series_sink=series,
    )
    return sim, asset, series


# -----------------------------------------------------------------------
# Alert rules
# -----------------------------------------------------------------------


class TestAlertRules:
    def test_default_rules_cover_three_fields(self) -> None:
        rules = default_alert_rules(AlertThresholds())
        assert [rule.key for rule in rules] == ["pressure", "speed", "fuelMassInTender"]

    def test_above_rule(self) -> None:
        rule = AlertRule(key="pressure", attribute="pressure", limit=20.0, above=True, message="high")
        assert rule.check(LocomotiveState(pressure=19.0)) is None
        alert = rule.check(LocomotiveState(pressure=21.0, time=3.0))
        assert alert == AlertRecord(key="pressure", value=21.0, time=3.0, message="high")

    def test_below_rule(self) -> None:
        rule = AlertRule(key="fuelMassInTender", attribute="fuel_mass_in_tender", limit=2800.0, above=False, message="low")
        assert rule.check(LocomotiveState(fuel_mass_in_tender=3000.0)) is None
        assert rule.check(LocomotiveState(fuel_mass_in_tender=2799.0)) is not None


# -----------------------------------------------------------------------
# Full runs
# -----------------------------------------------------------------------


class TestSimulationRun:
    """Runs that drain completely into the in-memory sinks."""

    @pytest.mark.asyncio
    async def test_sampled_telemetry_delivered(self) -> None:
        sim, _, series = _make_simulator()
        report = await sim.run_async()

        assert report is not None
        assert report.iterations == 210
        assert report.time_series_sent == {name: 21 for name in TRACKED_FIELDS}
        assert len(series.delivered) == 21 * len(TRACKED_FIELDS)
        assert all(isinstance(item.payload, TelemetryPoint) for item in series.delivered)
        assert series.closed

    @pytest.mark.asyncio
    async def test_alerts_delivered(self) -> None:
        sim, asset, _ = _make_simulator()
        report = await sim.run_async()

        assert report is not None
        assert report.alerts_sent == {"speed": 21, "fuelMassInTender": 21}
        assert len(asset.delivered) == 42
        assert all(isinstance(item.payload, AlertRecord) for item in asset.delivered)
        assert asset.closed

    @pytest.mark.asyncio
    async def test_suppressed_counts_reported(self) -> None:
        sim, _, _ = _make_simulator()
        report = await sim.run_async()
        assert report is not None
        assert report.time_series_suppressed["speed"] == 210 - 21
        assert report.alerts_suppressed["speed"] == 210 - 21
        assert "pressure" not in report.alerts_sent

    @pytest.mark.asyncio
    async def test_final_state_matches_pipeline(self) -> None:
        config = _make_config()
        sim, _, _ = _make_simulator(config)
        report = await sim.run_async()

        pipeline = TransferPipeline(config.physics, config.simulator.dt)
        expected = pipeline.run(pipeline.initial_state(), 210)
        assert report is not None
        assert report.final_state == expected
        assert report.final_state.speed == pytest.approx(27.27, abs=1e-2)

    @pytest.mark.asyncio
    async def test_iterations_override(self) -> None:
        sim, _, _ = _make_simulator()
        report = await sim.run_async(iterations=15)
        assert report is not None
        assert report.iterations == 15
        assert report.time_series_sent == {name: 2 for name in TRACKED_FIELDS}

    @pytest.mark.asyncio
    async def test_time_series_points_in_order(self) -> None:
        sim, _, series = _make_simulator()
        await sim.run_async()
        speed_times = [item.payload.time for item in series.delivered if item.key == "speed"]
        assert speed_times == sorted(speed_times)


class TestCredentials:
    @pytest.mark.asyncio
    async def test_no_initial_token_aborts(self) -> None:
        tokens = _FakeTokens(first=None)
        sim, asset, series = _make_simulator(token_provider=tokens)
        report = await sim.run_async()

        assert report is None
        assert sim.iterations_done == 0
        assert asset.attempts == 0
        assert series.attempts == 0

    @pytest.mark.asyncio
    async def test_failures_refresh_token_and_deliver_everything(self) -> None:
        tokens = _FakeTokens()
        asset = _MemorySink("asset", fail_count=2)
        series = _MemorySink("time_series", fail_count=3)
        sim, _, _ = _make_simulator(token_provider=tokens, asset_sink=asset, time_series_sink=series)
        report = await sim.run_async()

        assert report is not None
        assert sum(report.time_series_sent.values()) == 147
        assert sum(report.alerts_sent.values()) == 42
        ids = [item.id for item in series.delivered]
        assert len(ids) == len(set(ids)) == 147
        assert tokens.requests == 1 + 2 + 3

    def test_step_before_run_raises(self) -> None:
        sim, _, _ = _make_simulator()
        with pytest.raises(RuntimeError, match="not running"):
            sim.step()

    def test_missing_services_without_injected_sinks(self) -> None:
        from locomotive_simulator.config import ConfigError

        sim = LocomotiveSimulator(_make_config(), token_provider=_FakeTokens())
        with pytest.raises(ConfigError):
            sim.run(iterations=1)


class TestSyncRun:
    def test_run_blocks_until_drained(self) -> None:
        sim, asset, series = _make_simulator(_make_config(iterations=30))
        report = sim.run()
        assert report is not None
        assert report.iterations == 30
        assert len(series.delivered) == 3 * len(TRACKED_FIELDS)
        assert len(asset.delivered) == 6
