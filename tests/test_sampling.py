"""Tests for locomotive_simulator.sampling - interval gate and send cap."""

from __future__ import annotations

from locomotive_simulator.config import SamplingConfig
from locomotive_simulator.sampling import SamplingPolicy


def _policy(**kwargs) -> SamplingPolicy:
    return SamplingPolicy(SamplingConfig(**kwargs))


class TestShouldSend:
    """Eligibility rules."""

    def test_first_send_is_always_eligible(self) -> None:
        assert _policy(send_interval_s=100).should_send("speed", 0.1)

    def test_within_interval_is_not_eligible(self) -> None:
        policy = _policy(send_interval_s=10)
        policy.record("speed", 1.0)
        assert not policy.should_send("speed", 10.9)
        assert policy.should_send("speed", 11.0)

    def test_epsilon_absorbs_step_accumulation(self) -> None:
        policy = _policy(send_interval_s=1.0)
        policy.record("speed", 0.0)
        t = 0.0
        for _ in range(10):
            t += 0.1
        assert t < 1.0
        assert policy.should_send("speed", t)

    def test_cap_reached(self) -> None:
        policy = _policy(max_sends_per_key=2, send_interval_s=0)
        policy.record("speed", 0.0)
        policy.record("speed", 1.0)
        assert not policy.should_send("speed", 500.0)

    def test_zero_cap_never_sends(self) -> None:
        assert not _policy(max_sends_per_key=0).should_send("speed", 0.0)

    def test_keys_are_independent(self) -> None:
        policy = _policy(send_interval_s=10)
        policy.record("speed", 1.0)
        assert policy.should_send("pressure", 1.0)


class TestOffer:
    """offer() enqueues and records together."""

    def test_150_offers_with_cap_100(self) -> None:
        policy = _policy(max_sends_per_key=100, send_interval_s=0)
        sent: list[int] = []
        for i in range(150):
            policy.offer("timeSeries", float(i), lambda i=i: sent.append(i))
        assert len(sent) == 100
        assert policy.sends("timeSeries") == 100
        assert policy.suppressed["timeSeries"] == 50

    def test_send_not_called_when_ineligible(self) -> None:
        policy = _policy(send_interval_s=5)
        calls: list[float] = []
        assert policy.offer("k", 0.0, lambda: calls.append(0.0))
        assert not policy.offer("k", 1.0, lambda: calls.append(1.0))
        assert calls == [0.0]
        assert policy.history["k"].prev_time_sent == 0.0

    def test_history_updated_with_send(self) -> None:
        policy = _policy(send_interval_s=5)
        policy.offer("k", 2.0, lambda: None)
        entry = policy.history["k"]
        assert entry.num_sends == 1
        assert entry.prev_time_sent == 2.0

    def test_sent_times_increase_and_respect_interval(self) -> None:
        interval = 10.0
        policy = _policy(max_sends_per_key=50, send_interval_s=interval)
        sent_at: list[float] = []
        t = 0.0
        for _ in range(3000):
            t += 0.1
            policy.offer("speed", t, lambda t=t: sent_at.append(t))
        assert 0 < len(sent_at) <= 50
        for earlier, later in zip(sent_at, sent_at[1:]):
            assert later > earlier
            assert later - earlier + 1e-9 >= interval
