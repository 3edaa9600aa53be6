"""Sampling policy - decides per logical key whether a value goes out now.

A key is eligible while it has been sent fewer than ``max_sends_per_key``
times and either has never been sent or was last sent at least
``send_interval_s`` simulated seconds ago (with ``eps`` slack for step
accumulation error).
"""

from __future__ import annotations

import collections
import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict

from locomotive_simulator.config import SamplingConfig

__all__ = ["SamplingPolicy", "SendHistory"]

logger = logging.getLogger("locomotive_simulator.sampling")


class SendHistory(BaseModel):
    """Last send time and number of sends for one key."""

    model_config = ConfigDict(frozen=True)

    prev_time_sent: float
    num_sends: int


class SamplingPolicy:
    """Per-key time-interval gate plus lifetime send cap.

    Parameters:
        config: Limits shared by every key.
    """

    def __init__(self, config: SamplingConfig) -> None:
        self.config = config
        self.history: dict[str, SendHistory] = {}
        self.suppressed: collections.Counter[str] = collections.Counter()

    def should_send(self, key: str, now: float) -> bool:
        entry = self.history.get(key)
        if entry is None:
            return self.config.max_sends_per_key > 0
        if entry.num_sends >= self.config.max_sends_per_key:
            return False
        return (now - entry.prev_time_sent) + self.config.eps >= self.config.send_interval_s

    def record(self, key: str, now: float) -> None:
        """Note that *key* was sent at *now*."""
        entry = self.history.get(key)
        sends = 1 if entry is None else entry.num_sends + 1
        self.history[key] = SendHistory(prev_time_sent=now, num_sends=sends)

    def offer(self, key: str, now: float, send: Callable[[], Any]) -> bool:
        """Call *send* and record it if *key* is eligible at *now*.

        The check, the call and the history update run without yielding,
        so no reader can see one without the other.
        """
        if not self.should_send(key, now):
            self.suppressed[key] += 1
            return False
        logger.debug("Sending %s at t=%.3f (previous sends: %d)", key, now, self.sends(key))
        send()
        self.record(key, now)
        return True

    def sends(self, key: str) -> int:
        entry = self.history.get(key)
        return 0 if entry is None else entry.num_sends
