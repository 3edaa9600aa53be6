"""Completion monitor - waits for every delivery queue to drain."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from locomotive_simulator.sinks.base import DeliveryQueue

__all__ = ["CompletionMonitor"]

logger = logging.getLogger("locomotive_simulator.monitor")


class CompletionMonitor:
    """Polls a set of named queues until all of them report finished.

    Parameters:
        queues: Queues to watch, keyed by sink name.
        poll_interval_s: Seconds between checks.
    """

    def __init__(self, queues: Mapping[str, DeliveryQueue], *, poll_interval_s: float = 0.35) -> None:
        self.queues = dict(queues)
        self.poll_interval_s = poll_interval_s
        self.polls = 0

    def unfinished(self) -> list[str]:
        return [name for name, queue in self.queues.items() if not queue.is_finished()]

    async def wait(self) -> dict[str, dict[str, int]]:
        """Block until every queue is empty and idle, then return the per-key sent counts."""
        while True:
            self.polls += 1
            pending = self.unfinished()
            if not pending:
                break
            for name in pending:
                logger.debug("%s not finished yet (%d queued)", name, len(self.queues[name]))
            await asyncio.sleep(self.poll_interval_s)

        totals = {name: dict(queue.sent) for name, queue in self.queues.items()}
        logger.info("----------- SIMULATION COMPLETE -----------")
        for name, counts in totals.items():
            logger.info("total %s items delivered = %s", name, counts)
        return totals
