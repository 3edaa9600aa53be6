"""Sink abstraction layer with reliable, ordered delivery.

Provides:
- ``SinkAdapter``   - abstract base class every concrete sink implements.
- ``SinkError``     - the only failure an adapter reports to its queue.
- ``DeliveryQueue`` - per-sink FIFO that batches items, keeps at most one
                      batch in flight and retries failed batches forever.
"""

from __future__ import annotations

import asyncio
import collections
import contextlib
import enum
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from locomotive_simulator.models import IdGenerator, QueueItem

__all__ = ["DeliveryQueue", "DrainOutcome", "QueueState", "SinkAdapter", "SinkError"]

logger = logging.getLogger("locomotive_simulator.sinks")

TokenSource = Callable[[], Awaitable[str | None]]


class SinkError(RuntimeError):
    """A batch could not be delivered; the whole batch is to be retried."""


# -----------------------------------------------------------------------
# SinkAdapter ABC
# -----------------------------------------------------------------------


class SinkAdapter(ABC):
    """Wire protocol for one external sink.

    ``write`` either returns once the sink has acknowledged every item in
    the batch, or raises :class:`SinkError`.  Adapters never drop, reorder
    or retry on their own; that is the queue's job.
    """

    name: str = "sink"

    @abstractmethod
    async def write(self, items: list[QueueItem], token: str | None) -> None:
        """Send *items* as one request, authenticated with *token*."""

    async def release(self) -> None:
        """Free idle resources once the queue has been emptied."""

    @abstractmethod
    async def close(self) -> None:
        """Release resources / close connections."""


# -----------------------------------------------------------------------
# DeliveryQueue - one per sink
# -----------------------------------------------------------------------


class QueueState(enum.Enum):
    IDLE = "idle"
    DRAINING = "draining"
    BACKING_OFF = "backing_off"


class DrainOutcome(enum.Enum):
    DELIVERED = "delivered"
    FAILED = "failed"
    BUSY = "busy"
    EMPTY = "empty"


class DeliveryQueue:
    """Ordered, unbounded pending list in front of a :class:`SinkAdapter`.

    ``enqueue`` is synchronous and returns immediately; a single worker task
    drains the queue in batches of at most ``batch_size`` items, oldest
    first.  After a failed batch the worker waits ``retry_delay_s``, fetches
    a new credential and sends the same head-of-queue items again, so items
    reach the sink in enqueue order and leave the queue only once
    acknowledged.

    Parameters:
        adapter: Transport for the target sink.
        token: Credential to start with.
        refresh_token: Coroutine function returning a fresh credential, or
            ``None`` when none could be obtained.
        batch_size: Maximum items per drain.
        retry_delay_s: Back-off between a failed drain and its retry.
    """

    def __init__(
        self,
        adapter: SinkAdapter,
        *,
        token: str | None,
        refresh_token: TokenSource,
        batch_size: int = 10,
        retry_delay_s: float = 5.0,
        id_generator: Callable[[], str] | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.adapter = adapter
        self.token = token
        self.batch_size = batch_size
        self.retry_delay_s = retry_delay_s
        self._refresh_token = refresh_token
        self._next_id = id_generator or IdGenerator()
        self._items: list[QueueItem] = []
        self._in_progress: list[QueueItem] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._landed = asyncio.Event()
        self._landed.set()
        self.state = QueueState.IDLE
        self.sent: collections.Counter[str] = collections.Counter()
        self.failures = 0

    # -- public interface used by the simulator --

    def enqueue(self, key: str, payload: Any) -> QueueItem:
        """Append a new item at the tail and make sure a drain is scheduled."""
        item = QueueItem(id=self._next_id(), key=key, payload=payload)
        self._items.append(item)
        logger.debug("%s queued %s (%s), queue length %d", self.adapter.name, item.id, key, len(self._items))
        self._schedule()
        return item

    async def drain(self) -> DrainOutcome:
        """Make one attempt to deliver the head of the queue.

        Returns immediately with ``BUSY`` while another attempt is in flight.
        """
        if self._in_progress is not None:
            return DrainOutcome.BUSY
        if not self._items:
            return DrainOutcome.EMPTY

        batch = self._items[: self.batch_size]
        self._in_progress = batch
        self._landed.clear()
        self.state = QueueState.DRAINING
        try:
            await self.adapter.write(batch, self.token)
        except SinkError as exc:
            self.failures += 1
            logger.error("%s delivery of %d items FAILED: %s", self.adapter.name, len(batch), exc)
            return DrainOutcome.FAILED
        except Exception:
            self.failures += 1
            logger.exception("%s delivery of %d items FAILED unexpectedly", self.adapter.name, len(batch))
            return DrainOutcome.FAILED
        finally:
            self._in_progress = None
            self._landed.set()

        self._acknowledge(batch)
        return DrainOutcome.DELIVERED

    def is_finished(self) -> bool:
        """``True`` when nothing is queued and nothing is being sent right now."""
        return not self._items and self._in_progress is None

    async def join(self) -> None:
        """Wait until the current worker (if any) has emptied the queue."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    async def close(self) -> None:
        """Stop the worker and close the adapter.  Undelivered items are kept."""
        if not self._items:
            # let the worker finish releasing the adapter
            await self.join()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
        self._worker = None
        await self.adapter.close()
        if self._items:
            logger.warning("%s closed with %d undelivered items", self.adapter.name, len(self._items))

    @property
    def pending(self) -> list[QueueItem]:
        return list(self._items)

    @property
    def in_progress(self) -> list[QueueItem]:
        return list(self._in_progress or [])

    def __len__(self) -> int:
        return len(self._items)

    # -- internal --

    def _schedule(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(
                self._work_loop(), name=f"drain-{self.adapter.name}"
            )

    async def _work_loop(self) -> None:
        """Drain until empty, backing off and refreshing the token on failure."""
        while True:
            while self._items:
                outcome = await self.drain()
                if outcome is DrainOutcome.FAILED:
                    await self._back_off()
                elif outcome is DrainOutcome.BUSY:
                    await self._landed.wait()
            self.state = QueueState.IDLE
            await self.adapter.release()
            # new items may have arrived while the adapter was releasing
            if not self._items:
                return

    async def _back_off(self) -> None:
        self.state = QueueState.BACKING_OFF
        logger.info("%s retrying in %.1fs with a fresh token", self.adapter.name, self.retry_delay_s)
        await asyncio.sleep(self.retry_delay_s)
        self.token = await self._refresh_token()
        if self.token is None:
            logger.warning("%s could not refresh its token - retrying without one", self.adapter.name)

    def _acknowledge(self, batch: list[QueueItem]) -> None:
        delivered = {item.id for item in batch}
        for item in batch:
            self.sent[item.key] += 1
        self._items = [item for item in self._items if item.id not in delivered]
        logger.debug(
            "%s delivered %d items, %d still queued, totals %s",
            self.adapter.name,
            len(batch),
            len(self._items),
            dict(self.sent),
        )
