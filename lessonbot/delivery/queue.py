"""
Delivery Queue

In-memory FIFO of outbound messages drained by a single worker task.
Producers (the daily scheduler, the payment verifier) only append; the
worker sends one message at a time with a minimum spacing between sends so
the Telegram rate limit is never hit.

Failed sends are logged and dropped. Nothing here survives a restart.
"""

import asyncio
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

from lessonbot.config import config
from lessonbot.models import QueueItem
from lessonbot.utils.logging import queue_logger as logger


class DeliveryQueue:
    """
    Rate-limited single-consumer message queue.

    The transport must provide `async send(recipient_id, payload) -> bool`.
    Items enqueued before a transport is attached wait until one is.
    """

    def __init__(
        self,
        transport: Optional[Any] = None,
        min_interval_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.transport = transport
        self.min_interval = (
            config.SEND_INTERVAL_SECONDS if min_interval_seconds is None else min_interval_seconds
        )
        self._sleep = sleep
        self._clock = clock

        self._items: Deque[QueueItem] = deque()
        self._wakeup = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._is_draining = False
        self._stopping = False
        self._last_send_at: Optional[float] = None

        self.sent_count = 0
        self.failed_count = 0
        self.last_error: Optional[str] = None

    # =========================================================================
    # Producer side
    # =========================================================================

    def enqueue(self, recipient_id: str, payload: str) -> QueueItem:
        """Append a message and wake the worker. Never blocks."""
        item = QueueItem(recipient_id=str(recipient_id), payload=payload)
        self._items.append(item)
        self._wakeup.set()
        logger.debug("Message enqueued", recipient_id=item.recipient_id, pending=len(self._items))
        return item

    def attach_transport(self, transport: Any) -> None:
        self.transport = transport
        logger.info("Transport attached", pending=len(self._items))
        self._wakeup.set()

    def __len__(self) -> int:
        return len(self._items)

    def status(self) -> Dict[str, Any]:
        return {
            "pending": len(self._items),
            "sent": self.sent_count,
            "failed": self.failed_count,
            "last_error": self.last_error,
            "transport_attached": self.transport is not None,
            "running": self._task is not None and not self._task.done(),
        }

    # =========================================================================
    # Consumer side
    # =========================================================================

    async def drain(self) -> int:
        """
        Send everything currently queued, in order.

        Returns the number of items attempted. Does nothing without a
        transport or when another drain is already running.
        """
        if self._is_draining or self.transport is None:
            return 0

        self._is_draining = True
        attempted = 0

        try:
            while self._items and self.transport is not None and not self._stopping:
                await self._wait_for_slot()
                # stop() may have landed during the wait; leave the item queued
                if self._stopping or not self._items:
                    break
                await self._send(self._items.popleft())
                attempted += 1
        finally:
            self._is_draining = False

        if attempted:
            logger.info(
                "Queue drained",
                attempted=attempted,
                sent=self.sent_count,
                failed=self.failed_count,
            )
        return attempted

    async def _wait_for_slot(self) -> None:
        if self._last_send_at is None:
            return
        remaining = self.min_interval - (self._clock() - self._last_send_at)
        if remaining > 0:
            await self._sleep(remaining)

    async def _send(self, item: QueueItem) -> None:
        self._last_send_at = self._clock()
        try:
            ok = await self.transport.send(item.recipient_id, item.payload)
        except Exception as e:
            self.failed_count += 1
            self.last_error = str(e)
            logger.error("Message delivery failed", recipient_id=item.recipient_id, error=str(e))
            return

        if ok:
            self.sent_count += 1
        else:
            self.failed_count += 1
            self.last_error = "transport reported failure"
            logger.error("Message delivery rejected", recipient_id=item.recipient_id)

    async def run(self) -> None:
        """Worker loop: drain, then sleep until something new is enqueued."""
        logger.info("Delivery queue worker running", min_interval=self.min_interval)
        while not self._stopping:
            self._wakeup.clear()
            try:
                await self.drain()
            except Exception as e:
                logger.error("Delivery queue worker error", error=str(e))
            if self._stopping:
                break
            await self._wakeup.wait()

    def start(self) -> None:
        """Start the worker task. Call from a running event loop."""
        if self._task is not None and not self._task.done():
            return
        self._stopping = False
        self._task = asyncio.create_task(self.run(), name="delivery-queue")
        logger.info("Delivery queue started", pending=len(self._items))

    async def stop(self) -> None:
        """Stop the worker. Unsent items stay in memory and are lost on exit."""
        self._stopping = True
        self._wakeup.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Delivery queue stopped", pending=len(self._items))
