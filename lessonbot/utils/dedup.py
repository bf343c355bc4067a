"""
Bounded, time-windowed duplicate filter.

Used wherever an external system may redeliver the same event (Telegram
updates, payment webhooks). Identifiers are forgotten after a TTL or when
capacity is reached, oldest first.
"""

import time
from collections import OrderedDict
from threading import Lock
from typing import Callable, Hashable


class RecentEventFilter:
    """
    Remembers event identifiers for a limited window.

    Usage:
        seen = RecentEventFilter(ttl_seconds=600, capacity=10000)
        if seen.check_and_add(update_id):
            return  # redelivery, already handled
    """

    def __init__(
        self,
        ttl_seconds: float = 600,
        capacity: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.capacity = capacity
        self._clock = clock
        self._seen: "OrderedDict[Hashable, float]" = OrderedDict()
        self._lock = Lock()

    def _evict(self, now: float):
        # Insertion order equals expiry order since every entry has the same TTL.
        while self._seen:
            key, seen_at = next(iter(self._seen.items()))
            if now - seen_at < self.ttl_seconds:
                break
            self._seen.popitem(last=False)

    def check_and_add(self, event_id: Hashable) -> bool:
        """
        Record an identifier.

        Returns True if it was already seen inside the window (a duplicate),
        False if it is new.
        """
        now = self._clock()
        with self._lock:
            self._evict(now)
            if event_id in self._seen:
                return True
            self._seen[event_id] = now
            while len(self._seen) > self.capacity:
                self._seen.popitem(last=False)
            return False

    def discard(self, event_id: Hashable):
        """Forget an identifier so a retry of the same event is processed again."""
        with self._lock:
            self._seen.pop(event_id, None)

    def __contains__(self, event_id: Hashable) -> bool:
        now = self._clock()
        with self._lock:
            self._evict(now)
            return event_id in self._seen

    def __len__(self) -> int:
        with self._lock:
            self._evict(self._clock())
            return len(self._seen)
