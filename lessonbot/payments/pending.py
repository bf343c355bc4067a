"""
In-memory registry of payments that were started but not yet confirmed.

One record per recipient. Records expire after a TTL so an abandoned
payment does not stay checkable forever; the recipient then starts over.
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from lessonbot.config import config
from lessonbot.models import PendingPayment, utcnow


class PendingPaymentRegistry:

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ttl = timedelta(seconds=ttl_seconds or config.PENDING_PAYMENT_TTL_SECONDS)
        self._clock = clock
        self._records: Dict[str, PendingPayment] = {}

    def record(self, payment: PendingPayment) -> None:
        """Store a pending payment, replacing any earlier one for the recipient."""
        self._records[str(payment.recipient_id)] = payment

    def get(self, recipient_id: str, now: Optional[datetime] = None) -> Optional[PendingPayment]:
        """The live record for a recipient. An expired record is dropped and None returned."""
        payment = self._records.get(str(recipient_id))
        if payment is None:
            return None
        if self._is_expired(payment, now):
            del self._records[str(recipient_id)]
            return None
        return payment

    def remove(self, recipient_id: str) -> Optional[PendingPayment]:
        return self._records.pop(str(recipient_id), None)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or self._clock()
        expired = [rid for rid, p in self._records.items() if self._is_expired(p, now)]
        for rid in expired:
            del self._records[rid]
        return len(expired)

    def _is_expired(self, payment: PendingPayment, now: Optional[datetime] = None) -> bool:
        return (now or self._clock()) - payment.created_at >= self.ttl

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, recipient_id: object) -> bool:
        return str(recipient_id) in self._records
