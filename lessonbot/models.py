"""
Core data types shared by the cache, queue, scheduler and payment verifier.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WordBreakdown:
    """One token of a sentence with its meaning and romanization."""
    token: str
    meaning: str
    pronunciation: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"word": self.token, "meaning": self.meaning, "pinyin": self.pronunciation}


@dataclass(frozen=True)
class ContentUnit:
    """A generated sentence. Immutable once cached."""
    text: str
    translation: str
    breakdown: Tuple[WordBreakdown, ...] = ()


@dataclass(frozen=True)
class QueueItem:
    """A message waiting in the delivery queue."""
    recipient_id: str
    payload: str
    enqueued_at: datetime = field(default_factory=utcnow)


class EntitlementStatus(str, Enum):
    """Status values for subscriptions"""
    ACTIVE = "active"
    CANCELLED = "cancelled"


@dataclass
class Entitlement:
    id: int
    recipient_id: str
    reference: str
    status: EntitlementStatus
    expires_at: datetime
    created_at: datetime

    def is_active(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.status == EntitlementStatus.ACTIVE and self.expires_at > now

    def days_left(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        seconds = (self.expires_at - now).total_seconds()
        return max(0, -(-int(seconds) // 86400))


@dataclass
class ActiveRecipient:
    """Row returned by the eligible-recipient query."""
    recipient_id: str
    tier: int


@dataclass
class PendingPayment:
    recipient_id: str
    reference: str
    amount: float
    created_at: datetime = field(default_factory=utcnow)
    attempts: int = 0
