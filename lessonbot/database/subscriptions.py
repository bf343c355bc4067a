"""
Subscription Service

Entitlements granted by confirmed payments. The payment reference is the
idempotency key: one reference can create at most one subscription row.
"""

import sqlite3
from datetime import datetime, timedelta
from typing import Optional, List, Tuple

from lessonbot.models import ActiveRecipient, Entitlement, EntitlementStatus, utcnow
from .client import Database, to_db_time, from_db_time
from .users import DEFAULT_LEVEL


class NoActiveEntitlement(Exception):
    """Raised when cancelling for a recipient without an active subscription."""
    pass


_COLUMNS = "id, recipient_id, payment_reference, status, expires_at, created_at"


def _row_to_entitlement(row) -> Entitlement:
    return Entitlement(
        id=row["id"],
        recipient_id=row["recipient_id"],
        reference=row["payment_reference"],
        status=EntitlementStatus(row["status"]),
        expires_at=from_db_time(row["expires_at"]),
        created_at=from_db_time(row["created_at"]),
    )


class SubscriptionService:
    """
    Service for subscription (entitlement) records.

    A recipient has at most one active, unexpired subscription at a time.
    """

    def __init__(self, db: Database):
        self.db = db

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_active_entitlements(self, now: Optional[datetime] = None) -> List[ActiveRecipient]:
        """Recipients with an active, unexpired subscription and their difficulty tier."""
        now = now or utcnow()
        cursor = await self.db.conn.execute(
            """
            SELECT DISTINCT s.recipient_id AS recipient_id,
                   COALESCE(u.difficulty_level, ?) AS difficulty_level
            FROM subscriptions s
            LEFT JOIN users u ON u.recipient_id = s.recipient_id
            WHERE s.status = ? AND s.expires_at > ?
            ORDER BY s.recipient_id
            """,
            (DEFAULT_LEVEL, EntitlementStatus.ACTIVE.value, to_db_time(now))
        )
        rows = await cursor.fetchall()
        return [ActiveRecipient(recipient_id=r["recipient_id"], tier=r["difficulty_level"]) for r in rows]

    async def get_entitlement(
        self,
        recipient_id: str,
        now: Optional[datetime] = None
    ) -> Optional[Entitlement]:
        """The recipient's active, unexpired subscription, if any."""
        now = now or utcnow()
        cursor = await self.db.conn.execute(
            f"""
            SELECT {_COLUMNS} FROM subscriptions
            WHERE recipient_id = ? AND status = ? AND expires_at > ?
            ORDER BY expires_at DESC
            LIMIT 1
            """,
            (str(recipient_id), EntitlementStatus.ACTIVE.value, to_db_time(now))
        )
        row = await cursor.fetchone()
        return _row_to_entitlement(row) if row else None

    async def get_by_reference(self, reference: str) -> Optional[Entitlement]:
        cursor = await self.db.conn.execute(
            f"SELECT {_COLUMNS} FROM subscriptions WHERE payment_reference = ?",
            (reference,)
        )
        row = await cursor.fetchone()
        return _row_to_entitlement(row) if row else None

    async def count_for_reference(self, reference: str) -> int:
        cursor = await self.db.conn.execute(
            "SELECT COUNT(*) FROM subscriptions WHERE payment_reference = ?",
            (reference,)
        )
        row = await cursor.fetchone()
        return row[0]

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_entitlement(
        self,
        recipient_id: str,
        reference: str,
        duration_days: int,
        now: Optional[datetime] = None
    ) -> Tuple[Entitlement, bool]:
        """
        Create a subscription for a confirmed payment.

        Idempotent on reference: a second call with the same reference
        returns the existing row and created=False.

        If the recipient already has an active subscription it is cancelled
        and its remaining time carried over, so only one stays active.

        Returns:
            (entitlement, created)
        """
        now = now or utcnow()

        existing = await self.get_by_reference(reference)
        if existing:
            return existing, False

        current = await self.get_entitlement(recipient_id, now=now)
        starts_from = max(now, current.expires_at) if current else now
        expires_at = starts_from + timedelta(days=duration_days)

        try:
            if current:
                await self.db.conn.execute(
                    "UPDATE subscriptions SET status = ? WHERE recipient_id = ? AND status = ? AND expires_at > ?",
                    (
                        EntitlementStatus.CANCELLED.value,
                        str(recipient_id),
                        EntitlementStatus.ACTIVE.value,
                        to_db_time(now),
                    )
                )
            cursor = await self.db.conn.execute(
                """
                INSERT INTO subscriptions (recipient_id, payment_reference, status, expires_at, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    str(recipient_id),
                    reference,
                    EntitlementStatus.ACTIVE.value,
                    to_db_time(expires_at),
                    to_db_time(now),
                )
            )
            await self.db.conn.commit()
        except sqlite3.IntegrityError:
            # Lost a race with another activation of the same reference
            await self.db.conn.rollback()
            winner = await self.get_by_reference(reference)
            if winner is None:
                raise
            return winner, False

        entitlement = Entitlement(
            id=cursor.lastrowid,
            recipient_id=str(recipient_id),
            reference=reference,
            status=EntitlementStatus.ACTIVE,
            expires_at=from_db_time(to_db_time(expires_at)),
            created_at=from_db_time(to_db_time(now)),
        )
        return entitlement, True

    async def cancel_entitlement(self, recipient_id: str, now: Optional[datetime] = None) -> Entitlement:
        """Cancel the active subscription. Takes effect on the next daily batch."""
        current = await self.get_entitlement(recipient_id, now=now)
        if current is None:
            raise NoActiveEntitlement(f"Recipient {recipient_id} has no active subscription")

        await self.db.conn.execute(
            "UPDATE subscriptions SET status = ? WHERE id = ?",
            (EntitlementStatus.CANCELLED.value, current.id)
        )
        await self.db.conn.commit()

        current.status = EntitlementStatus.CANCELLED
        return current
