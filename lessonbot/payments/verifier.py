"""
Payment Verifier

Drives a TON subscription payment from start to activation:

    start_payment  -> records a pending payment and hands out a reference
                      plus a ton:// link with the reference as the comment
    check_payment  -> polls the receiving wallet once for a transfer whose
                      comment contains the reference
    activate       -> the single activation path, shared with the payment
                      webhook; creates the subscription at most once per
                      reference and queues the welcome lesson

Outcomes that are not errors (already subscribed, not found yet, ...) come
back as result enums. Conditions the caller has to handle differently are
exceptions.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional
from urllib.parse import quote

from lessonbot.config import config
from lessonbot.database.subscriptions import SubscriptionService
from lessonbot.database.users import UserService, DEFAULT_LEVEL
from lessonbot.delivery.queue import DeliveryQueue
from lessonbot.lessons.cache import SentenceCache, GenerationError
from lessonbot.lessons.templates import fallback_sentence, render_welcome
from lessonbot.models import Entitlement, PendingPayment, utcnow
from lessonbot.payments.ledger import LedgerUnavailable, LedgerTransaction
from lessonbot.payments.pending import PendingPaymentRegistry
from lessonbot.utils.logging import payment_logger as logger


# =============================================================================
# Errors
# =============================================================================

class PaymentError(Exception):
    """Base class for payment verification errors."""
    pass


class NoPendingPayment(PaymentError):
    """check_payment was called for a recipient with nothing to check."""
    pass


class VerificationUnavailable(PaymentError):
    """The ledger could not be queried. Try again later; nothing was decided."""
    pass


class ActivationError(PaymentError):
    """Payment was confirmed but the subscription could not be recorded."""

    def __init__(self, recipient_id: str, reference: str, message: str):
        self.recipient_id = recipient_id
        self.reference = reference
        super().__init__(message)


class PaymentsNotConfigured(PaymentError):
    """No receiving wallet address is configured."""
    pass


# =============================================================================
# Results
# =============================================================================

class PaymentStartStatus(str, Enum):
    CREATED = "created"
    ALREADY_SUBSCRIBED = "already_subscribed"


class PaymentCheckStatus(str, Enum):
    SUCCESS = "success"
    ALREADY_RESOLVED = "already_resolved"
    RETRY = "retry"
    NOT_FOUND = "not_found"


@dataclass
class PaymentStart:
    status: PaymentStartStatus
    reference: Optional[str] = None
    payment_link: Optional[str] = None
    amount: Optional[float] = None
    entitlement: Optional[Entitlement] = None


@dataclass
class PaymentCheckResult:
    status: PaymentCheckStatus
    reference: Optional[str] = None
    entitlement: Optional[Entitlement] = None
    attempts: int = 0
    retry_after: Optional[float] = None


def generate_reference(recipient_id: str, now: datetime) -> str:
    """Unique per recipient and millisecond, e.g. thai-bot-42-1700000000000."""
    return f"thai-bot-{recipient_id}-{int(now.timestamp() * 1000)}"


def build_payment_link(address: str, amount_nano: int, reference: str) -> str:
    return f"ton://transfer/{address}?amount={amount_nano}&text={quote(reference, safe='')}"


def find_matching_transaction(transactions, reference: str) -> Optional[LedgerTransaction]:
    for tx in transactions:
        if tx.memo and reference in tx.memo:
            return tx
    return None


class PaymentVerifier:
    """
    Verifies TON payments and activates subscriptions.

    The ledger client must provide `async get_transactions(address, limit)`.
    """

    def __init__(
        self,
        subscriptions: SubscriptionService,
        users: UserService,
        pending: PendingPaymentRegistry,
        ledger,
        queue: DeliveryQueue,
        cache: SentenceCache,
        receiving_address: Optional[str] = None,
        amount: Optional[float] = None,
        subscription_days: Optional[int] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        page_size: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.subscriptions = subscriptions
        self.users = users
        self.pending = pending
        self.ledger = ledger
        self.queue = queue
        self.cache = cache

        self.receiving_address = receiving_address or config.TON_ADDRESS
        self.amount = amount or config.TON_AMOUNT
        self.subscription_days = subscription_days or config.SUBSCRIPTION_DAYS
        self.max_attempts = max_attempts or config.PAYMENT_CHECK_MAX_ATTEMPTS
        self.retry_delay = config.PAYMENT_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.page_size = page_size or config.LEDGER_PAGE_SIZE
        self._clock = clock
        self._sleep = sleep

    # =========================================================================
    # Payment flow
    # =========================================================================

    async def start_payment(self, recipient_id: str) -> PaymentStart:
        recipient_id = str(recipient_id)
        now = self._clock()

        current = await self.subscriptions.get_entitlement(recipient_id, now=now)
        if current is not None:
            logger.info("Payment start skipped, already subscribed", recipient_id=recipient_id)
            return PaymentStart(status=PaymentStartStatus.ALREADY_SUBSCRIBED, entitlement=current)

        if not self.receiving_address:
            raise PaymentsNotConfigured("TON_ADDRESS is not configured")

        reference = generate_reference(recipient_id, now)
        self.pending.record(PendingPayment(
            recipient_id=recipient_id,
            reference=reference,
            amount=self.amount,
            created_at=now,
        ))

        amount_nano = int(self.amount * 1_000_000_000)
        link = build_payment_link(self.receiving_address, amount_nano, reference)

        logger.info("Payment started", recipient_id=recipient_id, reference=reference)
        return PaymentStart(
            status=PaymentStartStatus.CREATED,
            reference=reference,
            payment_link=link,
            amount=self.amount,
        )

    async def check_payment(self, recipient_id: str) -> PaymentCheckResult:
        """
        Poll the ledger once for the recipient's pending payment.

        Raises:
            NoPendingPayment: nothing pending and no active subscription
            VerificationUnavailable: the ledger could not be queried
            ActivationError: payment found but the subscription was not recorded
        """
        recipient_id = str(recipient_id)
        payment = self.pending.get(recipient_id, now=self._clock())

        if payment is None:
            current = await self.subscriptions.get_entitlement(recipient_id, now=self._clock())
            if current is not None:
                return PaymentCheckResult(
                    status=PaymentCheckStatus.ALREADY_RESOLVED,
                    reference=current.reference,
                    entitlement=current,
                )
            raise NoPendingPayment(f"No pending payment for recipient {recipient_id}")

        if not self.receiving_address:
            raise VerificationUnavailable("TON_ADDRESS is not configured")

        try:
            transactions = await self.ledger.get_transactions(self.receiving_address, self.page_size)
        except LedgerUnavailable as e:
            logger.warning("Ledger unavailable during payment check", recipient_id=recipient_id, error=str(e))
            raise VerificationUnavailable(str(e)) from e

        payment.attempts += 1
        match = find_matching_transaction(transactions, payment.reference)

        if match is not None:
            logger.info(
                "Payment found on ledger",
                recipient_id=recipient_id,
                reference=payment.reference,
                tx_hash=match.hash,
                amount_ton=match.amount_ton,
            )
            result = await self.activate(recipient_id, payment.reference, source="ledger")
            result.attempts = payment.attempts
            return result

        if payment.attempts < self.max_attempts:
            logger.debug(
                "Payment not found yet",
                recipient_id=recipient_id,
                reference=payment.reference,
                attempts=payment.attempts,
            )
            return PaymentCheckResult(
                status=PaymentCheckStatus.RETRY,
                reference=payment.reference,
                attempts=payment.attempts,
                retry_after=self.retry_delay,
            )

        logger.info(
            "Payment not found after max attempts",
            recipient_id=recipient_id,
            reference=payment.reference,
            attempts=payment.attempts,
        )
        return PaymentCheckResult(
            status=PaymentCheckStatus.NOT_FOUND,
            reference=payment.reference,
            attempts=payment.attempts,
        )

    async def poll_payment(self, recipient_id: str) -> PaymentCheckResult:
        """check_payment repeatedly while the outcome is RETRY."""
        while True:
            result = await self.check_payment(recipient_id)
            if result.status != PaymentCheckStatus.RETRY:
                return result
            await self._sleep(result.retry_after or 0)

    async def activate(self, recipient_id: str, reference: str, source: str) -> PaymentCheckResult:
        """
        Create the subscription for a confirmed payment and queue the welcome lesson.

        Safe to call more than once for the same reference; later calls
        return ALREADY_RESOLVED without side effects.
        """
        recipient_id = str(recipient_id)

        existing = await self.subscriptions.get_by_reference(reference)
        if existing is not None:
            self._clear_pending(recipient_id, reference)
            logger.info("Payment already resolved", recipient_id=recipient_id, reference=reference, source=source)
            return PaymentCheckResult(
                status=PaymentCheckStatus.ALREADY_RESOLVED,
                reference=reference,
                entitlement=existing,
            )

        try:
            entitlement, created = await self.subscriptions.create_entitlement(
                recipient_id,
                reference,
                self.subscription_days,
                now=self._clock(),
            )
        except Exception as e:
            logger.critical(
                "Payment confirmed but entitlement not recorded",
                recipient_id=recipient_id,
                reference=reference,
                source=source,
                error=str(e),
            )
            raise ActivationError(recipient_id, reference, f"Entitlement not recorded: {e}") from e

        self._clear_pending(recipient_id, reference)

        if not created:
            return PaymentCheckResult(
                status=PaymentCheckStatus.ALREADY_RESOLVED,
                reference=reference,
                entitlement=entitlement,
            )

        logger.info(
            "Subscription activated",
            recipient_id=recipient_id,
            reference=reference,
            source=source,
            expires_at=entitlement.expires_at.isoformat(),
        )

        await self._enqueue_welcome(recipient_id)

        return PaymentCheckResult(
            status=PaymentCheckStatus.SUCCESS,
            reference=reference,
            entitlement=entitlement,
        )

    async def cancel_entitlement(self, recipient_id: str) -> Entitlement:
        """Raises NoActiveEntitlement when there is nothing to cancel."""
        entitlement = await self.subscriptions.cancel_entitlement(str(recipient_id), now=self._clock())
        logger.info("Subscription cancelled", recipient_id=str(recipient_id), reference=entitlement.reference)
        return entitlement

    def purge_expired(self) -> int:
        purged = self.pending.purge_expired(now=self._clock())
        if purged:
            logger.info("Purged expired pending payments", count=purged)
        return purged

    # =========================================================================
    # Helpers
    # =========================================================================

    def _clear_pending(self, recipient_id: str, reference: str) -> None:
        payment = self.pending.get(recipient_id, now=self._clock())
        if payment is not None and payment.reference == reference:
            self.pending.remove(recipient_id)

    async def _enqueue_welcome(self, recipient_id: str) -> None:
        try:
            tier = await self.users.get_level(recipient_id)
        except Exception as e:
            logger.warning("Could not load difficulty level, using default", recipient_id=recipient_id, error=str(e))
            tier = DEFAULT_LEVEL

        try:
            unit = await self.cache.fetch(tier)
        except GenerationError as e:
            logger.warning("Using fallback sentence for first lesson", recipient_id=recipient_id, tier=tier, error=str(e))
            unit = fallback_sentence(tier)

        self.queue.enqueue(recipient_id, render_welcome(unit, self.subscription_days))
