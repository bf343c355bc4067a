"""
TON subscription payments: ledger client, pending registry and verifier.
"""

from lessonbot.payments.ledger import TonLedgerClient, LedgerTransaction, LedgerUnavailable
from lessonbot.payments.pending import PendingPaymentRegistry
from lessonbot.payments.verifier import (
    PaymentVerifier,
    PaymentStart,
    PaymentStartStatus,
    PaymentCheckResult,
    PaymentCheckStatus,
    PaymentError,
    NoPendingPayment,
    VerificationUnavailable,
    ActivationError,
    PaymentsNotConfigured,
    generate_reference,
    build_payment_link,
)

__all__ = [
    "TonLedgerClient",
    "LedgerTransaction",
    "LedgerUnavailable",
    "PendingPaymentRegistry",
    "PaymentVerifier",
    "PaymentStart",
    "PaymentStartStatus",
    "PaymentCheckResult",
    "PaymentCheckStatus",
    "PaymentError",
    "NoPendingPayment",
    "VerificationUnavailable",
    "ActivationError",
    "PaymentsNotConfigured",
    "generate_reference",
    "build_payment_link",
]
