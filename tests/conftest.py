"""Shared test fixtures and fakes for the lesson bot."""
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from lessonbot.database import Database, UserService, SubscriptionService, SentenceHistoryService
from lessonbot.delivery.queue import DeliveryQueue
from lessonbot.delivery.telegram import TransportError
from lessonbot.lessons.cache import SentenceCache
from lessonbot.payments.ledger import LedgerTransaction, LedgerUnavailable
from lessonbot.payments.pending import PendingPaymentRegistry
from lessonbot.payments.verifier import PaymentVerifier


# 10:00 in Bangkok, after the 08:00 cache reset
DEFAULT_NOW = datetime(2025, 1, 15, 3, 0, tzinfo=timezone.utc)


def sentence_json(text: str, translation: str = "translation", words: Optional[List[Dict[str, str]]] = None) -> str:
    return json.dumps({
        "thai_text": text,
        "english_translation": translation,
        "word_breakdown": words if words is not None else [{"word": text, "meaning": translation, "pinyin": "x"}],
    }, ensure_ascii=False)


# ── Fakes ──────────────────────────────────────────

class FakeClock:
    """Callable wall clock that tests move forward by hand."""

    def __init__(self, now: datetime = DEFAULT_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeSleep:
    """Records requested sleeps and advances an optional monotonic clock."""

    def __init__(self, monotonic: Optional["FakeMonotonic"] = None):
        self.calls: List[float] = []
        self.monotonic = monotonic

    async def __call__(self, seconds: float):
        self.calls.append(seconds)
        if self.monotonic is not None:
            self.monotonic.value += seconds


class FakeMonotonic:
    def __init__(self, value: float = 1000.0):
        self.value = value

    def __call__(self) -> float:
        return self.value


class ScriptedWriter:
    """Sentence writer returning canned responses in order. Exceptions are raised."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, tier: int, exclusions=()) -> str:
        self.calls.append({"tier": tier, "exclusions": list(exclusions)})
        if not self.responses:
            raise RuntimeError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class TierWriter:
    """A fresh sentence per call, tagged with tier and call number; tiers in `failing` raise."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls: List[int] = []

    async def generate(self, tier: int, exclusions=()) -> str:
        self.calls.append(tier)
        if tier in self.failing:
            raise RuntimeError(f"generator down for tier {tier}")
        n = len(self.calls)
        return sentence_json(f"ประโยค{tier} ครั้งที่{n}", f"sentence {tier} #{n}")


class FakeTransport:
    """Records everything sent. Recipients in `fail_for` raise TransportError."""

    def __init__(self, fail_for=(), reject_for=(), monotonic: Optional[FakeMonotonic] = None):
        self.fail_for = set(fail_for)
        self.reject_for = set(reject_for)
        self.monotonic = monotonic
        self.sent: List[Dict[str, Any]] = []
        self.attempts: List[str] = []
        self.attempt_times: List[float] = []
        self.messages: List[Dict[str, Any]] = []
        self.answered: List[str] = []

    async def send(self, recipient_id: str, payload: str) -> bool:
        self.attempts.append(recipient_id)
        if self.monotonic is not None:
            self.attempt_times.append(self.monotonic())
        if recipient_id in self.fail_for:
            raise TransportError("sendMessage", "Forbidden: bot was blocked by the user", 403)
        if recipient_id in self.reject_for:
            return False
        self.sent.append({"recipient_id": recipient_id, "payload": payload})
        return True

    async def send_message(self, chat_id: str, text: str, reply_markup=None):
        self.messages.append({"chat_id": chat_id, "text": text, "reply_markup": reply_markup})
        return {"message_id": len(self.messages)}

    async def answer_callback_query(self, callback_query_id: str, text=None):
        self.answered.append(callback_query_id)
        return True


class FakeLedger:
    def __init__(self, transactions: Optional[List[LedgerTransaction]] = None):
        self.transactions = transactions or []
        self.unavailable = False
        self.calls: List[Dict[str, Any]] = []

    async def get_transactions(self, address: str, limit: int = 20) -> List[LedgerTransaction]:
        self.calls.append({"address": address, "limit": limit})
        if self.unavailable:
            raise LedgerUnavailable("toncenter timed out")
        return list(self.transactions)


def ledger_tx(memo: str, amount: int = 1_000_000_000, tx_hash: str = "abc123") -> LedgerTransaction:
    return LedgerTransaction(hash=tx_hash, memo=memo, amount=amount, utime=1700000000, source="EQsender")


# ── Fixtures ──────────────────────────────────────────

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "data" / "test.db"))
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
def users(db) -> UserService:
    return UserService(db)


@pytest.fixture
def subscriptions(db) -> SubscriptionService:
    return SubscriptionService(db)


@pytest.fixture
def history(db) -> SentenceHistoryService:
    return SentenceHistoryService(db, retention=30)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def queue() -> DeliveryQueue:
    # No transport attached: items stay queued so tests can inspect them
    return DeliveryQueue(min_interval_seconds=0)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def pending(clock) -> PendingPaymentRegistry:
    return PendingPaymentRegistry(ttl_seconds=3600, clock=clock)


@pytest.fixture
def writer() -> TierWriter:
    return TierWriter()


@pytest.fixture
def cache(writer, history, clock, fake_sleep) -> SentenceCache:
    return SentenceCache(
        writer,
        history,
        timezone="Asia/Bangkok",
        reset_hour=8,
        max_attempts=3,
        base_delay=1.0,
        duplicate_retry_limit=2,
        prompt_size=30,
        clock=clock,
        sleep=fake_sleep,
    )


@pytest.fixture
def verifier(subscriptions, users, pending, ledger, queue, cache, clock, fake_sleep) -> PaymentVerifier:
    return PaymentVerifier(
        subscriptions=subscriptions,
        users=users,
        pending=pending,
        ledger=ledger,
        queue=queue,
        cache=cache,
        receiving_address="EQreceiver",
        amount=1.0,
        subscription_days=30,
        max_attempts=3,
        retry_delay=3.0,
        page_size=20,
        clock=clock,
        sleep=fake_sleep,
    )
