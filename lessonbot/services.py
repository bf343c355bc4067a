"""
Application service wiring.

build_services() creates every long-lived object once (database, cache,
queue, verifier, scheduler, bot) and AppServices.start()/stop() tie their
lifecycle to the web app's. The delivery queue, pending payments and dedup
filters are in-memory, so the app must run as a single process.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request

from lessonbot.agents.sentence_writer import SentenceWriterAgent
from lessonbot.bot.handlers import BotHandlers
from lessonbot.bot.poller import BotPoller
from lessonbot.config import config
from lessonbot.database import Database, UserService, SubscriptionService, SentenceHistoryService
from lessonbot.delivery.queue import DeliveryQueue
from lessonbot.delivery.telegram import TelegramTransport
from lessonbot.jobs.daily_scheduler import DailyLessonScheduler
from lessonbot.lessons.cache import SentenceCache
from lessonbot.payments.ledger import TonLedgerClient
from lessonbot.payments.pending import PendingPaymentRegistry
from lessonbot.payments.verifier import PaymentVerifier
from lessonbot.utils.dedup import RecentEventFilter
from lessonbot.utils.logging import get_logger

logger = get_logger("services")


@dataclass
class AppServices:
    db: Database
    users: UserService
    subscriptions: SubscriptionService
    history: SentenceHistoryService
    cache: SentenceCache
    queue: DeliveryQueue
    pending: PendingPaymentRegistry
    ledger: TonLedgerClient
    verifier: PaymentVerifier
    scheduler: DailyLessonScheduler
    webhook_filter: RecentEventFilter
    transport: Optional[TelegramTransport] = None
    handlers: Optional[BotHandlers] = None
    poller: Optional[BotPoller] = None

    async def start(self) -> None:
        self.queue.start()
        if self.transport is not None:
            self.queue.attach_transport(self.transport)
        self.scheduler.start()
        if self.poller is not None and config.ENABLE_BOT_POLLING:
            self.poller.start()
        logger.info(
            "Services started",
            telegram=self.transport is not None,
            polling=self.poller is not None and config.ENABLE_BOT_POLLING,
        )

    async def stop(self) -> None:
        if self.poller is not None:
            await self.poller.stop()
        self.scheduler.shutdown()
        await self.queue.stop()
        if self.transport is not None:
            await self.transport.close()
        await self.ledger.close()
        await self.db.close()
        logger.info("Services stopped")


async def build_services() -> AppServices:
    """Connect the database and construct every service from config."""
    db = Database(config.DATABASE_PATH)
    await db.connect()

    users = UserService(db)
    subscriptions = SubscriptionService(db)
    history = SentenceHistoryService(db, retention=config.HISTORY_RETENTION)

    if config.llm_configured:
        writer = SentenceWriterAgent()
    else:
        writer = None
        logger.warning("ANTHROPIC_API_KEY not set, daily lessons are skipped and first lessons use fallback sentences")

    cache = SentenceCache(writer, history)
    queue = DeliveryQueue()
    pending = PendingPaymentRegistry()
    ledger = TonLedgerClient()

    if not config.ledger_configured:
        logger.warning("TON_ADDRESS not set, payments are disabled")

    verifier = PaymentVerifier(
        subscriptions=subscriptions,
        users=users,
        pending=pending,
        ledger=ledger,
        queue=queue,
        cache=cache,
    )

    scheduler = DailyLessonScheduler(
        subscriptions=subscriptions,
        cache=cache,
        queue=queue,
        verifier=verifier,
    )

    transport = handlers = poller = None
    if config.telegram_configured:
        transport = TelegramTransport()
        handlers = BotHandlers(transport, users, subscriptions, verifier)
        poller = BotPoller(transport.bot, handlers)
    else:
        logger.warning("TELEGRAM_BOT_TOKEN not set, lessons will queue but not send")

    return AppServices(
        db=db,
        users=users,
        subscriptions=subscriptions,
        history=history,
        cache=cache,
        queue=queue,
        pending=pending,
        ledger=ledger,
        verifier=verifier,
        scheduler=scheduler,
        webhook_filter=RecentEventFilter(
            ttl_seconds=config.WEBHOOK_DEDUP_TTL_SECONDS,
            capacity=config.WEBHOOK_DEDUP_CAPACITY,
        ),
        transport=transport,
        handlers=handlers,
        poller=poller,
    )


def get_services(request: Request) -> AppServices:
    """The app's services, or 503 if startup did not complete."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service is starting or failed to start")
    return services
