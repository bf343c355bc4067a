"""
Daily Lesson Scheduler

Fires once a day at DAILY_SEND_HOUR:DAILY_SEND_MINUTE in TIMEZONE
(09:00 Asia/Bangkok by default) and fans the day's sentence out to every
subscriber:

  1. load recipients with an active, unexpired subscription
  2. fetch one sentence per difficulty tier from the cache
     (a tier that fails is skipped; the rest of the batch continues)
  3. render and enqueue one lesson per recipient whose tier has a sentence

A second interval job purges expired pending payments.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from lessonbot.config import config, DIFFICULTY_LEVELS
from lessonbot.database.subscriptions import SubscriptionService
from lessonbot.delivery.queue import DeliveryQueue
from lessonbot.lessons.cache import SentenceCache
from lessonbot.lessons.templates import render_daily_lesson
from lessonbot.models import ContentUnit
from lessonbot.utils.logging import get_logger

logger = get_logger("daily_scheduler")


@dataclass
class BatchReport:
    """Counts from one daily batch."""
    recipients: int = 0
    enqueued: int = 0
    skipped: int = 0
    enqueue_failures: int = 0
    failed_tiers: List[int] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipients": self.recipients,
            "enqueued": self.enqueued,
            "skipped": self.skipped,
            "enqueue_failures": self.enqueue_failures,
            "failed_tiers": list(self.failed_tiers),
            "error": self.error,
        }


class DailyLessonScheduler:
    """
    Cron-driven fan-out of the daily lesson.

    The verifier is optional; without one the pending-payment purge job
    is not registered.
    """

    def __init__(
        self,
        subscriptions: SubscriptionService,
        cache: SentenceCache,
        queue: DeliveryQueue,
        verifier=None,
        tiers: Optional[List[int]] = None,
        timezone: Optional[str] = None,
        send_hour: Optional[int] = None,
        send_minute: Optional[int] = None,
        purge_interval_seconds: Optional[int] = None,
    ):
        self.subscriptions = subscriptions
        self.cache = cache
        self.queue = queue
        self.verifier = verifier
        self.tiers = tiers or sorted(DIFFICULTY_LEVELS)

        self.timezone = timezone or config.TIMEZONE
        self.send_hour = config.DAILY_SEND_HOUR if send_hour is None else send_hour
        self.send_minute = config.DAILY_SEND_MINUTE if send_minute is None else send_minute
        self.purge_interval = purge_interval_seconds or config.PENDING_PURGE_INTERVAL_SECONDS

        self.scheduler = AsyncIOScheduler(timezone=self.timezone)
        self.last_report: Optional[BatchReport] = None
        self._is_running_batch = False

    async def run_daily_batch(self) -> BatchReport:
        """Fan today's lesson out to all subscribers. Never raises."""
        report = BatchReport()

        if self._is_running_batch:
            report.error = "batch already running"
            logger.warning("Daily batch skipped, previous batch still running")
            return report

        self._is_running_batch = True
        try:
            await self._run_batch(report)
        finally:
            self._is_running_batch = False

        self.last_report = report
        logger.info("Daily batch finished", **report.to_dict())
        return report

    async def _run_batch(self, report: BatchReport) -> None:
        try:
            recipients = await self.subscriptions.get_active_entitlements()
        except Exception as e:
            report.error = f"Failed to load recipients: {e}"
            logger.error("Daily batch could not load recipients", error=str(e))
            return

        report.recipients = len(recipients)
        logger.info("Daily batch started", recipients=len(recipients))

        lessons: Dict[int, str] = {}
        for tier in self.tiers:
            try:
                unit: ContentUnit = await self.cache.fetch(tier)
            except Exception as e:
                report.failed_tiers.append(tier)
                logger.error("Skipping tier, no sentence available", tier=tier, error=str(e))
                continue
            lessons[tier] = render_daily_lesson(unit)

        for recipient in recipients:
            payload = lessons.get(recipient.tier)
            if payload is None:
                report.skipped += 1
                continue
            try:
                self.queue.enqueue(recipient.recipient_id, payload)
                report.enqueued += 1
            except Exception as e:
                report.enqueue_failures += 1
                logger.error("Failed to enqueue lesson", recipient_id=recipient.recipient_id, error=str(e))

    async def purge_pending_payments(self) -> int:
        if self.verifier is None:
            return 0
        return self.verifier.purge_expired()

    def start(self):
        """Start the scheduler. Call from a running event loop."""
        self.scheduler.add_job(
            self.run_daily_batch,
            trigger=CronTrigger(
                hour=self.send_hour,
                minute=self.send_minute,
                timezone=self.timezone,
            ),
            id="daily_lesson_batch",
            name="Send the daily Thai lesson",
            replace_existing=True,
            max_instances=1,
        )

        if self.verifier is not None:
            self.scheduler.add_job(
                self.purge_pending_payments,
                trigger=IntervalTrigger(seconds=self.purge_interval),
                id="pending_payment_purge",
                name="Purge expired pending payments",
                replace_existing=True,
                max_instances=1,
            )

        self.scheduler.start()
        logger.info(
            "Daily lesson scheduler started",
            send_time=f"{self.send_hour:02d}:{self.send_minute:02d}",
            timezone=self.timezone,
        )

    def shutdown(self):
        """Shutdown the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Daily lesson scheduler stopped")

    def next_run_time(self) -> Optional[str]:
        job = self.scheduler.get_job("daily_lesson_batch")
        if job is None or job.next_run_time is None:
            return None
        return job.next_run_time.isoformat()
