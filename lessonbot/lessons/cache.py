"""
Sentence Cache

Holds at most one sentence per difficulty tier per day. The "day" starts at
CACHE_RESET_HOUR local time, so everything sent at 09:00 comes from the same
period. On a miss the cache asks the writer agent for a new sentence,
validates it, rejects repeats of recent history and records the accepted
sentence.
"""

import asyncio
import re
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from lessonbot.agents.sentence_writer import SentenceValidationError, parse_sentence_response
from lessonbot.config import config
from lessonbot.database.history import SentenceHistoryService
from lessonbot.models import ContentUnit, utcnow
from lessonbot.utils.logging import lesson_logger as logger


class GenerationError(Exception):
    """Raised when no valid sentence could be produced for a tier."""

    def __init__(self, tier: int, message: str):
        self.tier = tier
        super().__init__(f"Tier {tier}: {message}")


_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Collapse whitespace and case-fold for duplicate comparison."""
    return _WHITESPACE_RE.sub(" ", text).strip().casefold()


class SentenceCache:
    """
    Per-period sentence cache with duplicate suppression.

    The writer must provide `async generate(tier, exclusions) -> str`.
    With no writer every miss raises GenerationError.
    Two concurrent misses for the same tier may both generate; the later
    result wins.
    """

    def __init__(
        self,
        writer,
        history: SentenceHistoryService,
        timezone: Optional[str] = None,
        reset_hour: Optional[int] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        duplicate_retry_limit: Optional[int] = None,
        prompt_size: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.writer = writer
        self.history = history
        self.tz = ZoneInfo(timezone or config.TIMEZONE)
        self.reset_hour = config.CACHE_RESET_HOUR if reset_hour is None else reset_hour
        self.max_attempts = max_attempts or config.GENERATION_MAX_ATTEMPTS
        self.base_delay = config.GENERATION_BASE_DELAY_SECONDS if base_delay is None else base_delay
        self.duplicate_retry_limit = (
            config.DUPLICATE_RETRY_LIMIT if duplicate_retry_limit is None else duplicate_retry_limit
        )
        self.prompt_size = config.HISTORY_PROMPT_SIZE if prompt_size is None else prompt_size
        self._clock = clock
        self._sleep = sleep

        self._entries: Dict[int, ContentUnit] = {}
        self._period_key: Optional[date] = None

    def period_key(self, now: Optional[datetime] = None) -> date:
        """Local date of the cache period containing `now`."""
        now = now or self._clock()
        local = now.astimezone(self.tz)
        return (local - timedelta(hours=self.reset_hour)).date()

    @property
    def cached_tiers(self) -> List[int]:
        return sorted(self._entries)

    def reset(self) -> None:
        """Drop every cached sentence at once."""
        self._entries = {}
        self._period_key = None

    def _roll_period(self) -> None:
        current = self.period_key()
        if self._period_key != current:
            if self._entries:
                logger.info(
                    "Sentence cache period rolled over",
                    previous=str(self._period_key),
                    current=str(current),
                    dropped=len(self._entries),
                )
            self._entries = {}
            self._period_key = current

    async def fetch(self, tier: int) -> ContentUnit:
        """
        Return today's sentence for a tier, generating it on a miss.

        Raises:
            GenerationError: every attempt failed validation or the writer call
        """
        self._roll_period()

        cached = self._entries.get(tier)
        if cached is not None:
            return cached

        period = self._period_key
        try:
            recent = await self.history.recent_texts(tier)
        except Exception as e:
            logger.warning("Sentence history unavailable, generating without exclusions", tier=tier, error=str(e))
            recent = []
        recent_normalized = {normalize_text(t) for t in recent}
        exclusions = recent[:self.prompt_size]

        unit = await self._generate_valid(tier, exclusions)
        duplicates = 0
        while normalize_text(unit.text) in recent_normalized:
            if duplicates >= self.duplicate_retry_limit:
                logger.warning(
                    "Accepting sentence that repeats recent history",
                    tier=tier,
                    regenerations=duplicates,
                )
                break
            duplicates += 1
            logger.info("Generated sentence repeats recent history, regenerating", tier=tier, attempt=duplicates)
            unit = await self._generate_valid(tier, exclusions)

        try:
            await self.history.append(tier, unit)
        except Exception as e:
            logger.error("Failed to record sentence history", tier=tier, error=str(e))

        # A rollover during generation means this sentence belongs to the old period
        if self._period_key == period:
            self._entries[tier] = unit

        logger.info("Sentence cached", tier=tier, text=unit.text)
        return unit

    async def _generate_valid(self, tier: int, exclusions: List[str]) -> ContentUnit:
        if self.writer is None:
            raise GenerationError(tier, "no sentence writer configured")

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._generate_once(tier, exclusions, attempt.retry_state.attempt_number)
        except Exception as e:
            logger.error("Sentence generation exhausted retries", tier=tier, attempts=self.max_attempts)
            raise GenerationError(tier, f"no valid sentence after {self.max_attempts} attempts: {e}") from e

    async def _generate_once(self, tier: int, exclusions: List[str], attempt: int) -> ContentUnit:
        try:
            raw = await self.writer.generate(tier, exclusions)
            return parse_sentence_response(raw)
        except SentenceValidationError as e:
            logger.warning("Generated sentence failed validation", tier=tier, attempt=attempt, error=str(e))
            raise
        except Exception as e:
            logger.warning("Sentence generation call failed", tier=tier, attempt=attempt, error=str(e))
            raise
