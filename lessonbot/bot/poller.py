"""
Telegram long-poller.

Runs an aiogram Dispatcher in long-polling mode with the BotHandlers router.
The dispatcher handles each update in its own task, so a slow payment check
does not hold up other users. Update ids pass through a RecentEventFilter
first; Telegram can redeliver an update after a restart or a dropped
connection.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from aiogram import BaseMiddleware, Bot, Dispatcher
from aiogram.types import Update

from lessonbot.bot.handlers import BotHandlers
from lessonbot.config import config
from lessonbot.utils.dedup import RecentEventFilter
from lessonbot.utils.logging import bot_logger as logger


ALLOWED_UPDATES = ["message", "callback_query"]


class RedeliveryMiddleware(BaseMiddleware):
    """Outer update middleware that drops update ids already handled."""

    def __init__(self, seen_updates: RecentEventFilter):
        self.seen_updates = seen_updates

    async def __call__(
        self,
        handler: Callable[[Update, Dict[str, Any]], Awaitable[Any]],
        event: Update,
        data: Dict[str, Any],
    ) -> Any:
        if self.seen_updates.check_and_add(event.update_id):
            logger.debug("Skipping redelivered update", update_id=event.update_id)
            return None
        try:
            return await handler(event, data)
        except Exception as e:
            logger.error("Update handling failed", update_id=event.update_id, error=str(e))
            return None


class BotPoller:

    def __init__(
        self,
        bot: Bot,
        handlers: BotHandlers,
        poll_timeout: Optional[int] = None,
        seen_updates: Optional[RecentEventFilter] = None,
    ):
        self.bot = bot
        self.handlers = handlers
        self.poll_timeout = config.BOT_POLL_TIMEOUT_SECONDS if poll_timeout is None else poll_timeout
        self.seen_updates = seen_updates or RecentEventFilter(
            ttl_seconds=config.WEBHOOK_DEDUP_TTL_SECONDS,
            capacity=config.WEBHOOK_DEDUP_CAPACITY,
        )

        self.dispatcher = Dispatcher()
        self.dispatcher.update.outer_middleware(RedeliveryMiddleware(self.seen_updates))
        self.dispatcher.include_router(handlers.build_router())

        self._task: Optional[asyncio.Task] = None

    async def run(self) -> None:
        logger.info("Bot polling started", poll_timeout=self.poll_timeout)
        await self.dispatcher.start_polling(
            self.bot,
            polling_timeout=self.poll_timeout,
            allowed_updates=ALLOWED_UPDATES,
            handle_signals=False,
            close_bot_session=False,
        )

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self.run(), name="bot-poller")

    async def stop(self) -> None:
        if self._task is None:
            return
        try:
            await self.dispatcher.stop_polling()
        except RuntimeError:
            # Polling had not got going yet
            self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Bot polling stopped")
