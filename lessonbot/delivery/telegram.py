"""
Telegram Bot API transport.

Wraps an aiogram Bot for the calls the bot makes outside the dispatcher:
sendMessage and answerCallbackQuery. aiogram API errors are re-raised as
TransportError so the queue and handlers only deal with one failure type.
"""

from typing import Optional

from aiogram import Bot
from aiogram.client.session.aiohttp import AiohttpSession
from aiogram.client.telegram import TelegramAPIServer
from aiogram.exceptions import (
    TelegramAPIError,
    TelegramBadRequest,
    TelegramForbiddenError,
    TelegramNotFound,
    TelegramRetryAfter,
    TelegramUnauthorizedError,
)
from aiogram.types import InlineKeyboardMarkup, Message

from lessonbot.config import config


_STATUS_CODES = (
    (TelegramBadRequest, 400),
    (TelegramUnauthorizedError, 401),
    (TelegramForbiddenError, 403),
    (TelegramNotFound, 404),
    (TelegramRetryAfter, 429),
)


class TransportError(Exception):
    """Raised when a Bot API call fails at the network or API level."""

    def __init__(self, method: str, message: str, status_code: Optional[int] = None):
        self.method = method
        self.status_code = status_code
        super().__init__(f"{method}: {message}")

    @classmethod
    def from_api_error(cls, method: str, error: TelegramAPIError) -> "TransportError":
        status_code = next((code for kind, code in _STATUS_CODES if isinstance(error, kind)), None)
        return cls(method, error.message, status_code)


def build_bot(
    token: Optional[str] = None,
    api_url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Bot:
    token = token or config.TELEGRAM_BOT_TOKEN
    if not token:
        raise ValueError("TELEGRAM_BOT_TOKEN is required")

    session = AiohttpSession(
        api=TelegramAPIServer.from_base(api_url or config.TELEGRAM_API_URL),
        timeout=timeout or config.TRANSPORT_TIMEOUT_SECONDS,
    )
    return Bot(token=token, session=session)


class TelegramTransport:
    """Sends replies and lessons through an aiogram Bot."""

    def __init__(self, bot: Optional[Bot] = None, token: Optional[str] = None):
        self.bot = bot or build_bot(token)

    async def send(self, recipient_id: str, payload: str) -> bool:
        """Queue transport interface: send plain text to a chat."""
        await self.send_message(recipient_id, payload)
        return True

    async def send_message(
        self,
        chat_id: str,
        text: str,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
    ) -> Message:
        try:
            return await self.bot.send_message(chat_id=chat_id, text=text, reply_markup=reply_markup)
        except TelegramAPIError as e:
            raise TransportError.from_api_error("sendMessage", e) from e

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> bool:
        try:
            return await self.bot.answer_callback_query(callback_query_id=callback_query_id, text=text)
        except TelegramAPIError as e:
            raise TransportError.from_api_error("answerCallbackQuery", e) from e

    async def close(self) -> None:
        await self.bot.session.close()
