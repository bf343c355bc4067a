"""
Bot Handlers

Turns Telegram updates into replies. Interactive replies go straight to
the transport; only lessons travel through the delivery queue.

Each MenuAction has exactly one handler in BotHandlers.dispatch.
"""

import re
from datetime import datetime
from typing import Awaitable, Callable, Dict

from aiogram import Router
from aiogram.types import CallbackQuery, Message, User

from lessonbot.bot.actions import (
    MenuAction,
    MenuCallback,
    parse_callback_data,
    main_menu_keyboard,
    back_keyboard,
    status_keyboard,
    levels_keyboard,
    payment_keyboard,
    check_again_keyboard,
    resubscribe_keyboard,
)
from lessonbot.config import config, DIFFICULTY_LEVELS
from lessonbot.database.subscriptions import SubscriptionService, NoActiveEntitlement
from lessonbot.database.users import UserService, UserNotFoundError
from lessonbot.delivery.telegram import TransportError
from lessonbot.lessons.templates import level_label, render_payment_request, send_time_label
from lessonbot.models import utcnow
from lessonbot.payments.verifier import (
    PaymentVerifier,
    PaymentStartStatus,
    PaymentCheckStatus,
    NoPendingPayment,
    VerificationUnavailable,
    ActivationError,
    PaymentsNotConfigured,
)
from lessonbot.utils.logging import bot_logger as logger


THAI_SCRIPT_RE = re.compile(r"[\u0E00-\u0E7F]")

ERROR_REPLY = "❌ Sorry, something went wrong. Please try again."

WELCOME_TEXT = (
    "🇹🇭 Welcome to Thai Learning Bot!\n\n"
    "📖 Get daily Thai sentences and improve your language skills!\n"
    "💰 Subscribe with TON cryptocurrency for {days} days of lessons.\n\n"
    "🎯 Choose your difficulty level and start learning!"
)

HELP_TEXT = (
    "🇹🇭 Thai Learning Bot Help\n\n"
    "📖 How it works:\n"
    "• Get a daily Thai sentence at {send_time}\n"
    "• Practice writing it back in Thai\n"
    "• Study the word-by-word breakdown\n\n"
    "💰 Subscription: {amount:g} TON for {days} days\n"
    "🎯 Difficulty: {levels} levels (Beginner to Expert)\n\n"
    "🎮 Use the buttons below to navigate!"
)


def has_thai_script(text: str) -> bool:
    return bool(THAI_SCRIPT_RE.search(text))


def _display_name(sender: User) -> str:
    return sender.first_name or sender.username or "User"


Handler = Callable[[str, str, MenuCallback], Awaitable[None]]


class BotHandlers:
    """Menu and command handlers for the Telegram bot."""

    def __init__(
        self,
        transport,
        users: UserService,
        subscriptions: SubscriptionService,
        verifier: PaymentVerifier,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.transport = transport
        self.users = users
        self.subscriptions = subscriptions
        self.verifier = verifier
        self._clock = clock

        self.dispatch: Dict[MenuAction, Handler] = {
            MenuAction.HELP: self.show_help,
            MenuAction.STATUS: self.show_status,
            MenuAction.SUBSCRIBE: self.subscribe,
            MenuAction.CHECK_PAYMENT: self.check_payment,
            MenuAction.SETTINGS: self.show_settings,
            MenuAction.SET_LEVEL: self.set_level,
            MenuAction.UNSUBSCRIBE: self.unsubscribe,
            MenuAction.MAIN_MENU: self.show_main_menu,
        }

    # =========================================================================
    # Update routing
    # =========================================================================

    def build_router(self) -> Router:
        router = Router(name="lesson_menu")
        router.message.register(self.handle_message)
        router.callback_query.register(self.handle_callback_query)
        return router

    async def handle_message(self, message: Message) -> None:
        text = message.text
        sender = message.from_user
        if not text or sender is None or sender.is_bot:
            return

        chat_id = str(message.chat.id)
        user_id = str(sender.id)

        if text.startswith("/"):
            command = text.split()[0].split("@")[0].lower()
            if command == "/start":
                await self._guarded(chat_id, self._start(chat_id, user_id, _display_name(sender)))
            elif command == "/help":
                await self._guarded(chat_id, self.show_help(chat_id, user_id, MenuCallback(MenuAction.HELP)))
            return

        # Learners practise by typing the sentence back; no reply to that
        if has_thai_script(text):
            return

        await self._guarded(chat_id, self._start(chat_id, user_id, _display_name(sender)))

    async def handle_callback_query(self, callback_query: CallbackQuery) -> None:
        user_id = str(callback_query.from_user.id)
        chat_id = str(callback_query.message.chat.id) if callback_query.message else user_id
        data = callback_query.data

        try:
            await self.transport.answer_callback_query(callback_query.id)
        except TransportError as e:
            logger.warning("Could not answer callback query", user_id=user_id, error=str(e))

        callback = parse_callback_data(data)
        if callback is None:
            logger.debug("Ignoring unknown callback", user_id=user_id, data=data)
            return

        logger.info("Button clicked", user_id=user_id, action=callback.action.value, level=callback.level)
        handler = self.dispatch[callback.action]
        await self._guarded(chat_id, handler(chat_id, user_id, callback))

    async def _guarded(self, chat_id: str, handler_call: Awaitable[None]) -> None:
        try:
            await handler_call
        except Exception as e:
            logger.error("Handler failed", chat_id=chat_id, error=str(e))
            try:
                await self.transport.send_message(chat_id, ERROR_REPLY)
            except TransportError as send_error:
                logger.error("Could not send error reply", chat_id=chat_id, error=str(send_error))

    # =========================================================================
    # Menu handlers
    # =========================================================================

    async def _start(self, chat_id: str, user_id: str, display_name: str) -> None:
        await self.users.create_user(user_id, display_name)
        await self.transport.send_message(
            chat_id,
            WELCOME_TEXT.format(days=config.SUBSCRIPTION_DAYS),
            reply_markup=main_menu_keyboard(),
        )

    async def show_main_menu(self, chat_id: str, user_id: str, callback: MenuCallback) -> None:
        await self._start(chat_id, user_id, "User")

    async def show_help(self, chat_id: str, user_id: str, callback: MenuCallback) -> None:
        text = HELP_TEXT.format(
            send_time=send_time_label(),
            amount=config.TON_AMOUNT,
            days=config.SUBSCRIPTION_DAYS,
            levels=len(DIFFICULTY_LEVELS),
        )
        await self.transport.send_message(chat_id, text, reply_markup=back_keyboard())

    async def show_status(self, chat_id: str, user_id: str, callback: MenuCallback) -> None:
        user = await self.users.get_user(user_id)
        if user is None:
            await self.transport.send_message(chat_id, "❌ User not found. Please use /start first.")
            return

        now = self._clock()
        entitlement = await self.subscriptions.get_entitlement(user_id, now=now)

        lines = ["📊 Subscription Status", ""]
        if entitlement:
            lines.append(f"✅ Active ({entitlement.days_left(now)} days left)")
        else:
            lines.append("❌ No active subscription")
        level = user["difficulty_level"]
        lines.append(f"Current Level: {level} ({DIFFICULTY_LEVELS.get(level, {}).get('name', 'Unknown')})")
        lines.append("")
        lines.append(f"Your daily lessons arrive at {send_time_label()}.")

        await self.transport.send_message(
            chat_id,
            "\n".join(lines),
            reply_markup=status_keyboard(entitlement is not None),
        )

    async def subscribe(self, chat_id: str, user_id: str, callback: MenuCallback) -> None:
        try:
            start = await self.verifier.start_payment(user_id)
        except PaymentsNotConfigured:
            await self.transport.send_message(
                chat_id,
                "⚠️ Payments are not available right now. Please try again later.",
                reply_markup=back_keyboard(),
            )
            return

        if start.status == PaymentStartStatus.ALREADY_SUBSCRIBED:
            days_left = start.entitlement.days_left(self._clock()) if start.entitlement else 0
            await self.transport.send_message(
                chat_id,
                f"✅ You are already subscribed ({days_left} days left).",
                reply_markup=status_keyboard(True),
            )
            return

        await self.transport.send_message(
            chat_id,
            render_payment_request(start.reference, start.payment_link, start.amount),
            reply_markup=payment_keyboard(),
        )

    async def check_payment(self, chat_id: str, user_id: str, callback: MenuCallback) -> None:
        await self.transport.send_message(chat_id, "🔍 Checking the TON network for your payment...")

        try:
            result = await self.verifier.poll_payment(user_id)
        except NoPendingPayment:
            await self.transport.send_message(
                chat_id,
                "❌ No pending payment found. Tap Subscribe to start a new payment.",
                reply_markup=resubscribe_keyboard(),
            )
            return
        except VerificationUnavailable:
            await self.transport.send_message(
                chat_id,
                "⚠️ The TON network can't be reached right now. Please check again in a moment.",
                reply_markup=check_again_keyboard(),
            )
            return
        except ActivationError:
            await self.transport.send_message(
                chat_id,
                "⚠️ Your payment was received but your subscription could not be activated. "
                "It will be fixed manually; you don't need to pay again.",
                reply_markup=back_keyboard(),
            )
            return

        if result.status == PaymentCheckStatus.SUCCESS:
            # The welcome lesson itself travels through the delivery queue
            await self.transport.send_message(chat_id, "✅ Payment confirmed! Your first lesson is on its way.")
        elif result.status == PaymentCheckStatus.ALREADY_RESOLVED:
            await self.transport.send_message(
                chat_id,
                "✅ Your payment is already confirmed. Enjoy your lessons!",
                reply_markup=back_keyboard(),
            )
        else:
            await self.transport.send_message(
                chat_id,
                "⏳ Payment not found yet. Transfers can take a minute to appear, please try again shortly.",
                reply_markup=check_again_keyboard(),
            )

    async def show_settings(self, chat_id: str, user_id: str, callback: MenuCallback) -> None:
        user = await self.users.get_user(user_id)
        if user is None:
            await self.transport.send_message(chat_id, "❌ User not found. Please use /start first.")
            return

        level = user["difficulty_level"]
        lines = [
            "⚙️ Settings",
            "",
            f"Current Difficulty Level: {level} ({DIFFICULTY_LEVELS.get(level, {}).get('name', 'Unknown')})",
            "",
            "Choose your difficulty level:",
        ]
        lines.extend(f"• Level {tier}: {level_label(tier)}" for tier in sorted(DIFFICULTY_LEVELS))

        await self.transport.send_message(chat_id, "\n".join(lines), reply_markup=levels_keyboard())

    async def set_level(self, chat_id: str, user_id: str, callback: MenuCallback) -> None:
        try:
            await self.users.update_level(user_id, callback.level)
        except UserNotFoundError:
            await self.users.create_user(user_id)
            await self.users.update_level(user_id, callback.level)

        name = DIFFICULTY_LEVELS[callback.level]["name"]
        await self.transport.send_message(
            chat_id,
            f"✅ Difficulty updated to Level {callback.level}!\n\nYour daily lessons will now be at {name} level.",
            reply_markup=back_keyboard(),
        )

    async def unsubscribe(self, chat_id: str, user_id: str, callback: MenuCallback) -> None:
        try:
            await self.verifier.cancel_entitlement(user_id)
        except NoActiveEntitlement:
            await self.transport.send_message(
                chat_id,
                "❌ You don't have an active subscription to cancel.",
                reply_markup=back_keyboard(),
            )
            return

        await self.transport.send_message(
            chat_id,
            "🚫 Subscription Cancelled\n\n"
            "Your subscription has been cancelled. You will no longer receive daily lessons.\n\n"
            "You can resubscribe anytime using the Subscribe button.",
            reply_markup=resubscribe_keyboard(),
        )
