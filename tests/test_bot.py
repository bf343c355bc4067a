"""
Tests for the Telegram bot menu.

Coverage:
  Callbacks:  every action has a handler, parsing of callback_data
  Messages:   /start, Thai practice text ignored, bots ignored
  Menu:       subscribe, check payment, status, level, unsubscribe
  Errors:     a failing handler replies with the generic error text
  Poller:     dispatcher routing and redelivered update suppression
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.types import CallbackQuery, Chat, Message, Update, User

from lessonbot.bot.actions import (
    MenuAction,
    MenuCallback,
    parse_callback_data,
    main_menu_keyboard,
    status_keyboard,
    levels_keyboard,
    payment_keyboard,
    check_again_keyboard,
    resubscribe_keyboard,
)
from lessonbot.bot.handlers import BotHandlers, ERROR_REPLY, has_thai_script
from lessonbot.bot.poller import BotPoller, RedeliveryMiddleware
from lessonbot.config import config
from lessonbot.delivery.telegram import build_bot
from lessonbot.utils.dedup import RecentEventFilter

from conftest import DEFAULT_NOW, FakeMonotonic, ledger_tx


def make_message(text, chat_id=42, is_bot=False):
    return Message(
        message_id=1,
        date=DEFAULT_NOW,
        chat=Chat(id=chat_id, type="private"),
        from_user=User(id=chat_id, is_bot=is_bot, first_name="Somchai"),
        text=text,
    )


def make_callback(data, chat_id=42, query_id="cb-2"):
    return CallbackQuery(
        id=query_id,
        from_user=User(id=chat_id, is_bot=False, first_name="Somchai"),
        chat_instance="chat-instance",
        message=make_message("menu", chat_id=chat_id),
        data=data,
    )


def button_data(keyboard):
    return [button.callback_data for row in keyboard.inline_keyboard for button in row]


@pytest.fixture
def handlers(transport, users, subscriptions, verifier, clock):
    return BotHandlers(transport, users, subscriptions, verifier, clock=clock)


class TestCallbacks:

    def test_every_action_has_a_handler(self):
        handlers = BotHandlers(MagicMock(), MagicMock(), MagicMock(), MagicMock())

        assert set(handlers.dispatch) == set(MenuAction)

    @pytest.mark.parametrize("data,expected", [
        ("help", MenuCallback(MenuAction.HELP)),
        ("check_payment", MenuCallback(MenuAction.CHECK_PAYMENT)),
        ("back_to_main", MenuCallback(MenuAction.MAIN_MENU)),
        ("level_3", MenuCallback(MenuAction.SET_LEVEL, 3)),
        ("level", None),
        ("level_9", None),
        ("level_x", None),
        ("transfer_everything", None),
        ("", None),
        (None, None),
    ])
    def test_parse_callback_data(self, data, expected):
        assert parse_callback_data(data) == expected

    @pytest.mark.parametrize("keyboard", [
        main_menu_keyboard(),
        status_keyboard(True),
        levels_keyboard(),
        payment_keyboard(),
        check_again_keyboard(),
        resubscribe_keyboard(),
    ])
    def test_every_button_parses(self, keyboard):
        for data in button_data(keyboard):
            assert parse_callback_data(data) is not None

    def test_thai_script_detection(self):
        assert has_thai_script("ฉันชอบกินข้าว")
        assert has_thai_script("I said สวัสดี")
        assert not has_thai_script("hello")


class TestMessages:

    @pytest.mark.asyncio
    async def test_start_creates_user_and_shows_menu(self, handlers, transport, users):
        await handlers.handle_message(make_message("/start"))

        assert (await users.get_user("42"))["display_name"] == "Somchai"
        reply = transport.messages[-1]
        assert reply["chat_id"] == "42"
        assert reply["text"].startswith("🇹🇭 Welcome to Thai Learning Bot!")
        assert reply["reply_markup"] == main_menu_keyboard()

    @pytest.mark.asyncio
    async def test_thai_practice_text_gets_no_reply(self, handlers, transport):
        await handlers.handle_message(make_message("ฉันชอบกินข้าว"))

        assert transport.messages == []

    @pytest.mark.asyncio
    async def test_other_text_shows_welcome(self, handlers, transport):
        await handlers.handle_message(make_message("hi"))

        assert transport.messages[-1]["reply_markup"] == main_menu_keyboard()

    @pytest.mark.asyncio
    async def test_bots_and_unknown_commands_are_ignored(self, handlers, transport):
        await handlers.handle_message(make_message("/start", is_bot=True))
        await handlers.handle_message(make_message("/unknown"))

        assert transport.messages == []


class TestMenu:

    @pytest.mark.asyncio
    async def test_unknown_callback_is_answered_but_ignored(self, handlers, transport):
        await handlers.handle_callback_query(make_callback("transfer_everything"))

        assert transport.answered == ["cb-2"]
        assert transport.messages == []

    @pytest.mark.asyncio
    async def test_subscribe_sends_payment_request(self, handlers, transport, pending):
        await handlers.handle_callback_query(make_callback("subscribe"))

        reference = pending.get("42").reference
        reply = transport.messages[-1]
        assert reference in reply["text"]
        assert "ton://transfer/EQreceiver" in reply["text"]
        assert reply["reply_markup"] == payment_keyboard()

    @pytest.mark.asyncio
    async def test_check_payment_confirms_and_queues_lesson(self, handlers, transport, pending, ledger, queue):
        await handlers.handle_callback_query(make_callback("subscribe"))
        ledger.transactions = [ledger_tx(pending.get("42").reference)]

        await handlers.handle_callback_query(make_callback("check_payment", query_id="cb-3"))

        texts = [m["text"] for m in transport.messages]
        assert texts[-2].startswith("🔍 Checking")
        assert texts[-1].startswith("✅ Payment confirmed!")
        assert len(queue) == 1

    @pytest.mark.asyncio
    async def test_check_payment_without_pending(self, handlers, transport):
        await handlers.handle_callback_query(make_callback("check_payment"))

        reply = transport.messages[-1]
        assert "No pending payment" in reply["text"]
        assert reply["reply_markup"] == resubscribe_keyboard()

    @pytest.mark.asyncio
    async def test_check_payment_when_ledger_down(self, handlers, transport, ledger):
        await handlers.handle_callback_query(make_callback("subscribe"))
        ledger.unavailable = True

        await handlers.handle_callback_query(make_callback("check_payment", query_id="cb-3"))

        assert transport.messages[-1]["reply_markup"] == check_again_keyboard()

    @pytest.mark.asyncio
    async def test_status_shows_days_left(self, handlers, transport, users, subscriptions, clock):
        await users.create_user("42")
        await subscriptions.create_entitlement("42", "ref-1", 30, now=clock())

        await handlers.handle_callback_query(make_callback("status"))

        reply = transport.messages[-1]
        assert "✅ Active (30 days left)" in reply["text"]
        assert reply["reply_markup"] == status_keyboard(True)

    @pytest.mark.asyncio
    async def test_status_for_unknown_user(self, handlers, transport):
        await handlers.handle_callback_query(make_callback("status"))

        assert "User not found" in transport.messages[-1]["text"]

    @pytest.mark.asyncio
    async def test_set_level_creates_missing_user(self, handlers, transport, users):
        await handlers.handle_callback_query(make_callback("level_4"))

        assert await users.get_level("42") == 4
        assert transport.messages[-1]["text"].startswith("✅ Difficulty updated to Level 4!")

    @pytest.mark.asyncio
    async def test_unsubscribe(self, handlers, transport, subscriptions, clock):
        await subscriptions.create_entitlement("42", "ref-1", 30, now=clock())

        await handlers.handle_callback_query(make_callback("unsubscribe"))

        assert transport.messages[-1]["text"].startswith("🚫 Subscription Cancelled")
        assert await subscriptions.get_entitlement("42", now=clock()) is None

    @pytest.mark.asyncio
    async def test_unsubscribe_without_subscription(self, handlers, transport):
        await handlers.handle_callback_query(make_callback("unsubscribe"))

        assert "don't have an active subscription" in transport.messages[-1]["text"]

    @pytest.mark.asyncio
    async def test_handler_failure_sends_error_reply(self, handlers, transport):
        handlers.verifier = MagicMock()
        handlers.verifier.start_payment = AsyncMock(side_effect=RuntimeError("database is locked"))

        await handlers.handle_callback_query(make_callback("subscribe"))

        assert transport.messages[-1]["text"] == ERROR_REPLY

    @pytest.mark.asyncio
    async def test_help_shows_configured_send_time_and_zone(self, handlers, transport, monkeypatch):
        monkeypatch.setattr(config, "DAILY_SEND_HOUR", 21)
        monkeypatch.setattr(config, "DAILY_SEND_MINUTE", 5)

        await handlers.handle_message(make_message("/help"))

        text = transport.messages[-1]["text"]
        assert f"21:05 ({config.TIMEZONE})" in text
        assert "AM" not in text


class TestPoller:

    @pytest.fixture
    def poller(self, handlers):
        return BotPoller(
            build_bot(token="123456:TEST"),
            handlers,
            poll_timeout=0,
            seen_updates=RecentEventFilter(clock=FakeMonotonic()),
        )

    @pytest.mark.asyncio
    async def test_updates_are_routed_to_handlers(self, poller, transport):
        try:
            await poller.dispatcher.feed_update(poller.bot, Update(update_id=10, message=make_message("/start")))
            await poller.dispatcher.feed_update(
                poller.bot,
                Update(update_id=11, callback_query=make_callback("help", query_id="cb-11")),
            )
        finally:
            await poller.bot.session.close()

        assert transport.messages[0]["reply_markup"] == main_menu_keyboard()
        assert transport.messages[1]["text"].startswith("🇹🇭 Thai Learning Bot Help")
        assert transport.answered == ["cb-11"]

    @pytest.mark.asyncio
    async def test_redelivered_update_is_skipped(self, poller, transport):
        update = Update(update_id=12, message=make_message("hi"))
        try:
            await poller.dispatcher.feed_update(poller.bot, update)
            await poller.dispatcher.feed_update(poller.bot, update)
        finally:
            await poller.bot.session.close()

        assert len(transport.messages) == 1

    @pytest.mark.asyncio
    async def test_middleware_contains_handler_errors(self):
        middleware = RedeliveryMiddleware(RecentEventFilter(clock=FakeMonotonic()))
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        second = AsyncMock()

        assert await middleware(failing, Update(update_id=5), {}) is None
        await middleware(second, Update(update_id=5), {})

        failing.assert_awaited_once()
        second.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stop_before_start_is_a_no_op(self, poller):
        await poller.stop()

        assert poller._task is None
