"""
Inline-keyboard callbacks.

Every button carries a callback_data string. parse_callback_data turns it
into a MenuCallback with a MenuAction from a closed set; unknown strings
parse to None and are ignored by the handlers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from lessonbot.config import DIFFICULTY_LEVELS


class MenuAction(str, Enum):
    HELP = "help"
    STATUS = "status"
    SUBSCRIBE = "subscribe"
    CHECK_PAYMENT = "check_payment"
    SETTINGS = "settings"
    SET_LEVEL = "level"
    UNSUBSCRIBE = "unsubscribe"
    MAIN_MENU = "back_to_main"


@dataclass(frozen=True)
class MenuCallback:
    action: MenuAction
    level: Optional[int] = None

    @property
    def data(self) -> str:
        """The callback_data string for this callback."""
        if self.action == MenuAction.SET_LEVEL:
            return f"{MenuAction.SET_LEVEL.value}_{self.level}"
        return self.action.value


_LEVEL_PREFIX = f"{MenuAction.SET_LEVEL.value}_"


def parse_callback_data(data: Optional[str]) -> Optional[MenuCallback]:
    if not data:
        return None

    if data.startswith(_LEVEL_PREFIX):
        try:
            level = int(data[len(_LEVEL_PREFIX):])
        except ValueError:
            return None
        if level not in DIFFICULTY_LEVELS:
            return None
        return MenuCallback(MenuAction.SET_LEVEL, level)

    if data == MenuAction.SET_LEVEL.value:
        return None

    try:
        return MenuCallback(MenuAction(data))
    except ValueError:
        return None


# =============================================================================
# Keyboards
# =============================================================================

def _button(text: str, callback: MenuCallback) -> InlineKeyboardButton:
    return InlineKeyboardButton(text=text, callback_data=callback.data)


def _keyboard(rows: List[List[InlineKeyboardButton]]) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=rows)


MAIN_MENU_BUTTON = _button("🏠 Main Menu", MenuCallback(MenuAction.MAIN_MENU))


def main_menu_keyboard() -> InlineKeyboardMarkup:
    return _keyboard([
        [
            _button("📚 Help", MenuCallback(MenuAction.HELP)),
            _button("📊 Status", MenuCallback(MenuAction.STATUS)),
        ],
        [
            _button("💳 Subscribe", MenuCallback(MenuAction.SUBSCRIBE)),
            _button("⚙️ Difficulty", MenuCallback(MenuAction.SETTINGS)),
        ],
    ])


def back_keyboard() -> InlineKeyboardMarkup:
    return _keyboard([[MAIN_MENU_BUTTON]])


def status_keyboard(subscribed: bool) -> InlineKeyboardMarkup:
    if subscribed:
        return _keyboard([
            [_button("🚫 Unsubscribe", MenuCallback(MenuAction.UNSUBSCRIBE))],
            [MAIN_MENU_BUTTON],
        ])
    return back_keyboard()


def levels_keyboard() -> InlineKeyboardMarkup:
    buttons = [
        _button(f"Level {level}", MenuCallback(MenuAction.SET_LEVEL, level))
        for level in sorted(DIFFICULTY_LEVELS)
    ]
    return _keyboard([buttons[:3], buttons[3:], [MAIN_MENU_BUTTON]])


def payment_keyboard() -> InlineKeyboardMarkup:
    # Bot API URL buttons only accept http(s) and tg:// links, so the
    # ton:// link goes in the message text instead.
    return _keyboard([
        [_button("✅ I've paid", MenuCallback(MenuAction.CHECK_PAYMENT))],
        [MAIN_MENU_BUTTON],
    ])


def check_again_keyboard() -> InlineKeyboardMarkup:
    return _keyboard([
        [_button("🔄 Check again", MenuCallback(MenuAction.CHECK_PAYMENT))],
        [MAIN_MENU_BUTTON],
    ])


def resubscribe_keyboard() -> InlineKeyboardMarkup:
    return _keyboard([
        [_button("💎 Subscribe Again", MenuCallback(MenuAction.SUBSCRIBE))],
        [MAIN_MENU_BUTTON],
    ])
