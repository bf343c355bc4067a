"""
Telegram conversational layer: menu callbacks, handlers and the long-poller.
"""

from lessonbot.bot.actions import MenuAction, MenuCallback, parse_callback_data
from lessonbot.bot.handlers import BotHandlers
from lessonbot.bot.poller import BotPoller

__all__ = [
    "MenuAction",
    "MenuCallback",
    "parse_callback_data",
    "BotHandlers",
    "BotPoller",
]
