"""
Lesson bot database layer.

SQLite (aiosqlite) connection holder plus the service classes used by the
scheduler, the payment verifier and the bot menu.
"""

from .client import Database, DatabaseNotConnectedError
from .users import UserService, UserNotFoundError, InvalidLevelError
from .subscriptions import SubscriptionService, NoActiveEntitlement
from .history import SentenceHistoryService

__all__ = [
    "Database",
    "DatabaseNotConnectedError",
    "UserService",
    "UserNotFoundError",
    "InvalidLevelError",
    "SubscriptionService",
    "NoActiveEntitlement",
    "SentenceHistoryService",
]
