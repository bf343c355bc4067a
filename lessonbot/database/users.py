"""
User Service

Learner profiles: display name and chosen difficulty tier.
"""

from typing import Optional, Dict, Any

from lessonbot.config import DIFFICULTY_LEVELS
from lessonbot.models import utcnow
from .client import Database, to_db_time


DEFAULT_LEVEL = 1


class UserNotFoundError(Exception):
    """Raised when a user is not found in the database."""
    pass


class InvalidLevelError(ValueError):
    """Raised for a difficulty level outside DIFFICULTY_LEVELS."""
    pass


class UserService:
    """Service class for user operations."""

    def __init__(self, db: Database):
        self.db = db

    async def create_user(self, recipient_id: str, display_name: str = "User") -> Dict[str, Any]:
        """Create the user if missing. Existing rows are left untouched."""
        await self.db.conn.execute(
            """
            INSERT OR IGNORE INTO users (recipient_id, display_name, difficulty_level, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (str(recipient_id), display_name, DEFAULT_LEVEL, to_db_time(utcnow()))
        )
        await self.db.conn.commit()
        return await self.get_user(recipient_id)

    async def get_user(self, recipient_id: str) -> Optional[Dict[str, Any]]:
        cursor = await self.db.conn.execute(
            "SELECT recipient_id, display_name, difficulty_level, created_at FROM users WHERE recipient_id = ?",
            (str(recipient_id),)
        )
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def get_level(self, recipient_id: str) -> int:
        """Difficulty tier for a recipient, DEFAULT_LEVEL for unknown users."""
        user = await self.get_user(recipient_id)
        return user["difficulty_level"] if user else DEFAULT_LEVEL

    async def update_level(self, recipient_id: str, level: int) -> Dict[str, Any]:
        if level not in DIFFICULTY_LEVELS:
            raise InvalidLevelError(f"Unknown difficulty level {level}")

        cursor = await self.db.conn.execute(
            "UPDATE users SET difficulty_level = ? WHERE recipient_id = ?",
            (level, str(recipient_id))
        )
        await self.db.conn.commit()

        if cursor.rowcount == 0:
            raise UserNotFoundError(f"User {recipient_id} not found")

        return await self.get_user(recipient_id)
