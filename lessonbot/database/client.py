"""
SQLite connection management.
Uses aiosqlite for async SQLite operations.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiosqlite


class DatabaseNotConnectedError(Exception):
    """Raised when a service is used before Database.connect()."""
    pass


_DB_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def to_db_time(value: datetime) -> str:
    """Serialize a datetime as fixed-width UTC text so string comparison orders correctly."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_DB_TIME_FORMAT)


def from_db_time(value: str) -> datetime:
    return datetime.strptime(value, _DB_TIME_FORMAT).replace(tzinfo=timezone.utc)


class Database:
    """Owns the aiosqlite connection and the schema."""

    def __init__(self, db_path: str = "./data/bot.db"):
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise DatabaseNotConnectedError(
                f"Database {self.db_path} is not connected. Call connect() first."
            )
        return self._conn

    @property
    def connected(self) -> bool:
        return self._conn is not None

    async def connect(self):
        """Connect to database and create tables if needed"""
        if self.db_path != ":memory:":
            db_dir = Path(self.db_path).parent
            if str(db_dir) != "." and not db_dir.exists():
                db_dir.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self.db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._create_tables()

    async def _create_tables(self):
        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                recipient_id TEXT PRIMARY KEY,
                display_name TEXT,
                difficulty_level INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            )
        """)

        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS subscriptions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                recipient_id TEXT NOT NULL,
                payment_reference TEXT UNIQUE NOT NULL,
                status TEXT NOT NULL DEFAULT 'active',
                expires_at TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        await self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_subscriptions_recipient
            ON subscriptions(recipient_id, status, expires_at)
        """)

        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS sentences (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                difficulty_level INTEGER NOT NULL,
                thai_text TEXT NOT NULL,
                english_translation TEXT,
                word_breakdown TEXT,
                created_at TEXT NOT NULL
            )
        """)

        await self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_sentences_level
            ON sentences(difficulty_level, id)
        """)

        await self._conn.commit()

    async def close(self):
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
