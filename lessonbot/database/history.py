"""
Sentence History Service

Every accepted sentence is saved per difficulty tier. The newest rows form
the recent-content history used to keep the generator from repeating itself.
"""

import json
from typing import List, Optional

from lessonbot.models import ContentUnit, utcnow
from .client import Database, to_db_time


class SentenceHistoryService:
    """Append-only sentence log, pruned to `retention` rows per tier."""

    def __init__(self, db: Database, retention: int = 30):
        self.db = db
        self.retention = retention

    async def append(self, tier: int, unit: ContentUnit) -> int:
        """Save a sentence and evict the oldest beyond the retention cap. Returns the row id."""
        cursor = await self.db.conn.execute(
            """
            INSERT INTO sentences (difficulty_level, thai_text, english_translation, word_breakdown, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                tier,
                unit.text,
                unit.translation,
                json.dumps([w.to_dict() for w in unit.breakdown], ensure_ascii=False),
                to_db_time(utcnow()),
            )
        )
        row_id = cursor.lastrowid

        await self.db.conn.execute(
            """
            DELETE FROM sentences
            WHERE difficulty_level = ? AND id NOT IN (
                SELECT id FROM sentences WHERE difficulty_level = ?
                ORDER BY id DESC LIMIT ?
            )
            """,
            (tier, tier, self.retention)
        )
        await self.db.conn.commit()
        return row_id

    async def recent_texts(self, tier: int, limit: Optional[int] = None) -> List[str]:
        """Newest first."""
        limit = self.retention if limit is None else limit
        if limit <= 0:
            return []
        cursor = await self.db.conn.execute(
            "SELECT thai_text FROM sentences WHERE difficulty_level = ? ORDER BY id DESC LIMIT ?",
            (tier, limit)
        )
        rows = await cursor.fetchall()
        return [r["thai_text"] for r in rows]
