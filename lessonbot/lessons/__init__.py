"""
Daily lesson content: the per-period sentence cache and message templates.
"""

from lessonbot.lessons.cache import SentenceCache, GenerationError, normalize_text
from lessonbot.lessons.templates import (
    fallback_sentence,
    render_daily_lesson,
    render_welcome,
)

__all__ = [
    "SentenceCache",
    "GenerationError",
    "normalize_text",
    "fallback_sentence",
    "render_daily_lesson",
    "render_welcome",
]
