"""
LLM agents.

SentenceWriterAgent: writes the daily Thai sentence for a difficulty tier.
"""

from lessonbot.agents.sentence_writer import (
    SentenceWriterAgent,
    SentenceValidationError,
    parse_sentence_response,
)

__all__ = [
    "SentenceWriterAgent",
    "SentenceValidationError",
    "parse_sentence_response",
]
