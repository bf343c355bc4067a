"""
Scheduled jobs.
"""

from lessonbot.jobs.daily_scheduler import DailyLessonScheduler, BatchReport

__all__ = ["DailyLessonScheduler", "BatchReport"]
