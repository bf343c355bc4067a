"""
Thai Lesson Bot

Daily Thai sentences delivered over Telegram to learners who pay for a
subscription with TON.
"""

__version__ = "1.0.0"
