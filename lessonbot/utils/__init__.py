"""Utility modules for the lesson bot: structured logging and recent-event dedup."""
