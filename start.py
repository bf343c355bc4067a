#!/usr/bin/env python3
"""
Thai Lesson Bot Entrypoint

Runs the FastAPI app, which also hosts the delivery queue worker, the daily
scheduler and the Telegram poller.

Always ONE worker: the delivery queue, pending payments and dedup filters
live in process memory, and a second worker would send every lesson twice.
"""

import os

PORT = os.environ.get("PORT", os.environ.get("API_PORT", "3000"))

print("=" * 50)
print("Thai Lesson Bot: web + scheduler + bot")
print("=" * 50)

cmd = [
    "gunicorn", "lessonbot.api.main:app",
    "--workers", "1",
    "--worker-class", "uvicorn.workers.UvicornWorker",
    "--bind", f"0.0.0.0:{PORT}",
    "--timeout", "120",
    "--graceful-timeout", "30"
]

print(f"Running: {' '.join(cmd)}")
print("=" * 50)

# Replace this process with the actual command
os.execvp(cmd[0], cmd)
