"""
HTTP routes.
"""

from lessonbot.routes.admin import router as admin_router
from lessonbot.routes.payment_webhooks import router as payment_webhook_router

__all__ = ["admin_router", "payment_webhook_router"]
