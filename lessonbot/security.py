"""
Shared-secret checks for the HTTP surface.

Admin routes take an API key (X-API-Key header or Bearer token); the payment
webhook takes X-Webhook-Secret. With no secret configured the check is
bypassed, which is only meant for local development.
"""

import hmac
from typing import Optional

from fastapi import HTTPException, Header, Depends

from lessonbot.config import config


def secrets_match(expected: str, provided: Optional[str]) -> bool:
    if not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def get_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    authorization: Optional[str] = Header(None)
) -> Optional[str]:
    """
    Extract API key from headers.
    Supports both X-API-Key header and Bearer token.
    """
    if x_api_key:
        return x_api_key

    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]

    return None


async def verify_admin_key(api_key: Optional[str] = Depends(get_api_key)) -> str:
    """Returns the key, or "dev" when no ADMIN_API_KEY is configured."""
    if not config.admin_auth_required:
        return "dev"

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="API key required. Provide X-API-Key header or Bearer token.",
            headers={"WWW-Authenticate": "Bearer"}
        )

    if not secrets_match(config.ADMIN_API_KEY, api_key):
        raise HTTPException(status_code=403, detail="Invalid API key")

    return api_key


async def verify_webhook_secret(
    x_webhook_secret: Optional[str] = Header(None, alias="X-Webhook-Secret")
) -> None:
    if not config.PAYMENT_WEBHOOK_SECRET:
        return

    if not secrets_match(config.PAYMENT_WEBHOOK_SECRET, x_webhook_secret):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")
