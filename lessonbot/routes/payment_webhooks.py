"""
Payment Webhook Routes

External payment processors (or an operator) can confirm a payment here
instead of waiting for the user to press "I've paid". The request goes
through the same activation path as a ledger match, so a reference
activates at most one subscription whichever way it arrives.
"""

from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from lessonbot.payments.verifier import ActivationError
from lessonbot.security import verify_webhook_secret
from lessonbot.services import get_services
from lessonbot.utils.logging import payment_logger as logger

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


class PaymentWebhook(BaseModel):
    recipient_id: Optional[Union[str, int]] = Field(
        default=None,
        validation_alias=AliasChoices("recipient_id", "userId", "user_id"),
    )
    payment_reference: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("payment_reference", "paymentReference"),
    )


@router.post("/payment", dependencies=[Depends(verify_webhook_secret)])
async def handle_payment_webhook(request: Request):
    """
    Activate a subscription for a confirmed payment.

    Redeliveries of the same reference inside the dedup window are
    acknowledged with status "duplicate" and not processed again.
    """
    try:
        body = await request.json()
        event = PaymentWebhook.model_validate(body)
    except (ValueError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid payload: {e}")

    if event.recipient_id in (None, "") or not event.payment_reference:
        raise HTTPException(status_code=400, detail="recipient_id and payment_reference are required")

    recipient_id = str(event.recipient_id)
    reference = event.payment_reference
    services = get_services(request)

    if services.webhook_filter.check_and_add(reference):
        logger.info("Duplicate payment webhook ignored", recipient_id=recipient_id, reference=reference)
        return {"status": "duplicate", "reference": reference}

    try:
        result = await services.verifier.activate(recipient_id, reference, source="webhook")
    except ActivationError as e:
        # Let the sender retry; the failure is already logged as critical
        services.webhook_filter.discard(reference)
        raise HTTPException(status_code=500, detail=str(e))
    except Exception:
        services.webhook_filter.discard(reference)
        raise

    response = {"status": result.status.value, "reference": reference}
    if result.entitlement is not None:
        response["expires_at"] = result.entitlement.expires_at.isoformat()
    return response
