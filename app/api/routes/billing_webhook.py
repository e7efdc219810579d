import logging
import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_db
from app.core.config import STRIPE_WEBHOOK_SECRET
from app.services.billing_service import process_webhook_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing Webhook"])


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    db: Session = Depends(get_db),
):
    if not STRIPE_WEBHOOK_SECRET:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook secret not configured"
        )

    payload = await request.body()

    try:
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=stripe_signature,
            secret=STRIPE_WEBHOOK_SECRET,
        )
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Webhook verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook verification failed"
        )

    # ✅ Handler errors are acknowledged so the provider does not retry forever
    try:
        handled = process_webhook_event(event, db)
    except ValueError as e:
        logger.warning(f"Webhook event {event['type']} not applied: {e}")
        return {"status": "ignored", "reason": str(e)}

    return {"status": "success" if handled else "ignored"}
