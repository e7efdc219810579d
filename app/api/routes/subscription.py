"""
Subscription endpoints.
"""
import logging
import stripe
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_db, require_authenticated_user
from app.core.identity import AuthenticatedUser
from app.core.plan_limits import get_plan_limits
from app.schemas.subscription import (
    CancelSubscriptionRequest,
    CancelSubscriptionResponse,
    SubscriptionStatusResponse,
)
from app.services.billing_service import cancel_user_subscription
from app.services.quota_service import get_remaining_usage
from app.services.subscription_service import get_user_subscription, subscription_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscription", tags=["Subscription"])


@router.get("/status", response_model=SubscriptionStatusResponse)
def get_subscription_status(
    user: AuthenticatedUser = Depends(require_authenticated_user),
    db: Session = Depends(get_db),
):
    """Current plan, its limits and today's usage."""
    subscription = subscription_to_dict(get_user_subscription(db, user.id))
    return {
        "subscription": subscription,
        "limits": get_plan_limits(subscription["planType"]),
        "usage": get_remaining_usage(db, user.id),
    }


@router.post("/cancel", response_model=CancelSubscriptionResponse)
def cancel(
    body: CancelSubscriptionRequest,
    user: AuthenticatedUser = Depends(require_authenticated_user),
    db: Session = Depends(get_db),
):
    """
    Cancel the current subscription.

    With cancelAtPeriodEnd the plan stays active until the period ends,
    otherwise the user drops to the free plan immediately.
    """
    try:
        subscription = cancel_user_subscription(db, user.id, at_period_end=body.cancelAtPeriodEnd)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No subscription found")
    except stripe.StripeError as e:
        logger.error(f"Stripe cancellation failed: user_id={user.id}, error={e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to cancel subscription with the payment provider"
        )

    message = (
        "Subscription will be canceled at the end of the billing period"
        if body.cancelAtPeriodEnd
        else "Subscription canceled"
    )
    logger.info(f"Subscription cancel requested: user_id={user.id}, at_period_end={body.cancelAtPeriodEnd}")
    return {"success": True, "message": message, "subscription": subscription_to_dict(subscription)}
