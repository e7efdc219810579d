"""
Subscription service.

Plan lookups for the entitlement gate plus the plan-change flows driven by the
payment provider (activation, cancellation, downgrade) and payment records.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session

from app.db.models.subscription import Subscription
from app.db.models.payment_transaction import PaymentTransaction

logger = logging.getLogger(__name__)

PLAN_TYPES = ("free", "pro")
BILLING_PERIODS = ("monthly", "yearly")


def get_user_subscription(db: Session, user_id: str) -> Optional[Subscription]:
    return db.query(Subscription).filter(Subscription.user_id == user_id).first()


def get_plan_for_user(db: Session, user_id: str) -> str:
    """
    Get user's plan type from subscription, defaulting to 'free' if none exists.

    Args:
        db: Database session
        user_id: User ID

    Returns:
        Plan type string (free, pro)
    """
    subscription = get_user_subscription(db, user_id)
    if not subscription or not subscription.plan_type:
        return "free"
    return subscription.plan_type if subscription.plan_type in PLAN_TYPES else "free"


def create_or_update_subscription(
    db: Session,
    user_id: str,
    plan_type: str,
    billing_period: Optional[str] = None,
    current_period_start: Optional[datetime] = None,
    current_period_end: Optional[datetime] = None,
    stripe_customer_id: Optional[str] = None,
    stripe_subscription_id: Optional[str] = None,
) -> Subscription:
    """
    Activate a plan for a user, creating the subscription row if needed.

    Args:
        db: Database session
        user_id: User ID
        plan_type: free or pro
        billing_period: monthly or yearly

    Returns:
        The active subscription
    """
    if plan_type not in PLAN_TYPES:
        raise ValueError(f"Invalid plan type: {plan_type}")
    if billing_period is not None and billing_period not in BILLING_PERIODS:
        raise ValueError(f"Invalid billing period: {billing_period}")

    subscription = get_user_subscription(db, user_id)
    if not subscription:
        subscription = Subscription(user_id=user_id)
        db.add(subscription)

    subscription.plan_type = plan_type
    subscription.billing_period = billing_period
    subscription.status = "active"
    subscription.cancel_at_period_end = False
    subscription.current_period_start = current_period_start
    subscription.current_period_end = current_period_end
    if stripe_customer_id:
        subscription.stripe_customer_id = stripe_customer_id
    if stripe_subscription_id:
        subscription.stripe_subscription_id = stripe_subscription_id

    db.commit()
    db.refresh(subscription)

    logger.info(f"Subscription activated: user_id={user_id}, plan={plan_type}, billing_period={billing_period}")
    return subscription


def cancel_subscription(db: Session, user_id: str, cancel_at_period_end: bool = True) -> Subscription:
    """
    Cancel a subscription.

    With cancel_at_period_end the plan stays active until the period ends;
    otherwise it is canceled and downgraded to free immediately.
    """
    subscription = get_user_subscription(db, user_id)
    if not subscription:
        raise ValueError("User does not have a subscription")

    subscription.cancel_at_period_end = cancel_at_period_end
    if cancel_at_period_end:
        subscription.status = "active"
    else:
        subscription.status = "canceled"
        subscription.plan_type = "free"

    db.commit()
    db.refresh(subscription)

    logger.info(f"Subscription canceled: user_id={user_id}, at_period_end={cancel_at_period_end}")
    return subscription


def downgrade_to_free(db: Session, stripe_subscription_id: str) -> Optional[Subscription]:
    """Downgrade the subscription identified by its provider id (provider-side deletion)."""
    subscription = db.query(Subscription).filter(
        Subscription.stripe_subscription_id == stripe_subscription_id
    ).first()
    if not subscription:
        logger.warning(f"No subscription for provider id={stripe_subscription_id}")
        return None

    subscription.plan_type = "free"
    subscription.status = "canceled"
    subscription.stripe_subscription_id = None
    db.commit()
    db.refresh(subscription)

    logger.info(f"Subscription downgraded: user_id={subscription.user_id}")
    return subscription


def create_payment_transaction(
    db: Session,
    user_id: str,
    provider_payment_id: str,
    provider_order_id: str,
    amount: Decimal,
    currency: str,
    status: str,
    plan_type: str,
    billing_period: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> PaymentTransaction:
    transaction = PaymentTransaction(
        user_id=user_id,
        provider_payment_id=provider_payment_id,
        provider_order_id=provider_order_id,
        amount=amount,
        currency=currency.upper(),
        status=status,
        plan_type=plan_type,
        billing_period=billing_period,
        metadata_json=metadata,
        created_at=datetime.now(timezone.utc),
    )
    db.add(transaction)
    db.commit()
    db.refresh(transaction)
    return transaction


def subscription_to_dict(subscription: Optional[Subscription]) -> Dict[str, Any]:
    """Serialize a subscription; users without one are on the implicit free plan."""
    if not subscription:
        return {
            "planType": "free",
            "status": "active",
            "billingPeriod": None,
            "currentPeriodStart": None,
            "currentPeriodEnd": None,
            "cancelAtPeriodEnd": False,
        }
    return {
        "planType": subscription.plan_type,
        "status": subscription.status,
        "billingPeriod": subscription.billing_period,
        "currentPeriodStart": subscription.current_period_start,
        "currentPeriodEnd": subscription.current_period_end,
        "cancelAtPeriodEnd": subscription.cancel_at_period_end,
    }
