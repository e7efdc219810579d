"""
Billing service for Stripe webhook events.

Payment order creation happens on the provider side; this module only applies
the resulting plan changes: activation on completed checkout, status sync on
subscription updates and downgrade on deletion.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any
import stripe
from sqlalchemy.orm import Session

from app.core.config import STRIPE_SECRET_KEY, STRIPE_PRICE_ID_PRO
from app.db.models.user import User
from app.db.models.subscription import Subscription
from app.services.quota_service import reset_usage
from app.services.subscription_service import (
    BILLING_PERIODS,
    cancel_subscription,
    create_or_update_subscription,
    create_payment_transaction,
    downgrade_to_free,
    get_user_subscription,
)

logger = logging.getLogger(__name__)

# Initialize Stripe
if STRIPE_SECRET_KEY:
    stripe.api_key = STRIPE_SECRET_KEY

PRICE_ID_TO_PLAN: Dict[str, str] = {STRIPE_PRICE_ID_PRO: "pro"} if STRIPE_PRICE_ID_PRO else {}


def get_plan_from_price_id(price_id: Optional[str]) -> Optional[str]:
    """Get plan type from Stripe price ID."""
    if not price_id:
        return None
    return PRICE_ID_TO_PLAN.get(price_id)


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _find_user(db: Session, metadata: Dict[str, Any], customer_email: Optional[str]) -> Optional[User]:
    user_id = metadata.get("user_id")
    if user_id:
        return db.query(User).filter(User.id == user_id).first()
    if customer_email:
        return db.query(User).filter(User.email == customer_email).first()
    return None


def _retrieve_period(subscription_id: Optional[str]):
    """Current period of a provider subscription; (None, None) when unavailable."""
    if not subscription_id:
        return None, None
    try:
        stripe_sub = stripe.Subscription.retrieve(subscription_id)
        return _timestamp(stripe_sub.get("current_period_start")), _timestamp(stripe_sub.get("current_period_end"))
    except Exception as e:
        logger.warning(f"Failed to retrieve subscription from Stripe: {e}")
        return None, None


def handle_checkout_session_completed(event_data: Dict, db: Session) -> Subscription:
    """
    Handle checkout.session.completed webhook event.

    Activates the pro plan, records the completed payment and resets today's
    usage so the new limits apply from a clean slate.

    Args:
        event_data: Stripe event data object
        db: Database session

    Returns:
        Updated subscription object
    """
    session_data = event_data.get("object", {})
    metadata = session_data.get("metadata") or {}
    customer_email = session_data.get("customer_email") or (session_data.get("customer_details") or {}).get("email")

    user = _find_user(db, metadata, customer_email)
    if not user:
        raise ValueError("User not found for checkout session")

    billing_period = metadata.get("billing_period") or "monthly"
    if billing_period not in BILLING_PERIODS:
        billing_period = "monthly"

    subscription_id = session_data.get("subscription")
    period_start, period_end = _retrieve_period(subscription_id)

    subscription = create_or_update_subscription(
        db,
        user.id,
        plan_type="pro",
        billing_period=billing_period,
        current_period_start=period_start,
        current_period_end=period_end,
        stripe_customer_id=session_data.get("customer"),
        stripe_subscription_id=subscription_id,
    )

    amount_total = session_data.get("amount_total") or 0
    create_payment_transaction(
        db,
        user_id=user.id,
        provider_payment_id=session_data.get("payment_intent") or session_data.get("id"),
        provider_order_id=session_data.get("id"),
        amount=Decimal(amount_total) / 100,
        currency=session_data.get("currency") or "usd",
        status="completed",
        plan_type="pro",
        billing_period=billing_period,
        metadata={"stripe_subscription_id": subscription_id},
    )

    reset_usage(db, user.id)

    logger.info(f"Checkout completed: user_id={user.id}, plan=pro, subscription_id={subscription_id}")
    return subscription


def handle_subscription_updated(event_data: Dict, db: Session) -> Optional[Subscription]:
    """
    Handle customer.subscription.updated webhook event.

    Syncs status, period and cancellation flag; the plan follows the price id
    when it is a known one.
    """
    subscription_data = event_data.get("object", {})
    subscription_id = subscription_data.get("id")

    subscription = db.query(Subscription).filter(
        Subscription.stripe_subscription_id == subscription_id
    ).first()
    if not subscription:
        logger.warning(f"Subscription not found for subscription_id={subscription_id}")
        return None

    status = subscription_data.get("status")
    if status in ("active", "canceled", "past_due"):
        subscription.status = status
    subscription.cancel_at_period_end = bool(subscription_data.get("cancel_at_period_end"))
    subscription.current_period_start = _timestamp(subscription_data.get("current_period_start")) or subscription.current_period_start
    subscription.current_period_end = _timestamp(subscription_data.get("current_period_end")) or subscription.current_period_end

    items = (subscription_data.get("items") or {}).get("data") or [{}]
    plan = get_plan_from_price_id((items[0].get("price") or {}).get("id"))
    if plan:
        subscription.plan_type = plan

    db.commit()
    db.refresh(subscription)

    logger.info(f"Subscription updated: user_id={subscription.user_id}, status={subscription.status}, plan={subscription.plan_type}")
    return subscription


def handle_subscription_deleted(event_data: Dict, db: Session) -> Optional[Subscription]:
    """
    Handle customer.subscription.deleted webhook event.
    Downgrades user to free plan.
    """
    subscription_id = event_data.get("object", {}).get("id")
    return downgrade_to_free(db, subscription_id)


EVENT_HANDLERS = {
    "checkout.session.completed": handle_checkout_session_completed,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
}


def process_webhook_event(event: Dict[str, Any], db: Session) -> bool:
    """
    Dispatch a verified webhook event.

    Returns:
        True if the event type is handled, False if it was ignored
    """
    handler = EVENT_HANDLERS.get(event["type"])
    if handler is None:
        logger.debug(f"Ignoring webhook event type={event['type']}")
        return False
    handler(event["data"], db)
    return True


def cancel_user_subscription(db: Session, user_id: str, at_period_end: bool = True) -> Subscription:
    """
    Cancel a user's subscription, at the provider first when it is linked there.

    Raises:
        ValueError: user has no subscription
    """
    subscription = get_user_subscription(db, user_id)
    if not subscription:
        raise ValueError("User does not have a subscription")

    if subscription.stripe_subscription_id and STRIPE_SECRET_KEY:
        if at_period_end:
            stripe.Subscription.modify(subscription.stripe_subscription_id, cancel_at_period_end=True)
        else:
            stripe.Subscription.cancel(subscription.stripe_subscription_id)

    return cancel_subscription(db, user_id, cancel_at_period_end=at_period_end)
