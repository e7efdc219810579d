"""
Entitlement gate.

Decides whether an identity may perform a metered action right now. Guests are
judged against the guest usage tracker with hardcoded limits; authenticated
users against their plan limits and today's row in the usage store.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.core.identity import Identity
from app.core.plan_limits import DEEP_SEARCH, GUEST_LIMITS, get_action_limit, get_plan_limits
from app.services.guest_usage import GuestUsageEntry, GuestUsageTracker
from app.services.quota_service import get_remaining_usage, get_usage, get_used
from app.services.subscription_service import get_plan_for_user

logger = logging.getLogger(__name__)

GUEST_DEEP_SEARCH_NOT_ALLOWED = "guest_deep_search_not_allowed"
GUEST_LIMIT_REACHED = "guest_limit_reached"
LIMIT_EXCEEDED = "limit_exceeded"


@dataclass
class EntitlementDecision:
    allowed: bool
    user_type: str  # guest | free | pro
    action: str
    limits: Dict[str, int]
    usage: Dict[str, Dict[str, int]]
    reason: Optional[str] = None
    message: Optional[str] = None
    requires_login: bool = False
    requires_upgrade: bool = False
    requires_contact: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_response(self) -> Dict[str, Any]:
        """Payload of POST /usage/check."""
        payload = {
            "canPerform": self.allowed,
            "userType": self.user_type,
            "limits": self.limits,
            "usage": self.usage,
        }
        if self.reason:
            payload["reason"] = self.reason
        if self.message:
            payload["message"] = self.message
        if self.requires_login:
            payload["requiresLogin"] = True
        if not self.allowed and self.user_type != "guest":
            payload["requiresUpgrade"] = self.requires_upgrade
            payload["requiresContact"] = self.requires_contact
        return payload

    def to_error_detail(self) -> Dict[str, Any]:
        """Structured body of a 403 admission denial."""
        return {
            "error": self.message,
            "reason": self.reason,
            "message": self.message,
            "requiresLogin": self.requires_login,
            "requiresUpgrade": self.requires_upgrade,
            "requiresContact": self.requires_contact,
            "userType": self.user_type,
        }


def _guest_usage(entry: GuestUsageEntry) -> Dict[str, Dict[str, int]]:
    searches_limit = GUEST_LIMITS["searchesPerDay"]
    return {
        "searches": {
            "used": entry.searches,
            "limit": searches_limit,
            "remaining": max(0, searches_limit - entry.searches),
        },
        "deepSearches": {"used": 0, "limit": 0, "remaining": 0},
    }


def decide_for_guest(entry: GuestUsageEntry, action: str) -> EntitlementDecision:
    """
    Guest decision from the tracker entry alone.

    Deep search is always denied. Any turn is denied once the fingerprint has
    used its daily search.
    """
    limits = dict(GUEST_LIMITS)
    usage = _guest_usage(entry)

    if action == DEEP_SEARCH:
        return EntitlementDecision(
            allowed=False,
            user_type="guest",
            action=action,
            limits=limits,
            usage=usage,
            reason=GUEST_DEEP_SEARCH_NOT_ALLOWED,
            message="Deep search is not available for guest users. Please login to access this feature.",
            requires_login=True,
        )

    if entry.searches >= GUEST_LIMITS["searchesPerDay"]:
        return EntitlementDecision(
            allowed=False,
            user_type="guest",
            action=action,
            limits=limits,
            usage=usage,
            reason=GUEST_LIMIT_REACHED,
            message="You have used your free search. Please login to continue searching.",
            requires_login=True,
        )

    return EntitlementDecision(
        allowed=True,
        user_type="guest",
        action=action,
        limits=limits,
        usage=usage,
        message="Guest users can perform 1 search. Login for more searches.",
    )


def decide_for_user(db: Session, user_id: str, action: str) -> EntitlementDecision:
    """
    Authenticated decision: allowed iff today's counter is below the plan limit.

    Args:
        db: Database session
        user_id: User ID
        action: "search" or "deepSearch"

    Returns:
        EntitlementDecision (read-only, nothing is recorded)
    """
    plan_type = get_plan_for_user(db, user_id)
    limits = get_plan_limits(plan_type)
    limit = get_action_limit(plan_type, action)
    used = get_used(get_usage(db, user_id), action)
    usage = get_remaining_usage(db, user_id)
    user_type = "pro" if plan_type == "pro" else "free"

    if used < limit:
        return EntitlementDecision(
            allowed=True, user_type=user_type, action=action, limits=limits, usage=usage,
        )

    label = "deep searches" if action == DEEP_SEARCH else "searches"
    if user_type == "free":
        hint = " Upgrade to Pro for higher limits."
    else:
        hint = " Contact us for more usage or your limits will reset tomorrow."

    logger.warning(f"Daily limit reached: user_id={user_id}, plan={plan_type}, action={action}, used={used}, limit={limit}")
    return EntitlementDecision(
        allowed=False,
        user_type=user_type,
        action=action,
        limits=limits,
        usage=usage,
        reason=LIMIT_EXCEEDED,
        message=f"You have reached your daily limit of {limit} {label}.{hint}",
        requires_upgrade=user_type == "free",
        requires_contact=user_type == "pro",
        extra={"limit": limit, "used": used},
    )


async def can_perform(
    db: Session,
    identity: Identity,
    action: str,
    guest_tracker: GuestUsageTracker,
) -> EntitlementDecision:
    """
    Decide whether the identity may perform the action now.

    Side-effect free: guest admissions are recorded separately by admit_turn.

    Args:
        db: Database session (authenticated path only)
        identity: Resolved request identity
        action: "search" or "deepSearch"
        guest_tracker: Guest usage tracker

    Returns:
        EntitlementDecision
    """
    if identity.is_guest:
        entry = await guest_tracker.get(identity.fingerprint)
        return decide_for_guest(entry, action)
    return await run_in_threadpool(decide_for_user, db, identity.id, action)
