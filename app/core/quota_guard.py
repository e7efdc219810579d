"""
Admission enforcement for chat turns.

Turns an entitlement denial into a structured 403 and records guest searches
at admission time. Authenticated usage is not touched here; it is incremented
by the turn orchestrator after a successful completion.
"""
import logging
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.core.gating import EntitlementDecision, can_perform
from app.core.identity import Identity
from app.core.plan_limits import SEARCH
from app.services.guest_usage import GuestUsageTracker

logger = logging.getLogger(__name__)


def enforce_admission(decision: EntitlementDecision) -> None:
    """
    Raise when the decision denies the action.

    Raises:
        HTTPException: 403 with reason, remediation flags and userType
    """
    if decision.allowed:
        return
    logger.warning(f"Turn rejected: reason={decision.reason}, user_type={decision.user_type}, action={decision.action}")
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=decision.to_error_detail(),
    )


async def admit_turn(
    db: Session,
    identity: Identity,
    action: str,
    guest_tracker: GuestUsageTracker,
) -> EntitlementDecision:
    """
    Gate a chat turn before any generation starts.

    Guests consume their search slot here, immediately on admission. Only plain
    search counts against a guest.

    Args:
        db: Database session
        identity: Resolved request identity
        action: Metered action of the turn
        guest_tracker: Guest usage tracker

    Returns:
        The allowing decision

    Raises:
        HTTPException: 403 when the identity is not entitled
    """
    decision = await can_perform(db, identity, action, guest_tracker)
    enforce_admission(decision)

    if identity.is_guest and action == SEARCH:
        entry = await guest_tracker.record_search(identity.fingerprint)
        logger.info(f"Guest search recorded: fingerprint={identity.fingerprint}, searches={entry.searches}")

    return decision
