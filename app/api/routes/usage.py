"""
Usage endpoints.

Entitlement checks for the current identity, explicit usage tracking and
today's counters for authenticated users.
"""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_current_identity, get_db, require_authenticated_user
from app.core.gating import can_perform
from app.core.identity import AuthenticatedUser, Identity
from app.core.plan_limits import action_for_search_mode
from app.schemas.usage import (
    UsageActionRequest,
    UsageCheckResponse,
    UsageResponse,
    UsageTrackResponse,
)
from app.services.guest_usage import GuestUsageTracker, get_guest_usage_tracker
from app.services.quota_service import get_remaining_usage, get_usage_for_response, increment_usage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Usage"])


@router.post("/usage/check", response_model=UsageCheckResponse, response_model_exclude_none=True)
async def check_usage(
    body: UsageActionRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    guest_tracker: GuestUsageTracker = Depends(get_guest_usage_tracker),
):
    """
    Whether the current identity may perform a search of the given mode.

    Never mutates counters.
    """
    decision = await can_perform(db, identity, action_for_search_mode(body.searchMode), guest_tracker)
    return decision.to_response()


@router.post("/usage/track", response_model=UsageTrackResponse, response_model_exclude_none=True)
def track_usage(
    body: UsageActionRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """
    Record one search for an authenticated user.

    Guest searches are recorded when the turn is admitted, so this is a no-op
    for guests.
    """
    if identity.is_guest:
        return {"success": True, "message": "Guest usage is tracked per session"}

    action = action_for_search_mode(body.searchMode)
    increment_usage(db, identity.id, action)
    logger.info(f"Usage tracked: user_id={identity.id}, action={action}")
    return {
        "success": True,
        "message": "Usage tracked successfully",
        "usage": get_remaining_usage(db, identity.id),
    }


@router.get("/me/usage", status_code=status.HTTP_200_OK, response_model=UsageResponse)
def get_usage(
    user: AuthenticatedUser = Depends(require_authenticated_user),
    db: Session = Depends(get_db),
):
    """
    Today's usage for the authenticated user.

    Returns:
    - plan: free or pro
    - date: UTC day of the counters
    - limits: daily limits of the plan
    - usage: used/limit/remaining per action
    """
    usage_data = get_usage_for_response(db, user.id)
    logger.debug(f"Usage summary requested: user_id={user.id}, plan={usage_data['plan']}")
    return usage_data
