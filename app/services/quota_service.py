"""
Quota service: the daily usage store.

Handles reading, incrementing and resetting per-user, per-day search counters.
Increments are a single atomic UPDATE on the (user_id, date) row so concurrent
turns for the same user do not lose updates; the first increment of a day
inserts the row and falls back to the UPDATE if another request won the insert.
"""
import logging
from datetime import date
from typing import Dict, Optional
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models.usage import UsageRecord
from app.core.plan_limits import SEARCH, DEEP_SEARCH, get_plan_limits
from app.services.subscription_service import get_plan_for_user

logger = logging.getLogger(__name__)

# Action -> counter column
_COUNTERS = {
    SEARCH: UsageRecord.searches_used,
    DEEP_SEARCH: UsageRecord.deep_searches_used,
}


def get_usage(db: Session, user_id: str, day: Optional[date] = None) -> UsageRecord:
    """
    Get a user's usage record for a day.

    Args:
        db: Database session
        user_id: User ID
        day: UTC calendar day (default: today)

    Returns:
        Stored record, or a transient zero-valued record if none exists yet
    """
    day = day or UsageRecord.today()
    record = db.query(UsageRecord).filter(
        UsageRecord.user_id == user_id,
        UsageRecord.date == day
    ).first()

    if record is None:
        return UsageRecord(user_id=user_id, date=day, searches_used=0, deep_searches_used=0)
    return record


def _atomic_increment(db: Session, user_id: str, day: date, action: str) -> int:
    column = _COUNTERS[action]
    result = db.execute(
        update(UsageRecord)
        .where(UsageRecord.user_id == user_id, UsageRecord.date == day)
        .values({column.key: column + 1})
    )
    return result.rowcount


def increment_usage(db: Session, user_id: str, action: str, day: Optional[date] = None) -> UsageRecord:
    """
    Increment one counter of today's usage record, creating the record if needed.

    The other counter keeps its stored value.

    Args:
        db: Database session
        user_id: User ID
        action: "search" or "deepSearch"
        day: UTC calendar day (default: today)

    Returns:
        The updated usage record
    """
    if action not in _COUNTERS:
        raise ValueError(f"Unknown usage action: {action}")
    day = day or UsageRecord.today()

    if _atomic_increment(db, user_id, day, action) == 0:
        record = UsageRecord(
            user_id=user_id,
            date=day,
            searches_used=1 if action == SEARCH else 0,
            deep_searches_used=1 if action == DEEP_SEARCH else 0,
        )
        db.add(record)
        try:
            db.commit()
        except IntegrityError:
            # Another request inserted today's row first
            db.rollback()
            _atomic_increment(db, user_id, day, action)
            db.commit()
    else:
        db.commit()

    record = get_usage(db, user_id, day)
    db.refresh(record)
    logger.info(
        f"Usage incremented: user_id={user_id}, action={action}, date={day}, "
        f"searches={record.searches_used}, deep_searches={record.deep_searches_used}"
    )
    return record


def reset_usage(db: Session, user_id: str, day: Optional[date] = None) -> None:
    """Zero both counters for a day (plan upgrade). No-op when no record exists."""
    day = day or UsageRecord.today()
    result = db.execute(
        update(UsageRecord)
        .where(UsageRecord.user_id == user_id, UsageRecord.date == day)
        .values(searches_used=0, deep_searches_used=0)
    )
    db.commit()
    if result.rowcount:
        logger.info(f"Usage reset: user_id={user_id}, date={day}")


def get_used(record: UsageRecord, action: str) -> int:
    """Counter value of a record for an action."""
    if action == DEEP_SEARCH:
        return record.deep_searches_used or 0
    return record.searches_used or 0


def get_remaining_usage(db: Session, user_id: str) -> Dict[str, Dict[str, int]]:
    """
    Get today's used/limit/remaining for both actions.

    Args:
        db: Database session
        user_id: User ID

    Returns:
        {"searches": {...}, "deepSearches": {...}}
    """
    plan_type = get_plan_for_user(db, user_id)
    limits = get_plan_limits(plan_type)
    record = get_usage(db, user_id)

    searches_used = record.searches_used or 0
    deep_used = record.deep_searches_used or 0

    return {
        "searches": {
            "used": searches_used,
            "limit": limits["searchesPerDay"],
            "remaining": max(0, limits["searchesPerDay"] - searches_used),
        },
        "deepSearches": {
            "used": deep_used,
            "limit": limits["deepSearchesPerDay"],
            "remaining": max(0, limits["deepSearchesPerDay"] - deep_used),
        },
    }


def get_usage_for_response(db: Session, user_id: str) -> Dict:
    """
    Get usage data formatted for GET /me/usage response.
    """
    plan_type = get_plan_for_user(db, user_id)
    return {
        "plan": plan_type,
        "date": UsageRecord.today().isoformat(),
        "limits": get_plan_limits(plan_type),
        "usage": get_remaining_usage(db, user_id),
    }
