"""
Unit tests for the daily usage store.
Tests lazy row creation, increments, resets and plan lookups.
"""
from datetime import date, timedelta
import pytest

from conftest import TestSessionLocal
from app.db.models.subscription import Subscription
from app.db.models.usage import UsageRecord
from app.core.plan_limits import SEARCH, DEEP_SEARCH
from app.services import quota_service
from app.services.quota_service import (
    get_usage,
    increment_usage,
    reset_usage,
    get_remaining_usage,
    get_usage_for_response,
)
from app.services.subscription_service import get_plan_for_user


def test_get_plan_for_user_no_subscription(db, test_user):
    """Users without a subscription row are on the free plan."""
    user, _ = test_user
    assert get_plan_for_user(db, user.id) == "free"


def test_get_plan_for_user_pro(db, make_user):
    user, _ = make_user(email="pro@example.com", plan="pro")
    assert get_plan_for_user(db, user.id) == "pro"


def test_get_plan_for_unknown_plan_is_free(db, test_user):
    user, _ = test_user
    db.add(Subscription(user_id=user.id, plan_type="enterprise", status="active"))
    db.commit()
    assert get_plan_for_user(db, user.id) == "free"


def test_get_usage_without_record_is_zero(db, test_user):
    """No row for today reads as zero and is not persisted."""
    user, _ = test_user
    record = get_usage(db, user.id)

    assert record.searches_used == 0
    assert record.deep_searches_used == 0
    assert db.query(UsageRecord).count() == 0


def test_increment_creates_record(db, test_user):
    user, _ = test_user
    record = increment_usage(db, user.id, SEARCH)

    assert record.searches_used == 1
    assert record.deep_searches_used == 0
    assert record.date == UsageRecord.today()
    assert db.query(UsageRecord).count() == 1


def test_increment_keeps_other_counter(db, test_user):
    user, _ = test_user
    increment_usage(db, user.id, SEARCH)
    increment_usage(db, user.id, SEARCH)
    record = increment_usage(db, user.id, DEEP_SEARCH)

    assert record.searches_used == 2
    assert record.deep_searches_used == 1
    assert db.query(UsageRecord).count() == 1


def test_increment_recovers_from_concurrent_insert(db, test_user, monkeypatch):
    """A row inserted by another request between the update and our insert is incremented once."""
    user, _ = test_user
    real_increment = quota_service._atomic_increment
    calls = []

    def racing_increment(session, user_id, day, action):
        calls.append(action)
        if len(calls) == 1:
            other = TestSessionLocal()
            other.add(UsageRecord(user_id=user_id, date=day, searches_used=3, deep_searches_used=1))
            other.commit()
            other.close()
            return 0
        return real_increment(session, user_id, day, action)

    monkeypatch.setattr(quota_service, "_atomic_increment", racing_increment)
    record = increment_usage(db, user.id, SEARCH)

    assert calls == [SEARCH, SEARCH]
    assert record.searches_used == 4
    assert record.deep_searches_used == 1
    assert db.query(UsageRecord).filter(UsageRecord.user_id == user.id).count() == 1


def test_increment_unknown_action_raises(db, test_user):
    user, _ = test_user
    with pytest.raises(ValueError):
        increment_usage(db, user.id, "imageSearch")


def test_days_are_counted_separately(db, test_user):
    """Yesterday's row does not count against today."""
    user, _ = test_user
    yesterday = UsageRecord.today() - timedelta(days=1)
    increment_usage(db, user.id, SEARCH, day=yesterday)
    increment_usage(db, user.id, SEARCH, day=yesterday)

    assert get_usage(db, user.id).searches_used == 0
    assert get_usage(db, user.id, day=yesterday).searches_used == 2


def test_reset_usage_zeroes_both_counters(db, test_user):
    user, _ = test_user
    increment_usage(db, user.id, SEARCH)
    increment_usage(db, user.id, DEEP_SEARCH)

    reset_usage(db, user.id)
    db.expire_all()

    record = get_usage(db, user.id)
    assert record.searches_used == 0
    assert record.deep_searches_used == 0


def test_reset_usage_without_record_is_noop(db, test_user):
    user, _ = test_user
    reset_usage(db, user.id, day=date(2020, 1, 1))
    assert db.query(UsageRecord).count() == 0


def test_remaining_never_negative(db, test_user):
    """Counters above the limit (e.g. after a downgrade) report zero remaining."""
    user, _ = test_user
    db.add(UsageRecord(user_id=user.id, date=UsageRecord.today(), searches_used=50, deep_searches_used=5))
    db.commit()

    usage = get_remaining_usage(db, user.id)
    assert usage["searches"] == {"used": 50, "limit": 10, "remaining": 0}
    assert usage["deepSearches"] == {"used": 5, "limit": 2, "remaining": 0}


def test_get_usage_for_response(db, make_user):
    user, _ = make_user(email="pro@example.com", plan="pro")
    increment_usage(db, user.id, DEEP_SEARCH)

    data = get_usage_for_response(db, user.id)
    assert data["plan"] == "pro"
    assert data["date"] == UsageRecord.today().isoformat()
    assert data["limits"] == {"searchesPerDay": 100, "deepSearchesPerDay": 20}
    assert data["usage"]["deepSearches"]["remaining"] == 19
