"""
Unit tests for the entitlement gate and turn admission.
"""
import pytest
from fastapi import HTTPException

from app.db.models.usage import UsageRecord
from app.core.gating import (
    GUEST_DEEP_SEARCH_NOT_ALLOWED,
    GUEST_LIMIT_REACHED,
    LIMIT_EXCEEDED,
    can_perform,
    decide_for_guest,
    decide_for_user,
)
from app.core.identity import AuthenticatedUser, new_guest_identity
from app.core.plan_limits import SEARCH, DEEP_SEARCH, action_for_search_mode, get_plan_limits
from app.core.quota_guard import admit_turn
from app.services.guest_usage import GuestUsageEntry, InMemoryGuestUsageTracker


def _set_usage(db, user_id, searches=0, deep_searches=0):
    db.add(UsageRecord(
        user_id=user_id,
        date=UsageRecord.today(),
        searches_used=searches,
        deep_searches_used=deep_searches,
    ))
    db.commit()


def test_action_for_search_mode():
    assert action_for_search_mode("search") == SEARCH
    assert action_for_search_mode("deep-search") == DEEP_SEARCH
    assert action_for_search_mode("anything-else") == SEARCH


def test_unknown_plan_limits_fall_back_to_free():
    assert get_plan_limits("enterprise") == get_plan_limits("free")
    assert get_plan_limits(None) == get_plan_limits("free")


def test_guest_first_search_allowed():
    decision = decide_for_guest(GuestUsageEntry(), SEARCH)
    assert decision.allowed
    assert decision.user_type == "guest"
    assert decision.usage["searches"] == {"used": 0, "limit": 1, "remaining": 1}


def test_guest_second_search_denied():
    decision = decide_for_guest(GuestUsageEntry(searches=1), SEARCH)
    assert not decision.allowed
    assert decision.reason == GUEST_LIMIT_REACHED
    assert decision.requires_login


def test_guest_deep_search_always_denied():
    decision = decide_for_guest(GuestUsageEntry(), DEEP_SEARCH)
    assert not decision.allowed
    assert decision.reason == GUEST_DEEP_SEARCH_NOT_ALLOWED
    assert decision.requires_login
    assert decision.to_response()["requiresLogin"] is True


def test_free_user_one_below_limit_allowed(db, test_user):
    user, _ = test_user
    _set_usage(db, user.id, searches=9)

    decision = decide_for_user(db, user.id, SEARCH)
    assert decision.allowed
    assert decision.user_type == "free"


def test_free_user_at_limit_denied(db, test_user):
    user, _ = test_user
    _set_usage(db, user.id, searches=10)

    decision = decide_for_user(db, user.id, SEARCH)
    assert not decision.allowed
    assert decision.reason == LIMIT_EXCEEDED
    assert decision.requires_upgrade
    assert not decision.requires_contact
    assert decision.message == "You have reached your daily limit of 10 searches. Upgrade to Pro for higher limits."


def test_limits_are_per_action(db, test_user):
    """Exhausted deep searches do not block plain search."""
    user, _ = test_user
    _set_usage(db, user.id, searches=0, deep_searches=2)

    assert decide_for_user(db, user.id, SEARCH).allowed
    assert not decide_for_user(db, user.id, DEEP_SEARCH).allowed


def test_pro_user_at_limit_requires_contact(db, make_user):
    user, _ = make_user(email="pro@example.com", plan="pro")
    _set_usage(db, user.id, deep_searches=20)

    decision = decide_for_user(db, user.id, DEEP_SEARCH)
    assert not decision.allowed
    assert decision.user_type == "pro"
    assert decision.requires_contact
    assert not decision.requires_upgrade
    body = decision.to_response()
    assert body["canPerform"] is False
    assert body["requiresContact"] is True


def test_gate_does_not_mutate_usage(db, test_user):
    user, _ = test_user
    decide_for_user(db, user.id, SEARCH)
    decide_for_user(db, user.id, DEEP_SEARCH)
    assert db.query(UsageRecord).count() == 0


async def test_can_perform_guest_reads_tracker(db):
    tracker = InMemoryGuestUsageTracker()
    guest = new_guest_identity("guest_42")
    await tracker.record_search(guest.fingerprint)

    decision = await can_perform(db, guest, SEARCH, tracker)
    assert not decision.allowed
    assert decision.reason == GUEST_LIMIT_REACHED


async def test_admit_turn_records_guest_search(db):
    tracker = InMemoryGuestUsageTracker()
    guest = new_guest_identity("guest_7")

    await admit_turn(db, guest, SEARCH, tracker)
    assert (await tracker.get(guest.fingerprint)).searches == 1

    with pytest.raises(HTTPException) as exc_info:
        await admit_turn(db, guest, SEARCH, tracker)
    assert exc_info.value.status_code == 403
    assert exc_info.value.detail["reason"] == GUEST_LIMIT_REACHED
    assert (await tracker.get(guest.fingerprint)).searches == 1


async def test_admit_turn_guest_deep_search_not_recorded(db):
    tracker = InMemoryGuestUsageTracker()
    guest = new_guest_identity("guest_8")

    with pytest.raises(HTTPException) as exc_info:
        await admit_turn(db, guest, DEEP_SEARCH, tracker)
    assert exc_info.value.detail["reason"] == GUEST_DEEP_SEARCH_NOT_ALLOWED
    assert exc_info.value.detail["userType"] == "guest"
    assert (await tracker.get(guest.fingerprint)).searches == 0


async def test_admit_turn_authenticated_does_not_increment(db, test_user):
    user, _ = test_user
    identity = AuthenticatedUser(id=user.id, email=user.email)

    decision = await admit_turn(db, identity, SEARCH, InMemoryGuestUsageTracker())
    assert decision.allowed
    assert db.query(UsageRecord).count() == 0
