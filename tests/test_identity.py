"""
Tests for identity resolution and guest usage tracking.
"""
import fakeredis
from fastapi import Request

from app.core.auth_dependency import resolve_identity
from app.core.identity import AuthenticatedUser, GuestIdentity, new_guest_identity
from app.core.logging_config import sanitize_log_data
from app.core.rate_limit import fingerprint_hash, get_client_ip, get_guest_fingerprint
from app.core.security import create_access_token
from app.services.guest_usage import (
    InMemoryGuestUsageTracker,
    RedisGuestUsageTracker,
    build_guest_usage_tracker,
)


def _request(headers=None):
    raw = [(key.lower().encode(), value.encode()) for key, value in (headers or {}).items()]
    return Request({"type": "http", "method": "POST", "path": "/chat", "headers": raw, "query_string": b""})


def test_client_ip_prefers_forwarded_for():
    request = _request({"X-Forwarded-For": "203.0.113.5, 10.0.0.1", "X-Real-IP": "10.0.0.2"})
    assert get_client_ip(request) == "203.0.113.5"


def test_client_ip_unknown_without_headers():
    assert get_client_ip(_request()) == "unknown"


def test_fingerprint_hash_is_signed_32_bit():
    assert fingerprint_hash("") == 0
    assert fingerprint_hash("a") == 97
    value = fingerprint_hash("x" * 50)
    assert -2 ** 31 <= value < 2 ** 31


def test_sanitize_log_data_redacts_secrets_and_message_content():
    data = {"id": "abc", "message": {"content": "hi"}, "authorization": "Bearer x", "selectedSearchMode": "search"}
    sanitized = sanitize_log_data(data)

    assert sanitized["message"] == "***REDACTED***"
    assert sanitized["authorization"] == "***REDACTED***"
    assert sanitized["id"] == "abc"
    assert sanitized["selectedSearchMode"] == "search"
    assert data["message"] == {"content": "hi"}


def test_guest_fingerprint_stable_per_origin():
    headers = {"X-Forwarded-For": "203.0.113.5", "User-Agent": "Mozilla/5.0"}
    first = get_guest_fingerprint(_request(headers))
    second = get_guest_fingerprint(_request(headers))
    other = get_guest_fingerprint(_request({"X-Forwarded-For": "203.0.113.6", "User-Agent": "Mozilla/5.0"}))

    assert first == second
    assert first.startswith("guest_")
    assert first != other


def test_guest_identity_id_derived_from_fingerprint():
    first = new_guest_identity("guest_123")
    second = new_guest_identity("guest_123")

    assert first.is_guest
    assert first.id == second.id
    assert first.id != new_guest_identity("guest_456").id
    assert first.email.endswith("@guest.local")


def test_resolve_identity_without_token_is_guest(db):
    identity = resolve_identity(_request({"User-Agent": "test"}), None, db)
    assert isinstance(identity, GuestIdentity)
    assert identity.user_type == "guest"


def test_resolve_identity_with_invalid_token_is_guest(db):
    identity = resolve_identity(_request(), "not-a-jwt", db)
    assert isinstance(identity, GuestIdentity)


def test_resolve_identity_with_unknown_user_is_guest(db):
    token = create_access_token({"sub": "nobody@example.com"})
    assert isinstance(resolve_identity(_request(), token, db), GuestIdentity)


def test_resolve_identity_verified_user(db, make_user):
    user, _ = make_user(plan="pro")
    token = create_access_token({"sub": user.email})

    identity = resolve_identity(_request(), token, db)
    assert isinstance(identity, AuthenticatedUser)
    assert identity.id == user.id
    assert identity.plan == "pro"
    assert identity.user_type == "regular"


async def test_guest_tracker_counts_per_fingerprint():
    tracker = InMemoryGuestUsageTracker()
    await tracker.record_search("guest_1")
    await tracker.record_search("guest_1")

    assert (await tracker.get("guest_1")).searches == 2
    assert (await tracker.get("guest_2")).searches == 0
    assert len(tracker) == 1


async def test_guest_tracker_sweep_drops_idle_entries():
    now = [1000.0]
    tracker = InMemoryGuestUsageTracker(ttl_seconds=60, clock=lambda: now[0])
    await tracker.record_search("guest_old")
    now[0] += 30
    await tracker.record_search("guest_new")
    now[0] += 45

    assert await tracker.sweep() == 1
    assert (await tracker.get("guest_old")).searches == 0
    assert (await tracker.get("guest_new")).searches == 1


async def test_redis_guest_tracker_counts_with_expiry():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    tracker = RedisGuestUsageTracker(client, ttl_seconds=120)

    assert (await tracker.get("guest_1")).searches == 0
    assert (await tracker.record_search("guest_1")).searches == 1
    assert (await tracker.record_search("guest_1")).searches == 2

    entry = await tracker.get("guest_1")
    assert entry.searches == 2
    assert entry.deep_searches == 0
    assert (await tracker.get("guest_2")).searches == 0
    assert 0 < await client.ttl("guest-usage:guest_1") <= 120
    assert await tracker.sweep() == 0


def test_build_guest_tracker_backends():
    assert isinstance(build_guest_usage_tracker(backend="memory"), InMemoryGuestUsageTracker)
    assert isinstance(build_guest_usage_tracker(backend="redis", redis_url=""), InMemoryGuestUsageTracker)
    assert isinstance(
        build_guest_usage_tracker(backend="redis", redis_url="redis://localhost:6379/0"),
        RedisGuestUsageTracker,
    )
