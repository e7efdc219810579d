"""
Guest usage tracking.

Guests have no durable identity, so their search usage is counted per
fingerprint outside the usage store. The in-memory tracker is process-local
(entries are not shared between workers); the Redis tracker shares counts
across processes and lets keys expire on their own.
"""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional

from redis import asyncio as aioredis

from app.core.config import GUEST_USAGE_TTL_SECONDS, GUEST_USAGE_BACKEND, REDIS_URL

logger = logging.getLogger(__name__)


@dataclass
class GuestUsageEntry:
    searches: int = 0
    deep_searches: int = 0
    last_seen: float = field(default_factory=time.time)


class GuestUsageTracker(ABC):
    """Counts guest searches per fingerprint for one rolling day."""

    @abstractmethod
    async def get(self, fingerprint: str) -> GuestUsageEntry:
        """Current entry, zero-valued when the fingerprint is unknown."""

    @abstractmethod
    async def record_search(self, fingerprint: str) -> GuestUsageEntry:
        """Count one plain search for the fingerprint."""

    @abstractmethod
    async def sweep(self) -> int:
        """Drop entries idle for longer than the TTL; returns how many were dropped."""


class InMemoryGuestUsageTracker(GuestUsageTracker):
    """
    Process-local tracker swept on access.

    Concurrent requests from one fingerprint may race on the increment; exact
    counts are not required for the guest tier.
    """

    def __init__(self, ttl_seconds: int = GUEST_USAGE_TTL_SECONDS, clock=time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, GuestUsageEntry] = {}

    async def get(self, fingerprint: str) -> GuestUsageEntry:
        entry = self._entries.get(fingerprint)
        if entry is None:
            return GuestUsageEntry(last_seen=self._clock())
        return GuestUsageEntry(entry.searches, entry.deep_searches, entry.last_seen)

    async def record_search(self, fingerprint: str) -> GuestUsageEntry:
        entry = self._entries.get(fingerprint)
        if entry is None:
            entry = GuestUsageEntry(last_seen=self._clock())
            self._entries[fingerprint] = entry
        entry.searches += 1
        entry.last_seen = self._clock()
        return GuestUsageEntry(entry.searches, entry.deep_searches, entry.last_seen)

    async def sweep(self) -> int:
        cutoff = self._clock() - self.ttl_seconds
        stale = [key for key, entry in self._entries.items() if entry.last_seen < cutoff]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Swept {len(stale)} stale guest usage entries")
        return len(stale)

    def __len__(self):
        return len(self._entries)


class RedisGuestUsageTracker(GuestUsageTracker):
    """Tracker backed by one Redis hash per fingerprint with a TTL."""

    def __init__(self, client: aioredis.Redis, ttl_seconds: int = GUEST_USAGE_TTL_SECONDS, prefix: str = "guest-usage"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _key(self, fingerprint: str) -> str:
        return f"{self.prefix}:{fingerprint}"

    async def get(self, fingerprint: str) -> GuestUsageEntry:
        raw = await self.client.hgetall(self._key(fingerprint))
        if not raw:
            return GuestUsageEntry()
        return GuestUsageEntry(
            searches=int(raw.get("searches", 0)),
            deep_searches=int(raw.get("deep_searches", 0)),
            last_seen=float(raw.get("last_seen", time.time())),
        )

    async def record_search(self, fingerprint: str) -> GuestUsageEntry:
        key = self._key(fingerprint)
        now = time.time()
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hincrby(key, "searches", 1)
            pipe.hset(key, "last_seen", now)
            pipe.expire(key, self.ttl_seconds)
            searches, _, _ = await pipe.execute()
        return GuestUsageEntry(searches=int(searches), last_seen=now)

    async def sweep(self) -> int:
        # Keys expire server-side
        return 0


def build_guest_usage_tracker(backend: str = GUEST_USAGE_BACKEND, redis_url: str = REDIS_URL) -> GuestUsageTracker:
    """Create the configured tracker; redis without REDIS_URL falls back to memory."""
    if backend == "redis":
        if redis_url:
            logger.info("Guest usage tracking backed by Redis")
            return RedisGuestUsageTracker(aioredis.Redis.from_url(redis_url, decode_responses=True))
        logger.warning("GUEST_USAGE_BACKEND=redis but REDIS_URL is not set, using in-memory tracking")
    return InMemoryGuestUsageTracker()


_tracker: Optional[GuestUsageTracker] = None


def get_guest_usage_tracker() -> GuestUsageTracker:
    """FastAPI dependency returning the process-wide tracker."""
    global _tracker
    if _tracker is None:
        _tracker = build_guest_usage_tracker()
    return _tracker
