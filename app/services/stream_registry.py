"""
Resumable stream registry.

A turn's encoded events come from exactly one producer. The registry runs that
producer as its own task and fans the frames out to any number of readers: the
original HTTP response and any later resume. A reader that joins late first
replays everything produced so far, then follows live output. Streams that
already finished are never regenerated; resume() reports them as absent.
"""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Set
from collections.abc import AsyncIterator

from redis import asyncio as aioredis

from app.core.config import REDIS_URL, STREAM_BACKEND, STREAM_REPLAY_TTL_SECONDS
from app.llm import events

logger = logging.getLogger(__name__)

# Strong references to running producer tasks
_background_tasks: Set[asyncio.Task] = set()


def _spawn(coro) -> asyncio.Task:
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


class Broadcast:
    """Replay buffer over one producer with any number of followers."""

    def __init__(self, stream_id: str, chat_id: Optional[str] = None):
        self.stream_id = stream_id
        self.chat_id = chat_id
        self.frames: List[str] = []
        self.done = False
        self.finished_at: Optional[float] = None
        self._changed = asyncio.Condition()

    async def append(self, frame: str) -> None:
        async with self._changed:
            self.frames.append(frame)
            self._changed.notify_all()

    async def close(self) -> None:
        async with self._changed:
            self.done = True
            self.finished_at = time.monotonic()
            self._changed.notify_all()

    async def pump(self, producer: AsyncIterator[str]) -> None:
        """Drain the producer into the buffer; runs regardless of readers."""
        try:
            async for frame in producer:
                await self.append(frame)
        except Exception as e:
            logger.error(f"Stream producer failed: stream_id={self.stream_id}, error={e}", exc_info=True)
            await self.append(events.error_event().encode())
        finally:
            await self.close()

    async def follow(self) -> AsyncIterator[str]:
        """Replay from the first frame, then follow until the producer ends."""
        index = 0
        while True:
            async with self._changed:
                await self._changed.wait_for(lambda: index < len(self.frames) or self.done)
                pending = self.frames[index:]
                finished = self.done
            for frame in pending:
                yield frame
            index += len(pending)
            if finished and index >= len(self.frames):
                return


def run_detached(stream_id: str, producer: AsyncIterator[str]) -> AsyncIterator[str]:
    """
    Run a producer to completion in the background and follow its output.

    Used when no registry is configured: the caller's disconnect still does not
    stop the producer, but nobody else can attach to it.
    """
    broadcast = Broadcast(stream_id)
    _spawn(broadcast.pump(producer))
    return broadcast.follow()


class StreamRegistry(ABC):
    """Registers live turn streams so they can be resumed by id."""

    @abstractmethod
    async def register(self, stream_id: str, chat_id: str, producer: AsyncIterator[str]) -> AsyncIterator[str]:
        """Start the producer and return a reader over its frames."""

    @abstractmethod
    async def resume(self, stream_id: str) -> Optional[AsyncIterator[str]]:
        """Reader that replays and follows a live stream; None if finished or unknown."""


class InMemoryStreamRegistry(StreamRegistry):
    """
    Process-local registry.

    Finished streams are remembered for replay_ttl seconds so resume() can tell
    them apart from live ones, then forgotten.
    """

    def __init__(self, replay_ttl: int = STREAM_REPLAY_TTL_SECONDS, clock=time.monotonic):
        self.replay_ttl = replay_ttl
        self._clock = clock
        self._streams: Dict[str, Broadcast] = {}

    def _evict_finished(self) -> None:
        cutoff = self._clock() - self.replay_ttl
        expired = [
            key for key, broadcast in self._streams.items()
            if broadcast.done and broadcast.finished_at is not None and broadcast.finished_at < cutoff
        ]
        for key in expired:
            del self._streams[key]

    async def register(self, stream_id: str, chat_id: str, producer: AsyncIterator[str]) -> AsyncIterator[str]:
        self._evict_finished()
        broadcast = Broadcast(stream_id, chat_id)
        self._streams[stream_id] = broadcast
        _spawn(broadcast.pump(producer))
        logger.debug(f"Stream registered: stream_id={stream_id}, chat_id={chat_id}")
        return broadcast.follow()

    async def resume(self, stream_id: str) -> Optional[AsyncIterator[str]]:
        self._evict_finished()
        broadcast = self._streams.get(stream_id)
        if broadcast is None or broadcast.done:
            return None
        return broadcast.follow()

    def is_finished(self, stream_id: str) -> bool:
        broadcast = self._streams.get(stream_id)
        return broadcast is not None and broadcast.done


class RedisStreamRegistry(StreamRegistry):
    """
    Registry backed by Redis streams.

    register() opens the key with a marker entry before the producer starts.
    Every frame is appended with XADD; a final entry marks the end. Readers on
    any process XREAD from the beginning. Every write refreshes the key TTL, so
    a key expires replay_ttl seconds after its last frame, even when the
    producing worker dies without writing the end marker.
    """

    OPEN_FIELD = "open"
    DONE_FIELD = "done"
    FRAME_FIELD = "frame"

    def __init__(self, client: aioredis.Redis, replay_ttl: int = STREAM_REPLAY_TTL_SECONDS, prefix: str = "turn-stream", block_ms: int = 5000):
        self.client = client
        self.replay_ttl = replay_ttl
        self.prefix = prefix
        self.block_ms = block_ms

    def _key(self, stream_id: str) -> str:
        return f"{self.prefix}:{stream_id}"

    async def _write(self, key: str, fields: Dict[str, str]) -> None:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.xadd(key, fields)
            pipe.expire(key, self.replay_ttl)
            await pipe.execute()

    async def _pump(self, stream_id: str, producer: AsyncIterator[str]) -> None:
        key = self._key(stream_id)
        try:
            async for frame in producer:
                await self._write(key, {self.FRAME_FIELD: frame})
        except Exception as e:
            logger.error(f"Stream producer failed: stream_id={stream_id}, error={e}", exc_info=True)
            await self._write(key, {self.FRAME_FIELD: events.error_event().encode()})
        finally:
            await self._write(key, {self.DONE_FIELD: "1"})

    async def _follow(self, stream_id: str) -> AsyncIterator[str]:
        key = self._key(stream_id)
        last_id = "0-0"
        while True:
            response = await self.client.xread({key: last_id}, block=self.block_ms, count=100)
            if not response:
                if not await self.client.exists(key):
                    return
                continue
            for _, entries in response:
                for entry_id, fields in entries:
                    last_id = entry_id
                    if self.DONE_FIELD in fields:
                        return
                    if self.FRAME_FIELD in fields:
                        yield fields[self.FRAME_FIELD]

    async def register(self, stream_id: str, chat_id: str, producer: AsyncIterator[str]) -> AsyncIterator[str]:
        await self._write(self._key(stream_id), {self.OPEN_FIELD: chat_id})
        _spawn(self._pump(stream_id, producer))
        logger.debug(f"Stream registered in Redis: stream_id={stream_id}, chat_id={chat_id}")
        return self._follow(stream_id)

    async def resume(self, stream_id: str) -> Optional[AsyncIterator[str]]:
        key = self._key(stream_id)
        if not await self.client.exists(key):
            return None
        last = await self.client.xrevrange(key, count=1)
        if last and self.DONE_FIELD in last[0][1]:
            return None
        return self._follow(stream_id)


def build_stream_registry(backend: str = STREAM_BACKEND, redis_url: str = REDIS_URL) -> Optional[StreamRegistry]:
    """Create the configured registry, or None when resumable streams are disabled."""
    if backend == "none":
        logger.info("Resumable streams are disabled")
        return None
    if backend == "redis":
        if not redis_url:
            logger.info("Resumable streams are disabled due to missing REDIS_URL")
            return None
        return RedisStreamRegistry(aioredis.Redis.from_url(redis_url, decode_responses=True))
    return InMemoryStreamRegistry()


_registry: Optional[StreamRegistry] = None
_registry_built = False


def get_stream_registry() -> Optional[StreamRegistry]:
    """FastAPI dependency returning the process-wide registry (None if disabled)."""
    global _registry, _registry_built
    if not _registry_built:
        _registry = build_stream_registry()
        _registry_built = True
    return _registry
