from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict

import redis.asyncio as redis
from redis.exceptions import RedisError

from hiretrack.core.config import settings

logger = logging.getLogger("hiretrack.events")

ACTIVITY_CHANNEL = "hiretrack:activity"
LISTENER_RETRY_SECONDS = 5.0


class EventBus:
    """Fans activity notifications out to in-process subscribers.

    With a Redis URL configured, events go through Redis pub/sub so every
    process serving the activity stream sees them.
    """

    def __init__(
        self,
        redis_url: str = "",
        channel: str = ACTIVITY_CHANNEL,
        queue_size: int = 200,
        listener_retry_seconds: float = LISTENER_RETRY_SECONDS,
    ) -> None:
        self._subscribers: set[asyncio.Queue[str]] = set()
        self._lock = asyncio.Lock()
        self._redis_url = (redis_url or "").strip()
        self._redis: redis.Redis | None = None
        self._redis_lock = asyncio.Lock()
        self._listener_task: asyncio.Task | None = None
        self._listener_retry_seconds = listener_retry_seconds
        self._listener_retry_at = 0.0
        self._channel = channel
        self._queue_size = queue_size

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def _broadcast(self, data: str) -> None:
        async with self._lock:
            for queue in list(self._subscribers):
                # Slow consumers lose their oldest event rather than blocking publishers.
                if queue.full():
                    try:
                        queue.get_nowait()
                    except asyncio.QueueEmpty:
                        pass
                try:
                    queue.put_nowait(data)
                except asyncio.QueueFull:
                    continue

    async def _ensure_redis(self) -> bool:
        if not self._redis_url:
            return False
        if self._redis is None:
            async with self._redis_lock:
                if self._redis is None:
                    self._redis = redis.from_url(self._redis_url, decode_responses=True)
        await self._ensure_listener()
        return True

    async def _ensure_listener(self) -> None:
        if self._listener_task and not self._listener_task.done():
            return
        loop = asyncio.get_running_loop()
        if loop.time() < self._listener_retry_at:
            return
        self._listener_task = loop.create_task(self._listen())
        self._listener_task.add_done_callback(self._on_listener_done)

    def _on_listener_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        self._listener_retry_at = task.get_loop().time() + self._listener_retry_seconds
        logger.warning(
            "event_listener_failed",
            extra={"channel": self._channel, "error": repr(error), "retry_seconds": self._listener_retry_seconds},
        )

    async def _listen(self) -> None:
        if not self._redis:
            return
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if not message or message.get("type") != "message":
                    continue
                data = message.get("data")
                if isinstance(data, bytes):
                    data = data.decode()
                if not isinstance(data, str):
                    continue
                await self._broadcast(data)
        finally:
            await pubsub.close()

    async def subscribe(self) -> asyncio.Queue[str]:
        queue: asyncio.Queue[str] = asyncio.Queue(maxsize=self._queue_size)
        async with self._lock:
            self._subscribers.add(queue)
        await self._ensure_redis()
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[str]) -> None:
        async with self._lock:
            self._subscribers.discard(queue)

    async def publish(self, payload: Dict[str, Any]) -> None:
        data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)
        if await self._ensure_redis() and self._redis:
            try:
                await self._redis.publish(self._channel, data)
                return
            except RedisError:
                logger.warning("event_publish_fallback", extra={"channel": self._channel})
        await self._broadcast(data)

    async def close(self) -> None:
        if self._listener_task and not self._listener_task.done():
            self._listener_task.cancel()
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


event_bus = EventBus(settings.redis_url)
