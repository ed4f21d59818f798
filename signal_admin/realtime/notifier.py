"""Redis pub/sub change notifications for live feeds."""

import asyncio
import logging
from collections import defaultdict
from typing import Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from signal_admin.config import settings

logger = logging.getLogger(__name__)

# Logical collections that publish changes
CHANNEL_SIGNALS = "signals"
CHANNEL_COLLECTORS = "collectors"


class ChangeNotifier:
    """
    Fans out "collection changed" events between service instances.

    Writers call ``publish`` after a commit. Live feeds register a local
    listener per collection; a single background task reads the Redis
    subscription and calls every listener for the changed collection.
    Notifications only wake feeds up early; feeds still poll, so a lost
    message delays an update but never loses it.
    """

    def __init__(self, redis_url: Optional[str] = None, prefix: Optional[str] = None):
        self.redis_url = redis_url or settings.redis_url
        self.prefix = prefix or settings.realtime_channel_prefix
        self._redis: Optional[redis.Redis] = None
        self._pubsub = None
        self._listener_task: Optional[asyncio.Task] = None
        self._listeners: dict[str, list[Callable[[], None]]] = defaultdict(list)

    async def _get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = await redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    def _channel(self, collection: str) -> str:
        return f"{self.prefix}:{collection}"

    async def start(self):
        """Subscribe to all collection channels and start dispatching."""
        if self._listener_task is not None:
            return
        redis_client = await self._get_redis()
        self._pubsub = redis_client.pubsub()
        await self._pubsub.psubscribe(f"{self.prefix}:*")
        self._listener_task = asyncio.create_task(self._listen())
        logger.info(f"Change notifier listening on {self.prefix}:*")

    async def _listen(self):
        prefix_len = len(self.prefix) + 1
        while True:
            try:
                async for message in self._pubsub.listen():
                    if message.get("type") != "pmessage":
                        continue
                    collection = message["channel"][prefix_len:]
                    self._dispatch(collection)
            except asyncio.CancelledError:
                raise
            except RedisError as e:
                # Feeds keep polling meanwhile
                logger.warning(f"Change notifier lost Redis subscription: {e}")
                await asyncio.sleep(1.0)

    def _dispatch(self, collection: str):
        for callback in list(self._listeners.get(collection, ())):
            callback()

    def add_listener(self, collection: str, callback: Callable[[], None]):
        self._listeners[collection].append(callback)

    def remove_listener(self, collection: str, callback: Callable[[], None]):
        listeners = self._listeners.get(collection)
        if listeners and callback in listeners:
            listeners.remove(callback)

    def listener_count(self, collection: str) -> int:
        return len(self._listeners.get(collection, ()))

    async def publish(self, collection: str) -> bool:
        """
        Announce that ``collection`` changed.

        Called after the write committed, so a failure here is logged and
        reported through the return value instead of raised.

        Returns:
            True if the message reached Redis
        """
        try:
            redis_client = await self._get_redis()
            await redis_client.publish(self._channel(collection), "changed")
            return True
        except RedisError as e:
            logger.warning(f"Failed to publish {collection} change: {e}")
            return False

    async def close(self):
        """Stop dispatching and close Redis connections."""
        if self._listener_task is not None:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        if self._redis:
            await self._redis.aclose()
            self._redis = None
