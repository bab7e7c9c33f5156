"""
Redis Change Feed

Publishes change events on Redis pub/sub so that every worker process
serving live views hears about writes made by any other process.

Channel layout: ``<CHANGE_FEED_PREFIX>:<table>``, payload is the JSON
form of ``ChangeEvent``.
"""

import asyncio
import json
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from resto.core.config import get_settings
from resto.services.realtime.base import (
    BaseChangeFeed,
    ChangeCallback,
    ChangeEvent,
    Subscription,
)

logger = logging.getLogger(__name__)


class _RedisSubscription(Subscription):

    def __init__(self, pubsub, task: asyncio.Task, channel: str):
        self._pubsub = pubsub
        self._task = task
        self._channel = channel

    async def unsubscribe(self) -> None:
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        await self._pubsub.unsubscribe(self._channel)
        await self._pubsub.aclose()
        logger.debug(f"Unsubscribed from {self._channel}")


class RedisChangeFeed(BaseChangeFeed):
    """Change feed backed by Redis pub/sub."""

    def __init__(self, redis_url: Optional[str] = None, prefix: Optional[str] = None):
        settings = get_settings()
        self.redis_url = redis_url or settings.redis_url
        self.prefix = prefix or settings.change_feed_prefix
        self._client = aioredis.Redis.from_url(self.redis_url, decode_responses=True)
        logger.info(f"RedisChangeFeed initialized (prefix={self.prefix})")

    @property
    def provider_name(self) -> str:
        return "redis"

    def channel_for(self, table: str) -> str:
        return f"{self.prefix}:{table}"

    async def publish(self, event: ChangeEvent) -> None:
        channel = self.channel_for(event.table)
        receivers = await self._client.publish(channel, json.dumps(event.to_dict()))
        logger.debug(f"Published {event.event_type.value} on {channel} ({receivers} receiver(s))")

    async def subscribe(self, table: str, callback: ChangeCallback) -> Subscription:
        channel = self.channel_for(table)
        pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(channel)
        task = asyncio.create_task(self._listen(pubsub, callback, channel))
        logger.debug(f"Subscribed to {channel}")
        return _RedisSubscription(pubsub, task, channel)

    async def _listen(self, pubsub, callback: ChangeCallback, channel: str) -> None:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                event = ChangeEvent.from_dict(json.loads(message["data"]))
            except (ValueError, KeyError) as e:
                logger.warning(f"Ignoring malformed change event on {channel}: {e}")
                continue
            try:
                await callback(event)
            except Exception as e:
                logger.error(f"Change feed subscriber failed on {channel}: {e}")

    async def health_check(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.error(f"Redis change feed health check failed: {e}")
            return False

    async def close(self) -> None:
        await self._client.aclose()
