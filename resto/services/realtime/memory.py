"""
In-Memory Change Feed

Process-local fan-out used in development and tests. Every subscriber
callback runs as its own task so a slow or failing listener never holds
up the write that published the event.
"""

import asyncio
import itertools
import logging

from resto.services.realtime.base import (
    BaseChangeFeed,
    ChangeCallback,
    ChangeEvent,
    Subscription,
)

logger = logging.getLogger(__name__)


class _MemorySubscription(Subscription):

    def __init__(self, feed: "InMemoryChangeFeed", table: str, token: int):
        self._feed = feed
        self._table = table
        self._token = token

    async def unsubscribe(self) -> None:
        self._feed._remove(self._table, self._token)


class InMemoryChangeFeed(BaseChangeFeed):
    """Change feed that only reaches subscribers in this process."""

    def __init__(self):
        self._subscribers: dict[str, dict[int, ChangeCallback]] = {}
        self._tokens = itertools.count(1)
        self._tasks: set[asyncio.Task] = set()
        logger.info("InMemoryChangeFeed initialized")

    @property
    def provider_name(self) -> str:
        return "memory"

    def subscriber_count(self, table: str) -> int:
        return len(self._subscribers.get(table, {}))

    async def publish(self, event: ChangeEvent) -> None:
        callbacks = list(self._subscribers.get(event.table, {}).values())
        logger.debug(
            f"Publishing {event.event_type.value} on {event.table} "
            f"to {len(callbacks)} subscriber(s)"
        )
        for callback in callbacks:
            task = asyncio.create_task(self._deliver(callback, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(self, callback: ChangeCallback, event: ChangeEvent) -> None:
        try:
            await callback(event)
        except Exception as e:
            logger.error(f"Change feed subscriber failed on {event.table}: {e}")

    async def subscribe(self, table: str, callback: ChangeCallback) -> Subscription:
        token = next(self._tokens)
        self._subscribers.setdefault(table, {})[token] = callback
        logger.debug(f"Subscribed to {table} (token={token})")
        return _MemorySubscription(self, table, token)

    def _remove(self, table: str, token: int) -> None:
        self._subscribers.get(table, {}).pop(token, None)

    async def health_check(self) -> bool:
        """In-memory feed is always available."""
        return True

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._subscribers.clear()
