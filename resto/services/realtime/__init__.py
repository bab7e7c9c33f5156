"""
Change Feed Factory

Returns the in-memory or Redis change feed based on ENV_MODE.

Environment Switching:
    - ENV_MODE=development → InMemoryChangeFeed (single process)
    - ENV_MODE=staging / production → RedisChangeFeed (shared across workers)
"""

import logging
from functools import lru_cache

from resto.core.config import get_settings
from resto.services.realtime.base import (
    BaseChangeFeed,
    ChangeCallback,
    ChangeEvent,
    ChangeType,
    Subscription,
)
from resto.services.realtime.memory import InMemoryChangeFeed
from resto.services.realtime.redis_feed import RedisChangeFeed

logger = logging.getLogger(__name__)


@lru_cache()
def get_change_feed() -> BaseChangeFeed:
    """Get the configured change feed."""
    settings = get_settings()

    if settings.use_real_services:
        logger.info(f"Change Feed: Using RedisChangeFeed ({settings.env_mode.value} mode)")
        return RedisChangeFeed()
    logger.info("Change Feed: Using InMemoryChangeFeed (development mode)")
    return InMemoryChangeFeed()


def reset_change_feed() -> None:
    """Clear the cached feed instance."""
    get_change_feed.cache_clear()


__all__ = [
    "get_change_feed",
    "reset_change_feed",
    "BaseChangeFeed",
    "ChangeCallback",
    "ChangeEvent",
    "ChangeType",
    "Subscription",
    "InMemoryChangeFeed",
    "RedisChangeFeed",
]
