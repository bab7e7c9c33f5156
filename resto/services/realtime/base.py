"""
Change Feed Abstract Base Class

Defines the interface for announcing that rows of a table changed and
for listening to those announcements. Live views use it as a push
channel next to their polling fallback; events carry no row data, a
listener re-fetches what it needs.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class ChangeEvent:
    """
    A single change notification.

    Attributes:
        table: Table whose rows changed (``orders``, ``waiter_calls``...)
        event_type: Kind of change
        record_id: Primary key of the changed row, when known
        timestamp: When the change was published
    """
    table: str
    event_type: ChangeType
    record_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "table": self.table,
            "event_type": self.event_type.value,
            "record_id": self.record_id,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChangeEvent":
        return cls(
            table=data["table"],
            event_type=ChangeType(data["event_type"]),
            record_id=data.get("record_id"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]


class Subscription(ABC):
    """Handle returned by ``subscribe``."""

    @abstractmethod
    async def unsubscribe(self) -> None:
        """Stop delivering events to the callback."""
        pass


class BaseChangeFeed(ABC):
    """Abstract base class for change feeds."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        """Announce a change to every subscriber of ``event.table``."""
        pass

    @abstractmethod
    async def subscribe(self, table: str, callback: ChangeCallback) -> Subscription:
        """Register ``callback`` for changes on ``table``."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check feed connectivity."""
        pass

    async def close(self) -> None:
        """Release connections held by the feed."""
        return None
