"""
Live Synchronization

Keeps staff views of orders and waiter calls current by merging two
sources of truth:

    - Polling: re-fetch every ``POLL_INTERVAL_SECONDS`` (always on)
    - Push: re-fetch as soon as the change feed reports a write

Both paths call the same re-fetch-and-replace routine, so the consumer
always receives the complete, freshly queried list. A failed or missing
subscription simply leaves the view on polling.

The change trackers turn consecutive snapshots into staff notifications
(new order, status change, table needs assistance), reporting each new
record at most once.

Usage:
    live = await subscribe_to_orders(send_snapshot, payment_status=PaymentStatus.PAID)
    ...
    await live.stop()
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from datetime import tzinfo
from typing import Any, Awaitable, Callable, Optional, Sequence
from zoneinfo import ZoneInfo

from resto.core.config import get_settings
from resto.database import async_session_maker
from resto.models import OrderStatus, PaymentStatus, WaiterCallStatus
from resto.services import store
from resto.services.analytics import as_utc, format_currency
from resto.services.realtime import (
    BaseChangeFeed,
    ChangeEvent,
    Subscription,
    get_change_feed,
)

logger = logging.getLogger(__name__)

Fetch = Callable[[], Awaitable[Sequence[Any]]]
SnapshotCallback = Callable[[Sequence[Any]], Awaitable[None]]


# =============================================================================
# LIVE QUERY
# =============================================================================

class LiveQuery:
    """
    A query whose result is re-delivered whenever it may have changed.

    Re-fetches never overlap: a change arriving while a fetch is running
    marks the result stale and exactly one follow-up fetch runs when the
    current one finishes.
    """

    def __init__(
        self,
        fetch: Fetch,
        callback: SnapshotCallback,
        table: str,
        feed: Optional[BaseChangeFeed] = None,
        poll_interval: Optional[float] = None,
    ):
        self._fetch = fetch
        self._callback = callback
        self.table = table
        self._feed = feed or get_change_feed()
        if poll_interval is None:
            poll_interval = get_settings().poll_interval_seconds
        self.poll_interval = poll_interval

        self._lock = asyncio.Lock()
        self._stale = False
        self._stopped = False
        self._poll_task: Optional[asyncio.Task] = None
        self._subscription: Optional[Subscription] = None
        self.refresh_count = 0

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    async def start(self) -> "LiveQuery":
        """Deliver the initial snapshot, then start polling and listening."""
        await self.refresh()
        self._poll_task = asyncio.create_task(self._poll())

        try:
            self._subscription = await self._feed.subscribe(self.table, self._on_change)
            logger.debug(f"Live {self.table}: subscribed via {self._feed.provider_name}")
        except Exception as e:
            logger.error(f"Error setting up {self.table} subscription, polling only: {e}")

        return self

    async def refresh(self) -> None:
        """Re-fetch and deliver the snapshot, coalescing concurrent requests."""
        if self._stopped:
            return
        if self._lock.locked():
            self._stale = True
            return

        async with self._lock:
            while True:
                self._stale = False
                try:
                    records = await self._fetch()
                except store.DataAccessError as e:
                    logger.error(f"Live {self.table}: fetch failed, retrying on next poll: {e}")
                else:
                    self.refresh_count += 1
                    await self._callback(records)
                if not self._stale or self._stopped:
                    break

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.refresh()
            except Exception as e:
                logger.warning(f"Live {self.table}: poll delivery failed: {e}")

    async def _on_change(self, event: ChangeEvent) -> None:
        logger.debug(f"Live {self.table}: {event.event_type.value} {event.record_id}")
        await self.refresh()

    async def stop(self) -> None:
        """Stop polling and unsubscribe. Safe to call more than once."""
        if self._stopped:
            return
        self._stopped = True

        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass

        if self._subscription is not None:
            try:
                await self._subscription.unsubscribe()
            except Exception as e:
                logger.info(f"Error unsubscribing from {self.table}, polling was stopped: {e}")
            self._subscription = None


def orders_fetcher(
    status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
) -> Fetch:
    async def fetch():
        async with async_session_maker() as session:
            return await store.get_orders(session, status=status, payment_status=payment_status)
    return fetch


def waiter_calls_fetcher(status: Optional[WaiterCallStatus] = None) -> Fetch:
    async def fetch():
        async with async_session_maker() as session:
            return await store.get_waiter_calls(session, status=status)
    return fetch


async def subscribe_to_orders(
    callback: SnapshotCallback,
    status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    feed: Optional[BaseChangeFeed] = None,
    poll_interval: Optional[float] = None,
) -> LiveQuery:
    """Start a live view of orders; returns the running LiveQuery."""
    live = LiveQuery(
        orders_fetcher(status, payment_status),
        callback,
        table=store.ORDERS_TABLE,
        feed=feed,
        poll_interval=poll_interval,
    )
    return await live.start()


async def subscribe_to_waiter_calls(
    callback: SnapshotCallback,
    status: Optional[WaiterCallStatus] = None,
    feed: Optional[BaseChangeFeed] = None,
    poll_interval: Optional[float] = None,
) -> LiveQuery:
    live = LiveQuery(
        waiter_calls_fetcher(status),
        callback,
        table=store.WAITER_CALLS_TABLE,
        feed=feed,
        poll_interval=poll_interval,
    )
    return await live.start()


# =============================================================================
# CHANGE TRACKING
# =============================================================================

@dataclass
class Notification:
    """Transient message for staff, rendered as a toast."""
    kind: str
    title: str
    description: str
    level: str = "default"
    record_id: Optional[str] = None
    table_id: Optional[str] = None
    # ISO time of the underlying record, for display in the viewer's time zone
    timestamp: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


STATUS_LEVELS = {
    OrderStatus.PREPARING: "info",
    OrderStatus.COMPLETED: "success",
    OrderStatus.CANCELLED: "error",
}


class OrderChangeTracker:
    """
    Diff successive order snapshots into notifications.

    The first snapshot only primes the tracker. Afterwards an order never
    seen before is announced once, if it is still pending and unpaid; an
    order whose status differs from the previous snapshot is announced as
    a status change.
    """

    def __init__(self, currency: Optional[str] = None):
        self.currency = currency or get_settings().currency
        self._seen: set[str] = set()
        self._previous_status: dict[str, OrderStatus] = {}
        self._primed = False

    def update(self, orders: Sequence[Any]) -> list[Notification]:
        if not self._primed:
            for order in orders:
                self._seen.add(order.id)
                self._previous_status[order.id] = OrderStatus(order.status)
            self._primed = True
            return []

        notifications = []
        for order in orders:
            status = OrderStatus(order.status)
            previous = self._previous_status.get(order.id)

            if order.id not in self._seen:
                if status == OrderStatus.PENDING and order.payment_status == PaymentStatus.UNPAID:
                    notifications.append(Notification(
                        kind="new_order",
                        title=f"New Order from Table {order.table_id}",
                        description=f"{order.item_count} items - {format_currency(order.total, self.currency)}",
                        level="success",
                        record_id=order.id,
                        table_id=order.table_id,
                    ))
                self._seen.add(order.id)
            elif previous is not None and previous != status:
                notifications.append(Notification(
                    kind="status_change",
                    title=f"Order Status Changed: Table {order.table_id}",
                    description=f"Status updated from {previous.value} to {status.value}",
                    level=STATUS_LEVELS.get(status, "default"),
                    record_id=order.id,
                    table_id=order.table_id,
                ))

            self._previous_status[order.id] = status

        return notifications


class WaiterCallChangeTracker:
    """
    Announce each pending waiter call once, after the first snapshot.

    Only announced calls are remembered, so a call that is reopened after
    being completed elsewhere is announced when it turns pending.
    """

    def __init__(self, tz: Optional[tzinfo] = None):
        self.tz = tz or ZoneInfo(get_settings().restaurant_timezone)
        self._seen: set[str] = set()
        self._primed = False

    def update(self, calls: Sequence[Any]) -> list[Notification]:
        if not self._primed:
            self._seen.update(call.id for call in calls)
            self._primed = True
            return []

        notifications = []
        for call in calls:
            if call.id in self._seen or call.status != WaiterCallStatus.PENDING:
                continue
            created_at = as_utc(call.created_at)
            received = created_at.astimezone(self.tz).strftime("%I:%M %p").lstrip("0")
            notifications.append(Notification(
                kind="waiter_call",
                title=f"Table {call.table_id} needs assistance!",
                description=f"Waiter call received at {received}",
                level="error",
                record_id=call.id,
                table_id=call.table_id,
                timestamp=created_at.isoformat(),
            ))
            self._seen.add(call.id)
        return notifications
