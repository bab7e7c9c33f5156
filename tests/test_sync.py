import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from resto.models import OrderStatus, PaymentStatus, WaiterCallStatus
from resto.services.realtime import ChangeEvent, ChangeType, InMemoryChangeFeed
from resto.services.store import DataAccessError
from resto.services.sync import LiveQuery, OrderChangeTracker, WaiterCallChangeTracker


class _BrokenFeed(InMemoryChangeFeed):
    async def subscribe(self, table, callback):
        raise ConnectionError("feed offline")


def _order(order_id, table_id="3", status=OrderStatus.PENDING, payment=PaymentStatus.UNPAID):
    return SimpleNamespace(
        id=order_id,
        table_id=table_id,
        status=status,
        payment_status=payment,
        item_count=3,
        total=12.5,
    )


def _call(call_id, table_id="5", status=WaiterCallStatus.PENDING):
    return SimpleNamespace(
        id=call_id,
        table_id=table_id,
        status=status,
        created_at=datetime(2024, 5, 10, 14, 5, tzinfo=timezone.utc),
    )


# =============================================================================
# LIVE QUERY
# =============================================================================

def test_live_query_delivers_snapshot_then_refetches_on_change() -> None:
    async def scenario():
        feed = InMemoryChangeFeed()
        rows = ["a"]
        received = []

        async def fetch():
            return list(rows)

        async def callback(records):
            received.append(records)

        live = await LiveQuery(fetch, callback, table="orders", feed=feed, poll_interval=60).start()
        assert received == [["a"]]
        assert live.is_subscribed

        rows.append("b")
        await feed.publish(ChangeEvent(table="orders", event_type=ChangeType.INSERT, record_id="b"))
        await asyncio.sleep(0.05)
        assert received[-1] == ["a", "b"]

        # Other tables do not trigger a refresh
        await feed.publish(ChangeEvent(table="waiter_calls", event_type=ChangeType.INSERT))
        await asyncio.sleep(0.05)
        assert len(received) == 2

        await live.stop()
        await live.stop()
        assert feed.subscriber_count("orders") == 0

    asyncio.run(scenario())


def test_live_query_polls_without_change_events() -> None:
    async def scenario():
        received = []

        async def fetch():
            return []

        async def callback(records):
            received.append(records)

        live = await LiveQuery(fetch, callback, "orders", feed=InMemoryChangeFeed(), poll_interval=0.02).start()
        await asyncio.sleep(0.15)
        await live.stop()
        count = live.refresh_count
        await asyncio.sleep(0.05)

        assert count >= 3
        assert live.refresh_count == count

    asyncio.run(scenario())


def test_concurrent_refreshes_coalesce_into_one_follow_up() -> None:
    async def scenario():
        gate = asyncio.Event()
        fetches = 0

        async def fetch():
            nonlocal fetches
            fetches += 1
            await gate.wait()
            return [fetches]

        received = []

        async def callback(records):
            received.append(records)

        live = LiveQuery(fetch, callback, "orders", feed=InMemoryChangeFeed(), poll_interval=60)
        first = asyncio.create_task(live.refresh())
        await asyncio.sleep(0)

        await live.refresh()
        await live.refresh()
        await live.refresh()
        gate.set()
        await first

        assert fetches == 2
        assert received == [[1], [2]]

    asyncio.run(scenario())


def test_subscription_failure_falls_back_to_polling() -> None:
    async def scenario():
        received = []

        async def fetch():
            return ["row"]

        async def callback(records):
            received.append(records)

        live = await LiveQuery(fetch, callback, "orders", feed=_BrokenFeed(), poll_interval=0.02).start()
        await asyncio.sleep(0.1)
        await live.stop()

        assert not live.is_subscribed
        assert len(received) >= 2

    asyncio.run(scenario())


def test_failed_fetch_keeps_previous_view() -> None:
    async def scenario():
        received = []

        async def fetch():
            raise DataAccessError("Error fetching orders")

        async def callback(records):
            received.append(records)

        live = await LiveQuery(fetch, callback, "orders", feed=InMemoryChangeFeed(), poll_interval=60).start()
        await live.stop()

        assert received == []
        assert live.refresh_count == 0

    asyncio.run(scenario())


# =============================================================================
# CHANGE TRACKERS
# =============================================================================

def test_first_order_snapshot_only_primes_tracker() -> None:
    tracker = OrderChangeTracker(currency="USD")
    assert tracker.update([_order("o1"), _order("o2")]) == []
    assert tracker.update([_order("o1"), _order("o2")]) == []


def test_new_pending_order_is_announced_once() -> None:
    tracker = OrderChangeTracker(currency="USD")
    tracker.update([])

    notifications = tracker.update([_order("o1")])
    assert len(notifications) == 1
    assert notifications[0].kind == "new_order"
    assert notifications[0].title == "New Order from Table 3"
    assert notifications[0].description == "3 items - $12.50"
    assert notifications[0].level == "success"

    assert tracker.update([_order("o1")]) == []


def test_new_order_that_is_already_paid_is_not_announced() -> None:
    tracker = OrderChangeTracker(currency="USD")
    tracker.update([])
    assert tracker.update([_order("o1", payment=PaymentStatus.PAID)]) == []


def test_status_change_is_announced() -> None:
    tracker = OrderChangeTracker(currency="USD")
    tracker.update([_order("o1")])

    notifications = tracker.update([_order("o1", status=OrderStatus.PREPARING)])
    assert len(notifications) == 1
    assert notifications[0].kind == "status_change"
    assert notifications[0].title == "Order Status Changed: Table 3"
    assert notifications[0].description == "Status updated from pending to preparing"
    assert notifications[0].level == "info"

    cancelled = tracker.update([_order("o1", status=OrderStatus.CANCELLED)])
    assert cancelled[0].level == "error"


def test_waiter_call_tracker_announces_new_pending_calls() -> None:
    tracker = WaiterCallChangeTracker()
    assert tracker.update([_call("c1")]) == []

    notifications = tracker.update([_call("c2", table_id="7"), _call("c1")])
    assert len(notifications) == 1
    assert notifications[0].title == "Table 7 needs assistance!"
    assert notifications[0].description == "Waiter call received at 2:05 PM"
    assert notifications[0].to_dict()["record_id"] == "c2"

    assert tracker.update([_call("c2", table_id="7"), _call("c1")]) == []
    assert tracker.update([_call("c3", status=WaiterCallStatus.COMPLETED)]) == []


def test_waiter_call_time_is_shown_in_restaurant_time_zone() -> None:
    tracker = WaiterCallChangeTracker(tz=timezone(timedelta(hours=8)))
    tracker.update([])

    call = SimpleNamespace(
        id="c9",
        table_id="2",
        status=WaiterCallStatus.PENDING,
        created_at=datetime(2024, 5, 10, 19, 5, tzinfo=timezone(timedelta(hours=8))),
    )
    notification = tracker.update([call])[0]

    assert notification.description == "Waiter call received at 7:05 PM"
    assert notification.timestamp == "2024-05-10T11:05:00+00:00"


def test_reopened_waiter_call_is_announced() -> None:
    tracker = WaiterCallChangeTracker(tz=timezone.utc)
    tracker.update([])

    assert tracker.update([_call("c1", status=WaiterCallStatus.COMPLETED)]) == []
    reopened = tracker.update([_call("c1")])
    assert [n.record_id for n in reopened] == ["c1"]
    assert tracker.update([_call("c1")]) == []


def test_explicit_zero_poll_interval_is_kept() -> None:
    async def fetch():
        return []

    async def callback(records):
        pass

    live = LiveQuery(fetch, callback, "orders", feed=InMemoryChangeFeed(), poll_interval=0)
    assert live.poll_interval == 0
