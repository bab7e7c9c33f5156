import asyncio
from types import SimpleNamespace

import pytest

from resto.models import OrderStatus, PaymentStatus, WaiterCallStatus
from resto.seed import DEMO_MENU, seed_demo_menu
from resto.services import store
from resto.services.realtime import get_change_feed


def _pick(product_id, quantity):
    return SimpleNamespace(product_id=product_id, quantity=quantity)


def test_seed_only_fills_an_empty_menu(run_db) -> None:
    async def scenario(session):
        first = await seed_demo_menu(session)
        second = await seed_demo_menu(session)
        products = await store.get_products(session)
        return first, second, products

    first, second, products = run_db(scenario)

    assert first == len(DEMO_MENU)
    assert second == 0
    assert len(products) == len(DEMO_MENU)
    assert [p.category for p in products] == sorted(p.category for p in products)


def test_products_grouped_by_category(run_db) -> None:
    async def scenario(session):
        await seed_demo_menu(session)
        drinks = await store.get_products_by_category(session, "Drinks")
        grouped = store.group_by_category(await store.get_products(session))
        return drinks, grouped

    drinks, grouped = run_db(scenario)

    assert {p.name for p in drinks} == {"Jasmine Tea", "Lychee Soda", "Tsingtao Beer"}
    assert list(grouped) == ["Desserts", "Drinks", "Mains", "Sides", "Starters"]


def test_create_order_prices_items_from_the_menu(run_db) -> None:
    async def scenario(session):
        await seed_demo_menu(session)
        by_name = {p.name: p for p in await store.get_products(session)}
        tofu, tea = by_name["Mapo Tofu"], by_name["Jasmine Tea"]

        events = []

        async def listener(event):
            events.append(event)

        await get_change_feed().subscribe(store.ORDERS_TABLE, listener)
        order = await store.create_order(session, "6", [_pick(tofu.id, 2), _pick(tea.id, 1)])
        await asyncio.sleep(0.01)
        return order, events

    order, events = run_db(scenario)

    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.UNPAID
    assert order.total == round(13.50 * 2 + 3.50, 2)
    assert order.item_count == 3
    assert [item["name"] for item in order.items] == ["Mapo Tofu", "Jasmine Tea"]
    assert [(e.event_type.value, e.record_id) for e in events] == [("INSERT", order.id)]


def test_create_order_rejects_unknown_and_unavailable_products(run_db) -> None:
    async def scenario(session):
        await seed_demo_menu(session)
        soda = (await store.get_products_by_category(session, "Drinks"))[0]
        soda.available = False
        await session.commit()

        with pytest.raises(store.OrderValidationError, match="Unavailable menu items"):
            await store.create_order(session, "1", [_pick("missing", 1)])
        with pytest.raises(store.OrderValidationError):
            await store.create_order(session, "1", [_pick(soda.id, 1)])
        with pytest.raises(store.OrderValidationError, match="at least one item"):
            await store.create_order(session, "1", [])
        return await store.get_orders(session)

    assert run_db(scenario) == []


def test_order_status_and_payment_updates(run_db) -> None:
    async def scenario(session):
        await seed_demo_menu(session)
        product = (await store.get_products(session))[0]
        order = await store.create_order(session, "2", [_pick(product.id, 1)])

        await store.update_order_status(session, order.id, OrderStatus.PREPARING)
        await store.update_payment_status(session, order.id, PaymentStatus.PAID)

        preparing = await store.get_orders(session, status=OrderStatus.PREPARING)
        unpaid = await store.get_orders(session, payment_status=PaymentStatus.UNPAID)
        stored = await store.get_order(session, order.id)
        return order, preparing, unpaid, stored

    order, preparing, unpaid, stored = run_db(scenario)

    assert [o.id for o in preparing] == [order.id]
    assert unpaid == []
    assert stored.status == OrderStatus.PREPARING
    assert stored.payment_status == PaymentStatus.PAID


def test_missing_records_raise_not_found(run_db) -> None:
    async def scenario(session):
        with pytest.raises(store.RecordNotFoundError, match="Order nope not found"):
            await store.update_order_status(session, "nope", OrderStatus.COMPLETED)
        with pytest.raises(store.RecordNotFoundError, match="Waiter call nope not found"):
            await store.update_waiter_call_status(session, "nope", WaiterCallStatus.COMPLETED)

    run_db(scenario)


def test_waiter_call_lifecycle(run_db) -> None:
    async def scenario(session):
        first = await store.call_waiter(session, "4")
        second = await store.call_waiter(session, "9")

        done = await store.update_waiter_call_status(session, first.id, WaiterCallStatus.COMPLETED)
        completed_at = done.completed_at
        pending = await store.get_waiter_calls(session, status=WaiterCallStatus.PENDING)

        reopened = await store.update_waiter_call_status(session, first.id, WaiterCallStatus.PENDING)
        return second, completed_at, pending, reopened, await store.get_waiter_calls(session)

    second, completed_at, pending, reopened, everything = run_db(scenario)

    assert completed_at is not None
    assert [c.id for c in pending] == [second.id]
    assert reopened.completed_at is None
    assert [c.table_id for c in everything] == ["9", "4"]


def test_calculate_total_rounds_to_cents() -> None:
    items = [{"price": 0.1, "quantity": 3}, {"price": 15.9, "quantity": 1}]
    assert store.calculate_total(items) == 16.2


def test_completing_a_call_twice_keeps_the_first_stamp(run_db) -> None:
    async def scenario(session):
        call = await store.call_waiter(session, "3")
        first = await store.update_waiter_call_status(session, call.id, WaiterCallStatus.COMPLETED)
        stamp = first.completed_at
        await asyncio.sleep(0.05)
        again = await store.update_waiter_call_status(session, call.id, WaiterCallStatus.COMPLETED)
        return stamp, again.completed_at

    stamp, again = run_db(scenario)

    assert again == stamp
