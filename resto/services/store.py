"""
Data Access Module

The single place where the application reads and writes products,
orders and waiter calls. Page views, the JSON API, live views and the
export task all go through these functions.

Every successful write publishes a ``ChangeEvent`` on the change feed so
live views re-fetch immediately instead of waiting for their next poll.
A failed publish is logged and otherwise ignored: the write already
committed and polling converges anyway.

Usage:
    from resto.services import store

    async with async_session_maker() as session:
        order = await store.create_order(session, "4", items)
"""

import logging
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from resto.models import (
    Order,
    OrderStatus,
    PaymentStatus,
    Product,
    WaiterCall,
    WaiterCallStatus,
    utcnow,
)
from resto.services.realtime import ChangeEvent, ChangeType, get_change_feed

logger = logging.getLogger(__name__)

ORDERS_TABLE = "orders"
WAITER_CALLS_TABLE = "waiter_calls"


# =============================================================================
# EXCEPTIONS
# =============================================================================

class DataAccessError(Exception):
    """A database operation failed."""


class RecordNotFoundError(DataAccessError):
    """The row to read or update does not exist."""


class OrderValidationError(ValueError):
    """The requested order cannot be placed as submitted."""


# =============================================================================
# HELPERS
# =============================================================================

async def _publish(table: str, event_type: ChangeType, record_id: Optional[str]) -> None:
    try:
        await get_change_feed().publish(
            ChangeEvent(table=table, event_type=event_type, record_id=record_id)
        )
    except Exception as e:
        logger.warning(f"Could not publish {event_type.value} on {table}: {e}")


async def _commit(session: AsyncSession, action: str) -> None:
    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Error {action}: {e}")
        raise DataAccessError(f"Error {action}") from e


async def _fetch_all(session: AsyncSession, query, action: str) -> list:
    try:
        result = await session.execute(query)
    except SQLAlchemyError as e:
        logger.error(f"Error {action}: {e}")
        raise DataAccessError(f"Error {action}") from e
    return list(result.scalars().all())


async def _get_by_id(session: AsyncSession, model, record_id: str, label: str):
    try:
        record = await session.get(model, record_id)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching {label} {record_id}: {e}")
        raise DataAccessError(f"Error fetching {label}") from e
    if record is None:
        raise RecordNotFoundError(f"{label.capitalize()} {record_id} not found")
    return record


# =============================================================================
# WAITER CALLS
# =============================================================================

async def call_waiter(session: AsyncSession, table_id: str) -> WaiterCall:
    """Record a pending waiter call for ``table_id``."""
    call = WaiterCall(
        table_id=table_id,
        status=WaiterCallStatus.PENDING,
        created_at=utcnow(),
    )
    session.add(call)
    await _commit(session, "calling waiter")
    await session.refresh(call)

    logger.info(f"Waiter called to table {table_id} (call {call.id[:8]})")
    await _publish(WAITER_CALLS_TABLE, ChangeType.INSERT, call.id)
    return call


async def get_waiter_calls(
    session: AsyncSession,
    status: Optional[WaiterCallStatus] = None,
) -> list[WaiterCall]:
    """All waiter calls, newest first."""
    query = select(WaiterCall).order_by(WaiterCall.created_at.desc())
    if status is not None:
        query = query.where(WaiterCall.status == status)
    return await _fetch_all(session, query, "fetching waiter calls")


async def update_waiter_call_status(
    session: AsyncSession,
    call_id: str,
    status: WaiterCallStatus,
) -> WaiterCall:
    """
    Set the status of a waiter call.

    Completing a call stamps ``completed_at`` once; completing it again
    keeps the first stamp. Reopening clears it so response times are only
    measured for the final completion.
    """
    call = await _get_by_id(session, WaiterCall, call_id, "waiter call")
    call.status = status
    if status == WaiterCallStatus.COMPLETED:
        if call.completed_at is None:
            call.completed_at = utcnow()
    else:
        call.completed_at = None
    await _commit(session, "updating waiter call status")

    logger.info(f"Waiter call {call_id[:8]} (table {call.table_id}) → {status.value}")
    await _publish(WAITER_CALLS_TABLE, ChangeType.UPDATE, call.id)
    return call


# =============================================================================
# PRODUCTS
# =============================================================================

async def get_products(session: AsyncSession) -> list[Product]:
    """Available products ordered by category, then name."""
    query = (
        select(Product)
        .where(Product.available.is_(True))
        .order_by(Product.category, Product.name)
    )
    return await _fetch_all(session, query, "fetching products")


async def get_products_by_category(session: AsyncSession, category: str) -> list[Product]:
    query = (
        select(Product)
        .where(Product.category == category, Product.available.is_(True))
        .order_by(Product.name)
    )
    return await _fetch_all(session, query, "fetching products by category")


def group_by_category(products: Iterable[Product]) -> dict[str, list[Product]]:
    """Group products into menu tabs, keeping first-seen category order."""
    grouped: dict[str, list[Product]] = {}
    for product in products:
        grouped.setdefault(product.category, []).append(product)
    return grouped


# =============================================================================
# ORDERS
# =============================================================================

def calculate_total(items: Iterable[dict]) -> float:
    """Sum of price × quantity over line items, rounded to cents."""
    return round(sum(float(item["price"]) * int(item["quantity"]) for item in items), 2)


async def create_order(session: AsyncSession, table_id: str, selections) -> Order:
    """
    Place an order for ``table_id``.

    Args:
        session: Database session
        table_id: Table the order comes from
        selections: Iterable of objects with ``product_id`` and ``quantity``

    Returns:
        The stored order, pending and unpaid

    Raises:
        OrderValidationError: Nothing selected, or a product is unknown or unavailable
        DataAccessError: The database rejected the write
    """
    selections = list(selections)
    if not selections:
        raise OrderValidationError("Please select at least one item to place an order.")

    product_ids = [selection.product_id for selection in selections]
    products = await _fetch_all(
        session,
        select(Product).where(Product.id.in_(product_ids), Product.available.is_(True)),
        "fetching ordered products",
    )
    by_id = {product.id: product for product in products}

    missing = [pid for pid in product_ids if pid not in by_id]
    if missing:
        raise OrderValidationError(f"Unavailable menu items: {', '.join(missing)}")

    items = [
        {
            "id": selection.product_id,
            "name": by_id[selection.product_id].name,
            "quantity": selection.quantity,
            "price": by_id[selection.product_id].price,
        }
        for selection in selections
    ]

    now = utcnow()
    order = Order(
        table_id=table_id,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.UNPAID,
        created_at=now,
        updated_at=now,
        total=calculate_total(items),
        items=items,
    )
    session.add(order)
    await _commit(session, "creating order")
    await session.refresh(order)

    logger.info(
        f"Order {order.id[:8]} placed at table {table_id}: "
        f"{order.item_count} item(s), ${order.total:.2f}"
    )
    await _publish(ORDERS_TABLE, ChangeType.INSERT, order.id)
    return order


async def get_orders(
    session: AsyncSession,
    status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
) -> list[Order]:
    """All orders, newest first, optionally filtered."""
    query = select(Order).order_by(Order.created_at.desc())
    if status is not None:
        query = query.where(Order.status == status)
    if payment_status is not None:
        query = query.where(Order.payment_status == payment_status)
    return await _fetch_all(session, query, "fetching orders")


async def get_order(session: AsyncSession, order_id: str) -> Order:
    return await _get_by_id(session, Order, order_id, "order")


async def update_order_status(
    session: AsyncSession,
    order_id: str,
    status: OrderStatus,
) -> Order:
    order = await get_order(session, order_id)
    previous = order.status
    order.status = status
    order.updated_at = utcnow()
    await _commit(session, "updating order status")

    logger.info(f"Order {order_id[:8]} (table {order.table_id}): {previous.value} → {status.value}")
    await _publish(ORDERS_TABLE, ChangeType.UPDATE, order.id)
    return order


async def update_payment_status(
    session: AsyncSession,
    order_id: str,
    payment_status: PaymentStatus,
) -> Order:
    order = await get_order(session, order_id)
    order.payment_status = payment_status
    order.updated_at = utcnow()
    await _commit(session, "updating payment status")

    logger.info(f"Order {order_id[:8]} payment → {payment_status.value}")
    await _publish(ORDERS_TABLE, ChangeType.UPDATE, order.id)
    return order
