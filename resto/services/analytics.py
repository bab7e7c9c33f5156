"""
Dashboard Analytics

Flat group-by / reduce passes over already-fetched orders and waiter
calls. Everything is recomputed from scratch on each request; nothing is
cached or stored.

Revenue figures only count orders whose payment status is ``paid``.
Order counts and product popularity count every order, whatever its
status.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from resto.models import OrderStatus, PaymentStatus, WaiterCallStatus

TOP_N = 5

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}


@dataclass
class TableMetrics:
    table_id: str
    order_count: int = 0
    total_spent: float = 0.0
    average_order_value: float = 0.0
    waiter_call_count: int = 0
    average_response_time: Optional[float] = None  # minutes


@dataclass
class WaiterMetrics:
    completed_calls: int = 0
    average_response_time: float = 0.0
    fastest_response_time: float = 0.0
    slowest_response_time: float = 0.0


@dataclass
class ProductCount:
    name: str
    count: int


@dataclass
class OrderMetrics:
    total_orders: int = 0
    total_revenue: float = 0.0
    average_order_value: float = 0.0
    most_ordered_products: list[ProductCount] = field(default_factory=list)


@dataclass
class DailyRevenue:
    date: date
    revenue: float


@dataclass
class DashboardSummary:
    todays_sales: float = 0.0
    active_tables: int = 0
    active_orders: int = 0
    pending_waiter_calls: int = 0


@dataclass
class DashboardMetrics:
    most_used_tables: list[TableMetrics]
    highest_spending_tables: list[TableMetrics]
    best_waiter_response_tables: list[TableMetrics]
    waiter_metrics: WaiterMetrics
    order_metrics: OrderMetrics
    daily_revenue: list[DailyRevenue]
    waiter_advice: str
    order_value_advice: Optional[str] = None


# =============================================================================
# FORMATTING
# =============================================================================

def format_currency(value: float, currency: str = "USD") -> str:
    """Format an amount the way prices are shown to guests, e.g. ``$1,234.50``."""
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


def format_minutes(minutes: Optional[float]) -> str:
    if minutes is None:
        return "N/A"
    return f"{minutes:.1f} min"


# =============================================================================
# HELPERS
# =============================================================================

def as_utc(moment: datetime) -> datetime:
    """Treat naive timestamps (SQLite round-trips) as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _is_paid(order) -> bool:
    return order.payment_status == PaymentStatus.PAID


def response_time_minutes(call) -> Optional[float]:
    """Minutes between a waiter call and its completion, None while open."""
    if call.status != WaiterCallStatus.COMPLETED or call.completed_at is None:
        return None
    elapsed = as_utc(call.completed_at) - as_utc(call.created_at)
    return max(elapsed.total_seconds(), 0.0) / 60


def _average(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


# =============================================================================
# DASHBOARD SUMMARY
# =============================================================================

def summarize_orders(orders: Iterable, today: Optional[date] = None) -> DashboardSummary:
    """
    Headline numbers derived from orders alone.

    Today's sales count paid orders created on ``today`` (UTC); active
    tables are the distinct tables with a pending or preparing order.
    """
    today = today or datetime.now(timezone.utc).date()
    orders = list(orders)

    todays_sales = sum(
        float(order.total)
        for order in orders
        if _is_paid(order) and as_utc(order.created_at).date() == today
    )
    active = [order for order in orders if OrderStatus(order.status).is_active]

    return DashboardSummary(
        todays_sales=round(todays_sales, 2),
        active_tables=len({order.table_id for order in active}),
        active_orders=len(active),
    )


def calculate_dashboard_summary(
    orders: Iterable,
    waiter_calls: Iterable,
    today: Optional[date] = None,
) -> DashboardSummary:
    summary = summarize_orders(orders, today)
    summary.pending_waiter_calls = sum(
        1 for call in waiter_calls if call.status == WaiterCallStatus.PENDING
    )
    return summary


# =============================================================================
# ANALYTICS
# =============================================================================

def calculate_table_metrics(orders: Iterable, waiter_calls: Iterable) -> dict[str, TableMetrics]:
    """Per-table usage, spend and waiter response, in first-seen table order."""
    metrics: dict[str, TableMetrics] = {}

    for order in orders:
        table = metrics.setdefault(order.table_id, TableMetrics(table_id=order.table_id))
        table.order_count += 1
        if _is_paid(order):
            table.total_spent += float(order.total)
        table.average_order_value = table.total_spent / (table.order_count or 1)

    response_times: dict[str, list[float]] = {}
    for call in waiter_calls:
        table = metrics.setdefault(call.table_id, TableMetrics(table_id=call.table_id))
        table.waiter_call_count += 1
        minutes = response_time_minutes(call)
        if minutes is not None:
            response_times.setdefault(call.table_id, []).append(minutes)

    for table_id, times in response_times.items():
        metrics[table_id].average_response_time = _average(times)

    return metrics


def calculate_waiter_metrics(waiter_calls: Iterable) -> WaiterMetrics:
    completed = [call for call in waiter_calls if call.status == WaiterCallStatus.COMPLETED]
    times = [t for t in (response_time_minutes(call) for call in completed) if t is not None]

    if not times:
        return WaiterMetrics(completed_calls=len(completed))

    return WaiterMetrics(
        completed_calls=len(completed),
        average_response_time=_average(times),
        fastest_response_time=min(times),
        slowest_response_time=max(times),
    )


def calculate_order_metrics(orders: Iterable, top_n: int = TOP_N) -> OrderMetrics:
    orders = list(orders)
    paid = [order for order in orders if _is_paid(order)]
    total_revenue = sum(float(order.total) for order in paid)

    product_counts: Counter = Counter()
    for order in orders:
        for item in order.items or []:
            product_counts[item["name"]] += int(item["quantity"])

    # Counter.most_common keeps first-seen order among ties
    most_ordered = [
        ProductCount(name=name, count=count)
        for name, count in product_counts.most_common(top_n)
    ]

    return OrderMetrics(
        total_orders=len(orders),
        total_revenue=total_revenue,
        average_order_value=total_revenue / len(paid) if paid else 0.0,
        most_ordered_products=most_ordered,
    )


def calculate_daily_revenue(orders: Iterable) -> list[DailyRevenue]:
    revenue_by_day: dict[date, float] = {}
    for order in orders:
        if _is_paid(order):
            day = as_utc(order.created_at).date()
            revenue_by_day[day] = revenue_by_day.get(day, 0.0) + float(order.total)

    return [
        DailyRevenue(date=day, revenue=round(revenue, 2))
        for day, revenue in sorted(revenue_by_day.items())
    ]


def waiter_advice(average_response_time: float) -> str:
    if average_response_time <= 5:
        return "Great performance! Staff is responding promptly to service calls."
    if average_response_time <= 10:
        return "Average response time is acceptable but could be improved."
    return "Response time needs improvement. Consider additional staff training."


def order_value_advice(order_metrics: OrderMetrics) -> Optional[str]:
    if order_metrics.total_orders == 0 or order_metrics.average_order_value <= 0:
        return None
    if order_metrics.average_order_value > 30:
        return "High average order value indicates good upselling. Keep it up!"
    return "Consider implementing strategies to increase average order value."


def build_dashboard_metrics(orders: Iterable, waiter_calls: Iterable, top_n: int = TOP_N) -> DashboardMetrics:
    """
    Everything the analytics page shows, from one fetch of orders and calls.

    Args:
        orders: All orders
        waiter_calls: All waiter calls
        top_n: Length of each ranking

    Returns:
        DashboardMetrics with table rankings, waiter and order metrics,
        daily revenue and advice texts
    """
    orders = list(orders)
    waiter_calls = list(waiter_calls)

    tables = list(calculate_table_metrics(orders, waiter_calls).values())
    most_used = sorted(tables, key=lambda t: t.order_count, reverse=True)[:top_n]
    highest_spending = sorted(tables, key=lambda t: t.total_spent, reverse=True)[:top_n]
    best_response = sorted(
        (t for t in tables if t.average_response_time is not None),
        key=lambda t: t.average_response_time,
    )[:top_n]

    waiter_metrics = calculate_waiter_metrics(waiter_calls)
    order_metrics = calculate_order_metrics(orders, top_n)

    return DashboardMetrics(
        most_used_tables=most_used,
        highest_spending_tables=highest_spending,
        best_waiter_response_tables=best_response,
        waiter_metrics=waiter_metrics,
        order_metrics=order_metrics,
        daily_revenue=calculate_daily_revenue(orders),
        waiter_advice=waiter_advice(waiter_metrics.average_response_time),
        order_value_advice=order_value_advice(order_metrics),
    )
