from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

from resto.models import OrderStatus, PaymentStatus, WaiterCallStatus
from resto.services import analytics

NOW = datetime(2024, 5, 10, 19, 30, tzinfo=timezone.utc)


def _order(table_id, total, status=OrderStatus.PENDING, payment=PaymentStatus.UNPAID, created_at=NOW, items=None):
    return SimpleNamespace(
        table_id=table_id,
        total=total,
        status=status,
        payment_status=payment,
        created_at=created_at,
        items=items or [],
    )


def _call(table_id, minutes=None, created_at=NOW):
    completed = minutes is not None
    return SimpleNamespace(
        table_id=table_id,
        status=WaiterCallStatus.COMPLETED if completed else WaiterCallStatus.PENDING,
        created_at=created_at,
        completed_at=created_at + timedelta(minutes=minutes) if completed else None,
    )


def test_summary_counts_paid_sales_of_today_and_active_tables() -> None:
    orders = [
        _order("1", 20.0, payment=PaymentStatus.PAID),
        _order("1", 15.0, status=OrderStatus.PREPARING),
        _order("2", 30.0, status=OrderStatus.COMPLETED, payment=PaymentStatus.PAID),
        _order("3", 99.0, payment=PaymentStatus.PAID, created_at=NOW - timedelta(days=1)),
        _order("4", 10.0, status=OrderStatus.CANCELLED),
    ]
    calls = [_call("1"), _call("2", minutes=3)]

    summary = analytics.calculate_dashboard_summary(orders, calls, today=NOW.date())

    assert summary.todays_sales == 50.0
    assert summary.active_orders == 3
    assert summary.active_tables == 2
    assert summary.pending_waiter_calls == 1


def test_naive_timestamps_are_read_as_utc() -> None:
    naive = NOW.replace(tzinfo=None)
    summary = analytics.summarize_orders(
        [_order("1", 12.0, payment=PaymentStatus.PAID, created_at=naive)], today=NOW.date()
    )
    assert summary.todays_sales == 12.0


def test_table_rankings() -> None:
    orders = [
        _order("1", 10.0, payment=PaymentStatus.PAID),
        _order("1", 10.0, payment=PaymentStatus.PAID),
        _order("1", 5.0),
        _order("2", 80.0, payment=PaymentStatus.PAID),
    ]
    calls = [_call("1", minutes=8), _call("1", minutes=4), _call("2", minutes=2), _call("3")]

    metrics = analytics.build_dashboard_metrics(orders, calls)

    assert [t.table_id for t in metrics.most_used_tables] == ["1", "2", "3"]
    assert [t.table_id for t in metrics.highest_spending_tables][:2] == ["2", "1"]
    assert [t.table_id for t in metrics.best_waiter_response_tables] == ["2", "1"]

    table_one = metrics.most_used_tables[0]
    assert table_one.order_count == 3
    assert table_one.total_spent == 20.0
    assert table_one.waiter_call_count == 2
    assert table_one.average_response_time == 6.0


def test_waiter_metrics_use_completed_calls_only() -> None:
    metrics = analytics.calculate_waiter_metrics([_call("1", minutes=2), _call("2", minutes=6), _call("3")])

    assert metrics.completed_calls == 2
    assert metrics.average_response_time == 4.0
    assert metrics.fastest_response_time == 2.0
    assert metrics.slowest_response_time == 6.0


def test_waiter_metrics_without_completed_calls_are_zero() -> None:
    metrics = analytics.calculate_waiter_metrics([_call("1")])
    assert metrics.completed_calls == 0
    assert metrics.average_response_time == 0.0


def test_order_metrics_and_most_ordered_products() -> None:
    orders = [
        _order("1", 20.0, payment=PaymentStatus.PAID, items=[
            {"name": "Mapo Tofu", "quantity": 2, "price": 10.0},
        ]),
        _order("2", 40.0, status=OrderStatus.CANCELLED, items=[
            {"name": "Jasmine Tea", "quantity": 2, "price": 3.5},
            {"name": "Mapo Tofu", "quantity": 1, "price": 10.0},
        ]),
        _order("3", 40.0, payment=PaymentStatus.PAID, items=[
            {"name": "Spring Rolls", "quantity": 2, "price": 6.5},
        ]),
    ]

    metrics = analytics.calculate_order_metrics(orders, top_n=2)

    assert metrics.total_orders == 3
    assert metrics.total_revenue == 60.0
    assert metrics.average_order_value == 30.0
    # Ties keep the product seen first
    assert [(p.name, p.count) for p in metrics.most_ordered_products] == [
        ("Mapo Tofu", 3),
        ("Jasmine Tea", 2),
    ]


def test_daily_revenue_is_sorted_by_day() -> None:
    orders = [
        _order("1", 10.0, payment=PaymentStatus.PAID, created_at=NOW),
        _order("1", 5.0, payment=PaymentStatus.PAID, created_at=NOW - timedelta(days=2)),
        _order("2", 7.5, payment=PaymentStatus.PAID, created_at=NOW),
        _order("2", 100.0, created_at=NOW),
    ]

    revenue = analytics.calculate_daily_revenue(orders)

    assert [(r.date, r.revenue) for r in revenue] == [
        (date(2024, 5, 8), 5.0),
        (date(2024, 5, 10), 17.5),
    ]


def test_waiter_advice_thresholds() -> None:
    assert analytics.waiter_advice(0).startswith("Great performance")
    assert analytics.waiter_advice(5).startswith("Great performance")
    assert analytics.waiter_advice(7.5).startswith("Average response time is acceptable")
    assert analytics.waiter_advice(10).startswith("Average response time is acceptable")
    assert analytics.waiter_advice(10.1).startswith("Response time needs improvement")


def test_order_value_advice() -> None:
    assert analytics.order_value_advice(analytics.OrderMetrics()) is None
    assert analytics.order_value_advice(
        analytics.OrderMetrics(total_orders=2, total_revenue=70.0, average_order_value=35.0)
    ).startswith("High average order value")
    assert analytics.order_value_advice(
        analytics.OrderMetrics(total_orders=2, total_revenue=60.0, average_order_value=30.0)
    ).startswith("Consider implementing")


def test_formatting() -> None:
    assert analytics.format_currency(1234.5) == "$1,234.50"
    assert analytics.format_currency(3, "EUR") == "€3.00"
    assert analytics.format_minutes(None) == "N/A"
    assert analytics.format_minutes(4.26) == "4.3 min"
