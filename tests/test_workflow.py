from resto.models import OrderStatus, PaymentStatus


def test_orders_page_actions_follow_kitchen_workflow() -> None:
    assert OrderStatus.PENDING.available_actions() == [OrderStatus.PREPARING, OrderStatus.CANCELLED]
    assert OrderStatus.PREPARING.available_actions() == [OrderStatus.COMPLETED, OrderStatus.CANCELLED]
    assert OrderStatus.COMPLETED.available_actions() == []
    assert OrderStatus.CANCELLED.available_actions() == []


def test_dashboard_status_button_cycles_back_to_pending() -> None:
    assert OrderStatus.PENDING.next_in_cycle() == OrderStatus.PREPARING
    assert OrderStatus.PREPARING.next_in_cycle() == OrderStatus.COMPLETED
    assert OrderStatus.COMPLETED.next_in_cycle() == OrderStatus.PENDING
    assert OrderStatus.CANCELLED.next_in_cycle() == OrderStatus.PENDING


def test_only_pending_and_preparing_are_active() -> None:
    active = {status for status in OrderStatus if status.is_active}
    assert active == {OrderStatus.PENDING, OrderStatus.PREPARING}


def test_payment_button_cycle_and_labels() -> None:
    assert PaymentStatus.UNPAID.next_in_cycle() == PaymentStatus.PAID
    assert PaymentStatus.PAID.next_in_cycle() == PaymentStatus.REFUNDED
    assert PaymentStatus.REFUNDED.next_in_cycle() == PaymentStatus.UNPAID

    assert PaymentStatus.UNPAID.button_label == "Pay"
    assert PaymentStatus.PAID.button_label == "Paid ✓"
    assert PaymentStatus.REFUNDED.button_label == "Refunded"
