"""
SQLAlchemy Database Models

Dine-in ordering records:
- Products (the menu)
- Orders placed from a table, with embedded line items
- Waiter calls raised from a table

Tables are identified by a plain string id taken from the QR code URL;
there is no table or customer record.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Float, DateTime, Text, Enum, Boolean, JSON

from resto.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class OrderStatus(str, enum.Enum):
    """Kitchen workflow of an order."""
    PENDING = "pending"
    PREPARING = "preparing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        """Pending and preparing orders keep a table busy."""
        return self in (OrderStatus.PENDING, OrderStatus.PREPARING)

    def available_actions(self) -> list["OrderStatus"]:
        """
        Target statuses offered on the order management page.

        Pending orders can be prepared or cancelled, preparing orders can be
        completed or cancelled; finished orders offer nothing.
        """
        if self == OrderStatus.PENDING:
            return [OrderStatus.PREPARING, OrderStatus.CANCELLED]
        if self == OrderStatus.PREPARING:
            return [OrderStatus.COMPLETED, OrderStatus.CANCELLED]
        return []

    def next_in_cycle(self) -> "OrderStatus":
        """Status reached by the dashboard's single "Status" button."""
        if self == OrderStatus.PENDING:
            return OrderStatus.PREPARING
        if self == OrderStatus.PREPARING:
            return OrderStatus.COMPLETED
        return OrderStatus.PENDING


class PaymentStatus(str, enum.Enum):
    """Manual payment label; no payment is processed."""
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"

    def next_in_cycle(self) -> "PaymentStatus":
        if self == PaymentStatus.UNPAID:
            return PaymentStatus.PAID
        if self == PaymentStatus.PAID:
            return PaymentStatus.REFUNDED
        return PaymentStatus.UNPAID

    @property
    def button_label(self) -> str:
        return {
            PaymentStatus.UNPAID: "Pay",
            PaymentStatus.PAID: "Paid ✓",
            PaymentStatus.REFUNDED: "Refunded",
        }[self]


class WaiterCallStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class Product(Base):
    """
    Menu item.

    Only available products are offered on the menu; unavailable ones stay
    in the table so past orders keep their references.
    """
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Float, nullable=False)
    image_url = Column(String(500), nullable=True)
    category = Column(String(50), nullable=False, index=True)
    available = Column(Boolean, nullable=False, default=True, index=True)

    def __repr__(self):
        return f"<Product {self.name} - {self.category} - {self.price:.2f}>"


class Order(Base):
    """
    Order placed from a table.

    ``items`` holds the line items as a JSON list of
    ``{"id", "name", "quantity", "price"}``; ``total`` is computed once
    from them when the order is created.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    table_id = Column(String(20), nullable=False, index=True)

    status = Column(
        Enum(OrderStatus, native_enum=False, values_callable=_enum_values, length=20),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )
    payment_status = Column(
        Enum(PaymentStatus, native_enum=False, values_callable=_enum_values, length=20),
        default=PaymentStatus.UNPAID,
        nullable=False,
        index=True
    )

    total = Column(Float, nullable=False)
    items = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def item_count(self) -> int:
        return sum(int(item.get("quantity", 0)) for item in self.items or [])

    # Button state for the staff views
    @property
    def available_actions(self) -> list[OrderStatus]:
        return OrderStatus(self.status).available_actions()

    @property
    def next_status(self) -> OrderStatus:
        return OrderStatus(self.status).next_in_cycle()

    @property
    def next_payment_status(self) -> PaymentStatus:
        return PaymentStatus(self.payment_status).next_in_cycle()

    @property
    def payment_label(self) -> str:
        return PaymentStatus(self.payment_status).button_label

    def __repr__(self):
        return f"<Order {self.id[:8]} - table {self.table_id} - {self.status.value}>"


class WaiterCall(Base):
    """
    Request for staff assistance from a table.

    ``completed_at`` is stamped when staff mark the call completed and is
    the basis for response time analytics.
    """
    __tablename__ = "waiter_calls"

    id = Column(String(36), primary_key=True, default=new_id)
    table_id = Column(String(20), nullable=False, index=True)
    status = Column(
        Enum(WaiterCallStatus, native_enum=False, values_callable=_enum_values, length=20),
        default=WaiterCallStatus.PENDING,
        nullable=False,
        index=True
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<WaiterCall {self.id[:8]} - table {self.table_id} - {self.status.value}>"
