"""
Pydantic Schemas for Request/Response Validation

Covers the guest-facing menu and ordering API, the staff-facing
order / waiter call management API and the analytics payloads.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime, date

from resto.models import OrderStatus, PaymentStatus, WaiterCallStatus


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

def _clean_table_id(v: str) -> str:
    cleaned = v.strip()
    if not cleaned:
        raise ValueError("Table id must not be blank")
    return cleaned


class OrderItemCreate(BaseModel):
    """Single selection from the menu."""
    product_id: str = Field(..., min_length=1, max_length=36)
    quantity: int = Field(..., ge=1, le=99, examples=[2])


class OrderCreate(BaseModel):
    """Request schema for placing an order from a table."""
    table_id: str = Field(..., min_length=1, max_length=20, examples=["4"])
    items: List[OrderItemCreate] = Field(..., min_length=1)

    @field_validator("table_id")
    @classmethod
    def validate_table_id(cls, v: str) -> str:
        return _clean_table_id(v)

    @field_validator("items")
    @classmethod
    def merge_duplicate_products(cls, v: List[OrderItemCreate]) -> List[OrderItemCreate]:
        """Collapse repeated product ids into one line, keeping first-seen order."""
        merged: dict[str, int] = {}
        for item in v:
            merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
        if any(quantity > 99 for quantity in merged.values()):
            raise ValueError("Quantity per product must not exceed 99")
        return [OrderItemCreate(product_id=pid, quantity=qty) for pid, qty in merged.items()]


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus


class WaiterCallStatusUpdate(BaseModel):
    status: WaiterCallStatus


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class ProductResponse(BaseModel):
    """Menu item as shown to guests."""
    id: str
    name: str
    description: str
    price: float
    image_url: Optional[str]
    category: str
    available: bool

    class Config:
        from_attributes = True


class OrderItemResponse(BaseModel):
    id: str
    name: str
    quantity: int
    price: float


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    id: str
    table_id: str
    status: OrderStatus
    payment_status: PaymentStatus
    total: float
    items: List[OrderItemResponse]
    item_count: int
    created_at: datetime
    updated_at: datetime

    # Which staff buttons apply to this order
    available_actions: List[OrderStatus]
    next_status: OrderStatus
    next_payment_status: PaymentStatus
    payment_label: str

    class Config:
        from_attributes = True


class OrderCreateResponse(BaseModel):
    """Response after successfully placing an order."""
    success: bool
    message: str
    order: OrderResponse


class OrderListResponse(BaseModel):
    total: int
    orders: List[OrderResponse]


class WaiterCallResponse(BaseModel):
    id: str
    table_id: str
    status: WaiterCallStatus
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WaiterCallCreateResponse(BaseModel):
    success: bool
    message: str
    call: WaiterCallResponse


class WaiterCallListResponse(BaseModel):
    total: int
    calls: List[WaiterCallResponse]


# =============================================================================
# DASHBOARD & ANALYTICS SCHEMAS
# =============================================================================

class DashboardSummaryResponse(BaseModel):
    """Headline numbers on the admin dashboard."""
    todays_sales: float
    active_tables: int
    active_orders: int
    pending_waiter_calls: int


class TableMetricsResponse(BaseModel):
    table_id: str
    order_count: int
    total_spent: float
    average_order_value: float
    waiter_call_count: int
    average_response_time: Optional[float] = None


class WaiterMetricsResponse(BaseModel):
    completed_calls: int
    average_response_time: float
    fastest_response_time: float
    slowest_response_time: float


class ProductCountResponse(BaseModel):
    name: str
    count: int


class OrderMetricsResponse(BaseModel):
    total_orders: int
    total_revenue: float
    average_order_value: float
    most_ordered_products: List[ProductCountResponse]


class DailyRevenueResponse(BaseModel):
    date: date
    revenue: float


class DashboardMetricsResponse(BaseModel):
    """Full analytics payload for the analytics page."""
    most_used_tables: List[TableMetricsResponse]
    highest_spending_tables: List[TableMetricsResponse]
    best_waiter_response_tables: List[TableMetricsResponse]
    waiter_metrics: WaiterMetricsResponse
    order_metrics: OrderMetricsResponse
    daily_revenue: List[DailyRevenueResponse]
    waiter_advice: str
    order_value_advice: Optional[str] = None


# =============================================================================
# MISC
# =============================================================================

class ExportResponse(BaseModel):
    """Response after queueing a spreadsheet export."""
    success: bool
    message: str
    task_id: Optional[str] = None
    orders: int
    waiter_calls: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    change_feed: str
    timestamp: datetime
