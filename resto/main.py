"""
FastAPI Application Entry Point

Resto Chen Table Ordering - guests order and call waitstaff from the
table they scanned; staff manage everything on a live dashboard.

Pages:
    - GET /: Table picker
    - GET /table/{table_id}: Table home (call waiter / order food)
    - GET /table/{table_id}/menu: Menu and order placement
    - GET /admin, /admin/orders, /admin/analytics, /admin/qr-codes: Staff views

API:
    - /api/products, /api/categories: Menu
    - /api/orders: Place, list and update orders
    - /api/tables/{table_id}/waiter-calls, /api/waiter-calls: Waiter calls
    - /api/dashboard/summary, /api/analytics: Dashboard numbers
    - /api/qr/{table_id}.png: Table QR codes
    - /api/exports/orders: Spreadsheet export
    - /ws/orders, /ws/waiter-calls: Live snapshots
    - GET /health: System health check
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Any, List, Optional

from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
    Path as PathParam,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from kombu.exceptions import OperationalError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from resto.core.config import get_settings, setup_logging
from resto.database import async_session_maker, engine, get_db, init_db
from resto.models import OrderStatus, PaymentStatus, WaiterCallStatus
from resto.schemas import (
    DashboardMetricsResponse,
    DashboardSummaryResponse,
    ErrorResponse,
    ExportResponse,
    HealthResponse,
    OrderCreate,
    OrderCreateResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    PaymentStatusUpdate,
    ProductResponse,
    WaiterCallCreateResponse,
    WaiterCallListResponse,
    WaiterCallResponse,
    WaiterCallStatusUpdate,
)
from resto.seed import seed_demo_menu
from resto.services import analytics, qr, store
from resto.services.realtime import get_change_feed, reset_change_feed
from resto.services.sync import (
    OrderChangeTracker,
    WaiterCallChangeTracker,
    subscribe_to_orders,
    subscribe_to_waiter_calls,
)
from resto.tasks import export_orders_to_excel

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent

# Template configuration
templates = Jinja2Templates(directory=str(PACKAGE_DIR / "templates"))
templates.env.globals["restaurant_name"] = settings.restaurant_name
templates.env.globals["poll_interval_ms"] = int(settings.poll_interval_seconds * 1000)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    if settings.seed_demo_menu:
        async with async_session_maker() as session:
            await seed_demo_menu(session)

    feed = get_change_feed()
    logger.info(f"✅ Change Feed: {feed.provider_name}")
    logger.info(f"✅ Polling fallback: every {settings.poll_interval_seconds}s")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await feed.close()
    reset_change_feed()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "QR-code table ordering with waiter calls and a live staff dashboard. "
        "Live views combine a change feed with a polling fallback."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/static", StaticFiles(directory=str(PACKAGE_DIR / "static")), name="static")


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

TableId = Annotated[str, PathParam(min_length=1, max_length=20)]


def clean_table_id(table_id: str, status_code: int = 422) -> str:
    """Strip a table id from the URL; blank ids are rejected."""
    cleaned = table_id.strip()
    if not cleaned:
        raise HTTPException(status_code=status_code, detail="Table id must not be blank")
    return cleaned


def order_json(order) -> dict[str, Any]:
    return OrderResponse.model_validate(order).model_dump(mode="json")


def waiter_call_json(call) -> dict[str, Any]:
    return WaiterCallResponse.model_validate(call).model_dump(mode="json")


# =============================================================================
# PAGES
# =============================================================================

@app.get("/", response_class=HTMLResponse, tags=["Pages"])
async def landing_page(request: Request) -> HTMLResponse:
    """Table picker for guests without a QR code."""
    tables = list(range(1, settings.demo_table_count + 1))
    return templates.TemplateResponse(request, "index.html", {"tables": tables})


@app.get("/table/{table_id}", response_class=HTMLResponse, tags=["Pages"])
async def table_page(request: Request, table_id: TableId) -> HTMLResponse:
    """Landing page a table's QR code opens."""
    table_id = clean_table_id(table_id, status_code=404)
    return templates.TemplateResponse(request, "table.html", {"table_id": table_id})


@app.get("/table/{table_id}/menu", response_class=HTMLResponse, tags=["Pages"])
async def menu_page(request: Request, table_id: TableId) -> HTMLResponse:
    table_id = clean_table_id(table_id, status_code=404)
    return templates.TemplateResponse(request, "menu.html", {"table_id": table_id})


@app.get("/admin", response_class=HTMLResponse, tags=["Pages"])
async def admin_dashboard_page(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "admin/dashboard.html", {"active": "dashboard"})


@app.get("/admin/orders", response_class=HTMLResponse, tags=["Pages"])
async def admin_orders_page(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "admin/orders.html", {"active": "orders"})


@app.get("/admin/analytics", response_class=HTMLResponse, tags=["Pages"])
async def admin_analytics_page(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "admin/analytics.html", {"active": "analytics"})


@app.get("/admin/qr-codes", response_class=HTMLResponse, tags=["Pages"])
async def admin_qr_codes_page(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "admin/qr_codes.html",
        {
            "active": "qr-codes",
            "base_url": settings.app_base_url,
            "sizes": qr.QR_SIZES,
            "bulk_ranges": [
                (label, qr.table_range(start, end)) for label, start, end in qr.BULK_RANGES
            ],
        },
    )


# =============================================================================
# HEALTH
# =============================================================================

@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify the database and the change feed are reachable."""

    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    feed = get_change_feed()
    feed_status = "healthy" if await feed.health_check() else "unhealthy"

    overall = "operational" if db_status == feed_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        change_feed=f"{feed.provider_name}: {feed_status}",
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# MENU API
# =============================================================================

@app.get(
    "/api/products",
    response_model=List[ProductResponse],
    tags=["Menu"],
)
async def list_products(
    category: Optional[str] = Query(None, max_length=50),
    db: AsyncSession = Depends(get_db),
) -> List[ProductResponse]:
    """Available menu items, optionally limited to one category."""
    if category:
        products = await store.get_products_by_category(db, category)
    else:
        products = await store.get_products(db)
    return [ProductResponse.model_validate(p) for p in products]


@app.get("/api/categories", response_model=List[str], tags=["Menu"])
async def list_categories(db: AsyncSession = Depends(get_db)) -> List[str]:
    """Menu tabs in display order."""
    return list(store.group_by_category(await store.get_products(db)))


# =============================================================================
# ORDER API
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderCreateResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    order_data: OrderCreate,
    db: AsyncSession = Depends(get_db),
) -> OrderCreateResponse:
    """
    Place an order from a table.

    Names and prices are taken from the menu, not from the request; the
    total is fixed at creation time.
    """
    order = await store.create_order(db, order_data.table_id, order_data.items)

    return OrderCreateResponse(
        success=True,
        message="Your order has been sent to the kitchen.",
        order=OrderResponse.model_validate(order),
    )


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    """All orders, newest first."""
    orders = await store.get_orders(db, status=status, payment_status=payment_status)
    return OrderListResponse(
        total=len(orders),
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    return OrderResponse.model_validate(await store.get_order(db, order_id))


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def update_order_status(
    order_id: str,
    update: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    order = await store.update_order_status(db, order_id, update.status)
    return OrderResponse.model_validate(order)


@app.patch(
    "/api/orders/{order_id}/payment-status",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def update_payment_status(
    order_id: str,
    update: PaymentStatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Set the manual payment label (no payment is processed)."""
    order = await store.update_payment_status(db, order_id, update.payment_status)
    return OrderResponse.model_validate(order)


# =============================================================================
# WAITER CALL API
# =============================================================================

@app.post(
    "/api/tables/{table_id}/waiter-calls",
    response_model=WaiterCallCreateResponse,
    status_code=201,
    tags=["Waiter Calls"],
    summary="Call Waiter",
)
async def call_waiter(
    table_id: TableId,
    db: AsyncSession = Depends(get_db),
) -> WaiterCallCreateResponse:
    call = await store.call_waiter(db, clean_table_id(table_id))
    return WaiterCallCreateResponse(
        success=True,
        message="A waiter will be with you shortly.",
        call=WaiterCallResponse.model_validate(call),
    )


@app.get(
    "/api/waiter-calls",
    response_model=WaiterCallListResponse,
    tags=["Waiter Calls"],
)
async def list_waiter_calls(
    status: Optional[WaiterCallStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> WaiterCallListResponse:
    calls = await store.get_waiter_calls(db, status=status)
    return WaiterCallListResponse(
        total=len(calls),
        calls=[WaiterCallResponse.model_validate(call) for call in calls],
    )


@app.patch(
    "/api/waiter-calls/{call_id}/status",
    response_model=WaiterCallResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Waiter Calls"],
)
async def update_waiter_call_status(
    call_id: str,
    update: WaiterCallStatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> WaiterCallResponse:
    call = await store.update_waiter_call_status(db, call_id, update.status)
    return WaiterCallResponse.model_validate(call)


# =============================================================================
# DASHBOARD & ANALYTICS API
# =============================================================================

@app.get(
    "/api/dashboard/summary",
    response_model=DashboardSummaryResponse,
    tags=["Dashboard"],
)
async def dashboard_summary(
    payment_status: Optional[PaymentStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> DashboardSummaryResponse:
    """Today's sales, active tables / orders and pending waiter calls."""
    orders = await store.get_orders(db, payment_status=payment_status)
    calls = await store.get_waiter_calls(db)
    summary = analytics.calculate_dashboard_summary(orders, calls)
    return DashboardSummaryResponse(**vars(summary))


@app.get(
    "/api/analytics",
    response_model=DashboardMetricsResponse,
    tags=["Dashboard"],
)
async def dashboard_metrics(db: AsyncSession = Depends(get_db)) -> DashboardMetricsResponse:
    """Table rankings, waiter response and order metrics, daily revenue."""
    orders = await store.get_orders(db)
    calls = await store.get_waiter_calls(db)
    metrics = analytics.build_dashboard_metrics(orders, calls)
    return DashboardMetricsResponse.model_validate(asdict(metrics))


# =============================================================================
# QR CODES
# =============================================================================

@app.get(
    "/api/qr/{table_id}.png",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}}},
    tags=["QR Codes"],
)
async def table_qr_code(
    table_id: TableId,
    size: str = Query("md", pattern="^(sm|md|lg)$"),
    download: bool = Query(False),
) -> Response:
    """PNG QR code pointing at the table's page."""
    table_id = clean_table_id(table_id)
    png = qr.render_qr_png(qr.table_url(table_id), size=size)
    headers = {}
    if download:
        headers["Content-Disposition"] = f'attachment; filename="table-{table_id}-qr.png"'
    return Response(content=png, media_type="image/png", headers=headers)


# =============================================================================
# EXPORTS
# =============================================================================

@app.post(
    "/api/exports/orders",
    response_model=ExportResponse,
    status_code=202,
    responses={503: {"model": ErrorResponse}},
    tags=["Exports"],
)
async def export_orders(db: AsyncSession = Depends(get_db)) -> ExportResponse:
    """Queue a spreadsheet snapshot of all orders and waiter calls."""
    orders = [order_json(order) for order in await store.get_orders(db)]
    calls = [waiter_call_json(call) for call in await store.get_waiter_calls(db)]

    try:
        task = export_orders_to_excel.delay(orders, calls)
    except OperationalError as e:
        logger.error(f"Could not queue export: {e}")
        raise HTTPException(status_code=503, detail="Export queue unavailable")

    logger.info(f"Export queued as task {task.id}")
    return ExportResponse(
        success=True,
        message="Export queued",
        task_id=task.id,
        orders=len(orders),
        waiter_calls=len(calls),
    )


# =============================================================================
# LIVE CHANNELS
# =============================================================================

@app.websocket("/ws/orders")
async def orders_live(
    websocket: WebSocket,
    status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
):
    """
    Push order snapshots to a staff view.

    A snapshot is sent on connect, on every change feed event and on every
    poll. Any text message from the client forces an immediate refresh.
    """
    await websocket.accept()
    tracker = OrderChangeTracker()

    async def push(orders):
        notifications = tracker.update(orders)
        summary = analytics.summarize_orders(orders)
        await websocket.send_json({
            "type": "snapshot",
            "orders": [order_json(order) for order in orders],
            "summary": {
                "todays_sales": summary.todays_sales,
                "active_tables": summary.active_tables,
                "active_orders": summary.active_orders,
            },
            "notifications": [n.to_dict() for n in notifications],
        })

    live = await subscribe_to_orders(push, status=status, payment_status=payment_status)
    try:
        while True:
            await websocket.receive_text()
            await live.refresh()
    except WebSocketDisconnect:
        logger.debug("Orders live view disconnected")
    finally:
        await live.stop()


@app.websocket("/ws/waiter-calls")
async def waiter_calls_live(
    websocket: WebSocket,
    status: Optional[WaiterCallStatus] = None,
):
    """Push waiter call snapshots to a staff view."""
    await websocket.accept()
    tracker = WaiterCallChangeTracker()

    async def push(calls):
        notifications = tracker.update(calls)
        await websocket.send_json({
            "type": "snapshot",
            "calls": [waiter_call_json(call) for call in calls],
            "summary": {
                "pending_waiter_calls": sum(
                    1 for call in calls if call.status == WaiterCallStatus.PENDING
                ),
            },
            "notifications": [n.to_dict() for n in notifications],
        })

    live = await subscribe_to_waiter_calls(push, status=status)
    try:
        while True:
            await websocket.receive_text()
            await live.refresh()
    except WebSocketDisconnect:
        logger.debug("Waiter calls live view disconnected")
    finally:
        await live.stop()


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(store.RecordNotFoundError)
async def not_found_handler(request: Request, exc: store.RecordNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content=ErrorResponse(error="Not Found", detail=str(exc)).model_dump(),
    )


@app.exception_handler(store.OrderValidationError)
async def order_validation_handler(request: Request, exc: store.OrderValidationError) -> JSONResponse:
    logger.warning(f"Rejected order: {exc}")
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="Invalid Order", detail=str(exc)).model_dump(),
    )


@app.exception_handler(store.DataAccessError)
async def data_access_handler(request: Request, exc: store.DataAccessError) -> JSONResponse:
    logger.error(f"Data access failed on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Database Error",
            detail=str(exc) if settings.debug else "Please try again.",
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("resto.main:app", host=settings.api_host, port=settings.api_port, reload=settings.debug)
