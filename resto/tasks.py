"""
Celery Tasks
Background tasks that should not hold up a staff request.
"""

import logging
import time

from resto.celery_worker import celery_app
from resto.services.excel_manager import ExcelManager

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(OSError,),
    retry_backoff=True
)
def export_orders_to_excel(self, orders: list[dict], waiter_calls: list[dict]) -> dict:
    """
    Write the orders / waiter calls snapshot to the Excel workbook.

    Args:
        orders: Orders in their JSON API form
        waiter_calls: Waiter calls in their JSON API form

    Returns:
        dict: Result of the export operation
    """
    task_id = self.request.id
    logger.info(f"📋 Task {task_id}: exporting {len(orders)} orders, {len(waiter_calls)} waiter calls")
    start_time = time.time()

    result = ExcelManager.export_snapshot(orders, waiter_calls)

    elapsed = round(time.time() - start_time, 3)
    result["task_id"] = task_id
    result["processing_time_seconds"] = elapsed

    if result["success"]:
        logger.info(f"✅ Task {task_id}: export completed in {elapsed}s")
    else:
        logger.warning(f"⚠️ Task {task_id}: export failed - {result['message']}")

    return result

