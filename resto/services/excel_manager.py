"""
Excel Export with Concurrency Control

Writes a bookkeeping snapshot of orders and waiter calls to a workbook
with one sheet each. The snapshot replaces the previous one; a file
lock keeps two exports (or an export and a reader) from interleaving.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import pandas as pd
from filelock import FileLock, Timeout

from resto.core.config import get_settings

logger = logging.getLogger(__name__)

ORDERS_SHEET = "orders"
WAITER_CALLS_SHEET = "waiter_calls"


class ExcelManager:
    """Locked snapshot export of orders and waiter calls."""

    ORDER_COLUMNS = [
        "order_id",
        "table_id",
        "date_time",
        "items",
        "item_count",
        "total",
        "order_status",
        "payment_status",
        "updated_at",
        "exported_at",
    ]

    WAITER_CALL_COLUMNS = [
        "call_id",
        "table_id",
        "date_time",
        "status",
        "completed_at",
        "response_minutes",
        "exported_at",
    ]

    @staticmethod
    def workbook_path(data_dir: Optional[Path] = None) -> Path:
        settings = get_settings()
        return Path(data_dir or settings.data_directory) / settings.excel_filename

    @staticmethod
    def _describe_items(items: list[dict[str, Any]]) -> str:
        return ", ".join(f"{item['quantity']}× {item['name']}" for item in items)

    @staticmethod
    def _response_minutes(call: dict[str, Any]) -> Optional[float]:
        if not call.get("completed_at"):
            return None
        created = datetime.fromisoformat(call["created_at"])
        completed = datetime.fromisoformat(call["completed_at"])
        return round((completed - created).total_seconds() / 60, 1)

    @classmethod
    def order_rows(cls, orders: list[dict[str, Any]], exported_at: str) -> pd.DataFrame:
        rows = [
            {
                "order_id": order["id"],
                "table_id": order["table_id"],
                "date_time": order["created_at"],
                "items": cls._describe_items(order.get("items", [])),
                "item_count": sum(int(item["quantity"]) for item in order.get("items", [])),
                "total": order["total"],
                "order_status": order["status"],
                "payment_status": order["payment_status"],
                "updated_at": order.get("updated_at"),
                "exported_at": exported_at,
            }
            for order in orders
        ]
        return pd.DataFrame(rows, columns=cls.ORDER_COLUMNS)

    @classmethod
    def waiter_call_rows(cls, calls: list[dict[str, Any]], exported_at: str) -> pd.DataFrame:
        rows = [
            {
                "call_id": call["id"],
                "table_id": call["table_id"],
                "date_time": call["created_at"],
                "status": call["status"],
                "completed_at": call.get("completed_at"),
                "response_minutes": cls._response_minutes(call),
                "exported_at": exported_at,
            }
            for call in calls
        ]
        return pd.DataFrame(rows, columns=cls.WAITER_CALL_COLUMNS)

    @classmethod
    def export_snapshot(
        cls,
        orders: list[dict[str, Any]],
        waiter_calls: list[dict[str, Any]],
        data_dir: Optional[Path] = None,
    ) -> dict[str, Any]:
        """
        Replace the workbook with the given orders and waiter calls.

        Args:
            orders: Orders in their JSON API form
            waiter_calls: Waiter calls in their JSON API form
            data_dir: Target directory (defaults to DATA_DIRECTORY)

        Returns:
            Result dict with success flag, message, counts and export time
        """
        path = cls.workbook_path(data_dir)
        path.parent.mkdir(parents=True, exist_ok=True)
        lock_timeout = get_settings().excel_lock_timeout

        exported_at = datetime.now(timezone.utc).isoformat()
        result = {
            "success": False,
            "message": "",
            "path": str(path),
            "orders": len(orders),
            "waiter_calls": len(waiter_calls),
            "exported_at": None,
        }

        try:
            lock = FileLock(f"{path}.lock", timeout=lock_timeout)

            with lock:
                logger.debug(f"Lock acquired for {path}")

                with pd.ExcelWriter(path, engine="openpyxl") as writer:
                    cls.order_rows(orders, exported_at).to_excel(
                        writer, sheet_name=ORDERS_SHEET, index=False
                    )
                    cls.waiter_call_rows(waiter_calls, exported_at).to_excel(
                        writer, sheet_name=WAITER_CALLS_SHEET, index=False
                    )

                logger.info(f"Exported {len(orders)} orders and {len(waiter_calls)} waiter calls to {path}")
                result["success"] = True
                result["message"] = f"Exported {len(orders)} orders and {len(waiter_calls)} waiter calls"
                result["exported_at"] = exported_at

            logger.debug(f"Lock released for {path}")

        except Timeout:
            result["message"] = f"Lock timeout ({lock_timeout}s)"
            logger.error(f"Lock timeout exporting to {path}")

        return result
