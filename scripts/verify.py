"""
Export Verification Script

Checks the spreadsheet written by the export task.
Run from project root: python scripts/verify.py [path]
"""

import os
import sys
from datetime import datetime

import pandas as pd

EXCEL_FILE = os.path.join("data", "orders.xlsx")

ORDER_COLUMNS = ["order_id", "table_id", "total", "order_status", "payment_status"]
WAITER_CALL_COLUMNS = ["call_id", "table_id", "status", "response_minutes"]


def _check_columns(df: pd.DataFrame, required: list[str], sheet: str) -> None:
    missing = [col for col in required if col not in df.columns]
    if missing:
        print(f"⚠️ {sheet}: missing columns {missing}")
    else:
        print(f"✅ {sheet}: all required columns present")


def verify_excel(path: str = EXCEL_FILE) -> bool:
    """Verify the export after a simulation run."""

    print("=" * 60)
    print("🔍 EXPORT VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📄 File: {path}")
    print("=" * 60)

    if not os.path.exists(path):
        print("\n❌ Export file not found!")
        print("   Queue one first: python scripts/simulate.py --export")
        return False

    try:
        sheets = pd.read_excel(path, sheet_name=None, engine="openpyxl")
    except (OSError, ValueError) as e:
        print(f"\n❌ Could not read export: {e}")
        return False

    orders = sheets.get("orders", pd.DataFrame())
    calls = sheets.get("waiter_calls", pd.DataFrame())

    print(f"\n📊 STATISTICS:")
    print(f"   Orders: {len(orders)}")
    print(f"   Waiter calls: {len(calls)}")
    print()
    _check_columns(orders, ORDER_COLUMNS, "orders")
    _check_columns(calls, WAITER_CALL_COLUMNS, "waiter_calls")

    if "order_id" in orders.columns:
        duplicates = orders["order_id"].duplicated().sum()
        if duplicates > 0:
            print(f"\n⚠️ {duplicates} duplicate order IDs found!")
        else:
            print("✅ No duplicate order IDs")

    if {"total", "payment_status"} <= set(orders.columns):
        paid = orders[orders["payment_status"] == "paid"]
        print(f"\n💰 REVENUE (paid orders):")
        print(f"   Total: ${paid['total'].sum():.2f}")
        print(f"   Average: ${paid['total'].mean() if len(paid) else 0:.2f}")
        print(f"\n📋 BY STATUS:")
        print(orders["order_status"].value_counts().to_string())

    if "response_minutes" in calls.columns:
        answered = calls["response_minutes"].dropna()
        print(f"\n🔔 WAITER RESPONSE:")
        print(f"   Answered: {len(answered)}/{len(calls)}")
        if len(answered):
            print(f"   Average: {answered.mean():.1f} min")

    print(f"\n📋 RECENT ORDERS:")
    print("-" * 60)
    if len(orders) > 0:
        cols = [c for c in ORDER_COLUMNS if c in orders.columns]
        print(orders[cols].head(5).to_string(index=False))

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE")
    print("=" * 60)

    return True


if __name__ == "__main__":
    verify_excel(sys.argv[1] if len(sys.argv) > 1 else EXCEL_FILE)
