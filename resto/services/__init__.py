"""
                        Services Module

Business logic behind the pages, the JSON API and the live channels.
The change feed follows the hybrid pattern: an in-memory implementation
in development and a Redis one in staging / production.

Services:
    - store: Products, orders and waiter calls (all database access)
    - realtime: Change feed announcing every write
    - sync: Live queries (polling + push) and staff notifications
    - analytics: Dashboard summary and analytics calculations
    - qr: Table URLs and QR code images
    - excel_manager: Locked spreadsheet export
"""

from resto.services.excel_manager import ExcelManager

__all__ = ["ExcelManager"]
