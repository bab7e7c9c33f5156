"""
                Resto Chen Table Ordering

QR-code table ordering for dine-in restaurants: customers order and
call waitstaff from their table, staff follow everything live on the
admin dashboard.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
