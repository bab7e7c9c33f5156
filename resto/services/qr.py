"""
Table QR Codes

Each table gets a QR code that opens ``<APP_BASE_URL>/table/<table_id>``
on the guest's phone. Codes are rendered as PNG on demand; staff print
them from the QR code management page.
"""

import io
import logging
from typing import Optional

import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_M

from resto.core.config import get_settings

logger = logging.getLogger(__name__)

QR_SIZES = {
    "sm": 128,
    "md": 192,
    "lg": 256,
}

BULK_RANGES = [
    ("Tables 1-10", 1, 10),
    ("Tables 11-20", 11, 20),
    ("Tables 21-30", 21, 30),
    ("All Tables (1-30)", 1, 30),
]


def table_url(table_id: str, base_url: Optional[str] = None) -> str:
    """URL a table's QR code points to."""
    base = (base_url or get_settings().app_base_url).rstrip("/")
    return f"{base}/table/{table_id}"


def table_range(start: int, end: int) -> list[int]:
    """Table numbers from ``start`` to ``end`` inclusive."""
    if start < 1 or end < start:
        raise ValueError(f"Invalid table range {start}-{end}")
    return list(range(start, end + 1))


def render_qr_png(data: str, size: str = "md") -> bytes:
    """
    Render ``data`` as a square PNG QR code.

    Args:
        data: Text to encode (normally a table URL)
        size: One of ``sm`` (128px), ``md`` (192px), ``lg`` (256px)

    Returns:
        PNG image bytes
    """
    if size not in QR_SIZES:
        raise ValueError(f"Invalid size {size!r}. Options: {list(QR_SIZES)}")

    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    pixels = QR_SIZES[size]
    img = qr.make_image(fill_color="black", back_color="white").get_image()
    img = img.resize((pixels, pixels), Image.NEAREST)

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    logger.debug(f"Rendered {size} QR code for {data}")
    return buffer.getvalue()
