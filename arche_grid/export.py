"""
Grid export encoders.

CSV comes straight from the grid's own serializer inside the page. Excel is
a real .xlsx workbook written with openpyxl from the rows currently
displayed (after filter and sort), returned base64-encoded.
"""

import base64
import io
from datetime import datetime
from typing import Any, Dict, List, Optional

import openpyxl
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.utils import get_column_letter

from .utils import iso_timestamp


FORMATS = ("csv", "excel")

EXTENSIONS = {
    "csv": "csv",
    "excel": "xlsx",
}


def export_filename(grid_id: str, fmt: str, when: Optional[datetime] = None,
                    base: Optional[str] = None) -> str:
    """grid-export-<id>-<timestamp>.<ext>, or <base>.<ext> when given."""
    ext = EXTENSIONS[fmt]
    if base:
        return f"{base}.{ext}"
    stamp = iso_timestamp(when).replace(":", "-").replace(".", "-")
    return f"grid-export-{grid_id}-{stamp}.{ext}"


def _cell_value(value: Any) -> Any:
    """Coerce a loosely-typed row value into something a worksheet cell accepts."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    # nested objects and lists are written as their text form
    return ILLEGAL_CHARACTERS_RE.sub("", str(value))


def encode_xlsx(column_defs: List[Dict[str, Any]], rows: List[Dict[str, Any]],
                sheet_title: str = "Grid") -> bytes:
    """Build a one-sheet workbook: header row from the columns, then one row per record."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_title[:31]

    fields = [col["field"] for col in column_defs]
    ws.append([col.get("headerName") or col["field"] for col in column_defs])
    for row in rows:
        ws.append([_cell_value(row.get(name)) for name in fields])

    for idx, col in enumerate(column_defs, start=1):
        width = col.get("width")
        if width:
            # grid widths are pixels; worksheet widths are characters
            ws.column_dimensions[get_column_letter(idx)].width = max(8, round(width / 7))
    ws.freeze_panes = "A2"

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def encode_xlsx_base64(column_defs: List[Dict[str, Any]], rows: List[Dict[str, Any]]) -> str:
    return base64.b64encode(encode_xlsx(column_defs, rows)).decode("ascii")
