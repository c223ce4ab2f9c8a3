"""
Normalization helpers shared by the reconciler, the index and the scan.

Spreadsheet input is uncontrolled, so nothing in here raises on odd cell
values except serial_to_iso, whose callers pick the fallback.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any

# Spreadsheet day 25569 is 1970-01-01.
EXCEL_EPOCH_OFFSET = 25569
_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_HEADER_STRIP_RE = re.compile(r"[^a-z0-9]")
_NUMBER_STRIP_RE = re.compile(r"[^0-9.\-]")
# Longest leading float literal, the way a lenient parseFloat reads it
_FLOAT_PREFIX_RE = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)")


def normalize_header(header: Any) -> str:
    """
    Normalize a column header for comparison.

    Examples:
        "M.R.P."  -> "mrp"
        "MRP "    -> "mrp"
        "Batch No" -> "batchno"
    """
    return _HEADER_STRIP_RE.sub("", to_text(header).lower())


def to_text(value: Any) -> str:
    """Render a cell or field value as text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def clean_number(value: Any) -> float:
    """
    Coerce a cell to a float, degrading to 0.0.

    Currency symbols, commas and units are stripped first:
        "₹1,250.50"  -> 1250.5
        "12 strips"  -> 12.0
        "N/A"        -> 0.0
    """
    cleaned = _NUMBER_STRIP_RE.sub("", to_text(value))
    match = _FLOAT_PREFIX_RE.match(cleaned)
    if match is None:
        return 0.0
    return float(match.group(0))


def is_numeric_cell(value: Any) -> bool:
    """True for int/float cells; bools are not numbers here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def serial_to_iso(serial: float) -> str:
    """
    Convert a spreadsheet serial day count to YYYY-MM-DD (UTC).

    Raises:
        OverflowError / ValueError for serials outside the datetime range
    """
    moment = _UNIX_EPOCH + timedelta(days=serial - EXCEL_EPOCH_OFFSET)
    return moment.date().isoformat()
