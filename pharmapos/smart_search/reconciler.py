"""
Header Reconciler - Map arbitrary spreadsheet rows onto the product schema.

Suppliers and old billing software export inventory with whatever column
names they like ("M.R.P.", "Qty", "Item Name", ...). Each canonical field
has a list of accepted aliases; a column matches when its normalized
header equals a normalized alias. This is literal equality after
normalization, not edit-distance matching.

Data-shape problems never raise: unmapped columns take the field default,
bad numbers become 0 and bad dates become the placeholder date.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any, Optional

from .config import Config
from .models import ProductRecord
from .normalize import (
    clean_number,
    is_numeric_cell,
    normalize_header,
    serial_to_iso,
    to_text,
)

logger = logging.getLogger(__name__)


def _normalized_keys(row: Mapping[str, Any]) -> dict[str, str]:
    """Normalized header -> first raw key with that normalization."""
    keys: dict[str, str] = {}
    for key in row:
        keys.setdefault(normalize_header(key), key)
    return keys


def find_value(row: Mapping[str, Any], canonical: str, config: Config,
               _keys: Optional[dict[str, str]] = None) -> Any:
    """
    Find the cell for a canonical field in a raw row.

    Aliases are tried in priority order; for each alias the first column
    (in row order) with the same normalized header wins.

    Returns:
        The cell value, or None if no column matches
    """
    keys = _keys if _keys is not None else _normalized_keys(row)
    for alias in config.aliases_for(canonical):
        key = keys.get(alias)
        if key is not None:
            return row[key]
    return None


def _text_field(value: Any, default: Any) -> str:
    # Blank cells, zero and False all count as missing
    return to_text(value) if value else to_text(default)


def _expiry_field(value: Any, default: Any) -> str:
    if is_numeric_cell(value):
        try:
            return serial_to_iso(value)
        except (OverflowError, ValueError):
            logger.debug(f"Expiry serial {value!r} out of range, using placeholder")
            return to_text(default)
    if isinstance(value, date):
        return to_text(value)
    return _text_field(value, default)


def reconcile_row(row: Mapping[str, Any], config: Config) -> ProductRecord:
    """
    Reconcile one raw spreadsheet row into a canonical product.

    Args:
        row: Mapping of column header -> cell value, any column order
        config: Config carrying the synonym dictionary and field defaults

    Returns:
        Fully populated ProductRecord (no id)
    """
    keys = _normalized_keys(row)

    def value(canonical: str) -> Any:
        return find_value(row, canonical, config, keys)

    gst_rate = clean_number(value("gstRate")) or float(config.default_for("gstRate"))

    return ProductRecord(
        name=_text_field(value("name"), config.default_for("name")),
        batch=_text_field(value("batch"), config.default_for("batch")),
        hsn=_text_field(value("hsn"), config.default_for("hsn")),
        manufacturer=_text_field(value("manufacturer"), config.default_for("manufacturer")),
        mrp=clean_number(value("mrp")),
        purchase_rate=clean_number(value("purchaseRate")),
        sale_rate=clean_number(value("saleRate")),
        stock=clean_number(value("stock")),
        gst_rate=gst_rate,
        expiry=_expiry_field(value("expiry"), config.default_for("expiry")),
    )


def reconcile_rows(rows: Iterable[Mapping[str, Any]], config: Config) -> list[ProductRecord]:
    """Reconcile every row; never drops a row."""
    return [reconcile_row(row, config) for row in rows]
