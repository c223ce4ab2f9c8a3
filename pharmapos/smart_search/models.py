"""
Data models for Smart Search.

Records themselves stay plain mappings (the store and the accurate search
both need to tolerate unknown columns). Dataclasses cover the fixed shapes:
the canonical product emitted by the reconciler, search state and import
results.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class SearchMode(Enum):
    """How a query is served."""
    FAST = "fast"          # Document index, prefix matching
    ACCURATE = "accurate"  # Linear case-insensitive substring scan


# Canonical product schema, in output order.
TEXT_FIELDS = ("name", "batch", "hsn", "manufacturer")
NUMERIC_FIELDS = ("mrp", "purchaseRate", "saleRate", "stock", "gstRate")
DATE_FIELDS = ("expiry",)
PRODUCT_FIELDS = TEXT_FIELDS + NUMERIC_FIELDS + DATE_FIELDS


@dataclass
class ProductRecord:
    """
    A single inventory row after header reconciliation.

    Always fully populated; carries no id (the record store assigns one).
    """
    name: str
    batch: str
    hsn: str
    manufacturer: str
    mrp: float = 0.0
    purchase_rate: float = 0.0
    sale_rate: float = 0.0
    stock: float = 0.0
    gst_rate: float = 5.0
    expiry: str = "2025-12-31"

    def to_record(self) -> dict[str, Any]:
        """Mapping in the store's field naming (camelCase rates)."""
        return {
            "name": self.name,
            "batch": self.batch,
            "hsn": self.hsn,
            "manufacturer": self.manufacturer,
            "mrp": self.mrp,
            "purchaseRate": self.purchase_rate,
            "saleRate": self.sale_rate,
            "stock": self.stock,
            "gstRate": self.gst_rate,
            "expiry": self.expiry,
        }


@dataclass
class FieldHits:
    """Ids matched within one indexed field, best first."""
    field: str
    ids: list[int] = field(default_factory=list)


@dataclass
class SearchState:
    """Query, mode and the results computed for exactly that pair."""
    query: str
    mode: SearchMode
    results: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ImportResult:
    """Outcome of one spreadsheet import."""
    source: Path
    collection: str
    rows_read: int
    ids: list[int] = field(default_factory=list)
    sheet_name: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.ids)
