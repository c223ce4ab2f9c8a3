"""
Report Generator - Format search results and import outcomes.

Produces console output and CSV export for the CLI.
"""

import csv
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, TextIO

from .models import ImportResult
from .normalize import to_text

DEFAULT_COLUMNS = ("id", "name", "batch", "expiry", "stock", "saleRate")
MAX_COLUMN_WIDTH = 30


def _cell(value: Any, width: int) -> str:
    text = to_text(value)
    if len(text) > width:
        text = text[: width - 3] + "..."
    return text


def format_console(records: Sequence[Mapping[str, Any]], columns: Iterable[str] = DEFAULT_COLUMNS) -> str:
    """
    Format records as a fixed-width table.

    Args:
        records: Search results
        columns: Fields to show, in order

    Returns:
        Formatted string for console output
    """
    if not records:
        return "No records found.\n"

    columns = list(columns)
    widths = {}
    for col in columns:
        longest = max([len(col)] + [len(to_text(r.get(col))) for r in records])
        widths[col] = min(longest, MAX_COLUMN_WIDTH)

    lines = []
    lines.append("  ".join(f"{col.upper():<{widths[col]}}" for col in columns))
    lines.append("-" * (sum(widths.values()) + 2 * (len(columns) - 1)))
    for record in records:
        lines.append("  ".join(f"{_cell(record.get(col), widths[col]):<{widths[col]}}" for col in columns))
    lines.append("")
    lines.append(f"{len(records)} record(s)")
    return "\n".join(lines) + "\n"


def format_import_summary(result: ImportResult) -> str:
    """One-line summary of an import."""
    source = result.source.name
    if result.sheet_name:
        source = f"{source} [{result.sheet_name}]"
    return f"Smart Import: {result.count} items added to {result.collection} from {source}"


def export_csv(records: Sequence[Mapping[str, Any]], output: TextIO, columns: Iterable[str] = DEFAULT_COLUMNS):
    """
    Write records as CSV.

    Args:
        records: Records to export
        output: Writable text stream
        columns: Fields to export, in order (extra record fields are ignored)
    """
    columns = list(columns)
    writer = csv.DictWriter(output, fieldnames=columns, extrasaction="ignore")
    writer.writeheader()
    for record in records:
        writer.writerow({col: to_text(record.get(col)) for col in columns})
