"""
Smart Import - Load a supplier spreadsheet into the product collection.

Pipeline:
1. Decode the first sheet of the file into header-keyed rows
2. Reconcile every row onto the canonical product schema
3. Write all rows to the record store in a single bulk_add

Structural problems abort the whole import (MalformedFile, EmptyImport);
per-cell problems never do. Nothing is written unless every row made it
through reconciliation.
"""

import csv
import logging
import zipfile
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Optional

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .adapters import RecordStore
from .config import Config, default_config
from .errors import EmptyImport, MalformedFile
from .models import ImportResult
from .normalize import to_text
from .reconciler import reconcile_rows

logger = logging.getLogger(__name__)

CSV_SUFFIXES = (".csv", ".txt")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _header_names(header_cells: Iterable[Any]) -> list[Optional[str]]:
    """
    Turn a header row into column names.

    Blank headers become None (column dropped); repeated headers get
    numeric suffixes ("Qty", "Qty_1", ...) so the first column keeps
    the plain name.
    """
    names: list[Optional[str]] = []
    seen: dict[str, int] = {}
    for cell in header_cells:
        if _is_blank(cell):
            names.append(None)
            continue
        name = to_text(cell).strip()
        count = seen.get(name, 0)
        seen[name] = count + 1
        names.append(name if count == 0 else f"{name}_{count}")
    return names


def _rows_from_table(table: Iterable[Iterable[Any]]) -> list[dict[str, Any]]:
    """Header row + data rows -> list of dicts, skipping blank cells and rows."""
    rows_iter = iter(table)
    try:
        header = _header_names(next(rows_iter))
    except StopIteration:
        return []

    rows = []
    for values in rows_iter:
        row = {}
        for name, value in zip(header, values):
            if name is None or _is_blank(value):
                continue
            row[name] = value
        if row:
            rows.append(row)
    return rows


def _read_excel(path: Path) -> tuple[str, list[dict[str, Any]]]:
    """Read the first worksheet of a workbook."""
    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise MalformedFile(f"Invalid spreadsheet {path.name}: {e}") from e

    try:
        if not workbook.worksheets:
            raise MalformedFile(f"No worksheets in {path.name}")
        sheet = workbook.worksheets[0]
        try:
            rows = _rows_from_table(sheet.iter_rows(values_only=True))
        except (zipfile.BadZipFile, KeyError, ValueError) as e:
            raise MalformedFile(f"Failed to read sheet '{sheet.title}' in {path.name}: {e}") from e
        return sheet.title, rows
    finally:
        workbook.close()


def _read_csv(path: Path) -> list[dict[str, Any]]:
    """Read a delimited text file, sniffing the delimiter."""
    try:
        with open(path, "r", newline="", encoding="utf-8-sig") as f:
            sample = f.read(4096)
            f.seek(0)
            try:
                dialect = csv.Sniffer().sniff(sample, delimiters=",;\t|")
            except csv.Error:
                dialect = csv.excel
            return _rows_from_table(csv.reader(f, dialect))
    except (UnicodeDecodeError, csv.Error) as e:
        raise MalformedFile(f"Invalid CSV {path.name}: {e}") from e


def read_rows(file_path: str | Path) -> tuple[Optional[str], list[dict[str, Any]]]:
    """
    Decode a spreadsheet into header-keyed rows.

    Args:
        file_path: Path to an .xlsx/.xlsm workbook or a .csv file

    Returns:
        (sheet name or None for CSV, rows)

    Raises:
        FileNotFoundError if the file does not exist
        MalformedFile if the file cannot be parsed
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Import file not found: {path}")

    if path.suffix.lower() in CSV_SUFFIXES:
        return None, _read_csv(path)
    return _read_excel(path)


def import_rows(
    rows: Iterable[Mapping[str, Any]],
    store: RecordStore,
    collection: str = "products",
    config: Optional[Config] = None,
    source: str | Path = "<rows>",
    sheet_name: Optional[str] = None,
) -> ImportResult:
    """
    Reconcile already-decoded rows and bulk-insert them.

    Raises:
        EmptyImport if there are no rows
        Any store error, unchanged
    """
    config = config or default_config()
    rows = list(rows)
    if not rows:
        raise EmptyImport(f"No valid data found in {source}")

    records = [product.to_record() for product in reconcile_rows(rows, config)]
    ids = store.bulk_add(collection, records)
    logger.info(f"Imported {len(ids)} rows from {source} into {collection}")

    return ImportResult(
        source=Path(source),
        collection=collection,
        rows_read=len(rows),
        ids=list(ids),
        sheet_name=sheet_name,
    )


def import_file(
    file_path: str | Path,
    store: RecordStore,
    collection: str = "products",
    config: Optional[Config] = None,
) -> ImportResult:
    """
    Import a spreadsheet into a collection in one bulk write.

    Args:
        file_path: Spreadsheet to import (first sheet only)
        store: Record store receiving the rows
        collection: Target collection name
        config: Synonyms and defaults (package config if omitted)

    Returns:
        ImportResult with the ids the store assigned

    Raises:
        FileNotFoundError, MalformedFile, EmptyImport, or store errors
    """
    path = Path(file_path)
    sheet_name, rows = read_rows(path)
    logger.info(f"Read {len(rows)} rows from {path.name}" + (f" [{sheet_name}]" if sheet_name else ""))
    return import_rows(rows, store, collection, config, source=path, sheet_name=sheet_name)
