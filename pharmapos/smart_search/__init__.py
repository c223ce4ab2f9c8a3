# Smart Search & Smart Import for the POS product and party books
# Siloed module - storage is reached only through the RecordStore adapters

from .models import (
    SearchMode,
    ProductRecord,
    FieldHits,
    SearchState,
    ImportResult,
    PRODUCT_FIELDS,
)
from .errors import MalformedFile, EmptyImport, ConstraintError
from .config import Config, CollectionConfig, SearchSettings, load_config, default_config
from .normalize import normalize_header, clean_number, serial_to_iso
from .reconciler import find_value, reconcile_row, reconcile_rows
from .index import DocumentIndex, create_index, build_index
from .adapters import RecordStore, InMemoryRecordStore, JsonFileRecordStore
from .controller import SearchController
from .importer import read_rows, import_rows, import_file
from .report import format_console, format_import_summary, export_csv

__version__ = "1.0.0"

__all__ = [
    # Models
    "SearchMode",
    "ProductRecord",
    "FieldHits",
    "SearchState",
    "ImportResult",
    "PRODUCT_FIELDS",
    # Errors
    "MalformedFile",
    "EmptyImport",
    "ConstraintError",
    # Config
    "Config",
    "CollectionConfig",
    "SearchSettings",
    "load_config",
    "default_config",
    # Normalization
    "normalize_header",
    "clean_number",
    "serial_to_iso",
    # Reconciler
    "find_value",
    "reconcile_row",
    "reconcile_rows",
    # Index
    "DocumentIndex",
    "create_index",
    "build_index",
    # Store
    "RecordStore",
    "InMemoryRecordStore",
    "JsonFileRecordStore",
    # Search
    "SearchController",
    # Import
    "read_rows",
    "import_rows",
    "import_file",
    # Report
    "format_console",
    "format_import_summary",
    "export_csv",
]
