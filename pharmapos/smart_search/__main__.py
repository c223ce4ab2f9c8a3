"""
CLI entry point for Smart Search.

Usage:
    python -m pharmapos.smart_search import stock.xlsx --store pos.json
    python -m pharmapos.smart_search search para --store pos.json --mode accurate
    python -m pharmapos.smart_search search 27AAB --store pos.json --collection parties
"""

import argparse
import logging
import sys
from pathlib import Path

from .adapters import JsonFileRecordStore
from .config import DEFAULT_CONFIG_PATH, load_config
from .controller import SearchController
from .errors import EmptyImport, MalformedFile
from .importer import import_file
from .models import SearchMode
from .report import DEFAULT_COLUMNS, export_csv, format_console, format_import_summary

PARTY_COLUMNS = ("id", "name", "type", "phone", "gstin")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smart_search",
        description="Smart Search - import supplier spreadsheets and search products or parties",
    )
    parser.add_argument(
        "--config",
        default=None,
        metavar="FILE",
        help="Smart search config file (default: module's smart_search_config.json)",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress informational output",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Import a spreadsheet (first sheet) into a collection")
    imp.add_argument("file", metavar="FILE", help="Spreadsheet (XLSX or CSV)")
    imp.add_argument("--store", required=True, metavar="FILE", help="Record store JSON file")
    imp.add_argument("--collection", default="products", help="Target collection (default: products)")

    srch = sub.add_parser("search", help="Search a collection")
    srch.add_argument("term", nargs="?", default="", help="Search text (blank lists the first records)")
    srch.add_argument("--store", required=True, metavar="FILE", help="Record store JSON file")
    srch.add_argument("--collection", default="products", help="Collection to search (default: products)")
    srch.add_argument(
        "--mode",
        choices=[m.value for m in SearchMode],
        default=SearchMode.FAST.value,
        help="fast (fuzzy, indexed) or accurate (exact substring)",
    )
    srch.add_argument("--output-csv", metavar="FILE", help="Also write results to a CSV file")

    return parser


def _run_import(args, config) -> int:
    store = JsonFileRecordStore(args.store)
    result = import_file(args.file, store, collection=args.collection, config=config)
    if not args.quiet:
        print(format_import_summary(result))
    return 0


def _run_search(args, config) -> int:
    store = JsonFileRecordStore(args.store)
    columns = PARTY_COLUMNS if args.collection == "parties" else DEFAULT_COLUMNS
    with SearchController(store, args.collection, config=config) as controller:
        controller.rebuild_now()
        results = controller.search(args.term, args.mode)

    if not args.quiet:
        print(format_console(results, columns))

    if args.output_csv:
        output_path = Path(args.output_csv)
        with open(output_path, "w", newline="", encoding="utf-8") as f:
            export_csv(results, f, columns)
        if not args.quiet:
            print(f"CSV exported to: {output_path}")
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING if args.quiet else logging.INFO)

    config_path = Path(args.config) if args.config else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        print(f"Error: Config file not found: {config_path}", file=sys.stderr)
        return 1

    try:
        config = load_config(config_path)
        if args.command == "import":
            return _run_import(args, config)
        return _run_search(args, config)
    except EmptyImport as e:
        print(f"Error: No valid data: {e}", file=sys.stderr)
        return 1
    except MalformedFile as e:
        print(f"Error: Could not read spreadsheet: {e}", file=sys.stderr)
        return 1
    except KeyError as e:
        # str(KeyError) is the repr of its argument
        print(f"Error: {e.args[0] if e.args else e}", file=sys.stderr)
        return 1
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
