"""Command-line interface for the catalog importer."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from catalog_import.artifacts import backup_assets, write_run_report
from catalog_import.config import (
    DATA_DIR,
    DB_PATH,
    DEFAULT_WORKERS,
    EXPORT_FILES,
    SOURCE_TAG,
    get_db_path_from_env,
    get_store_url_from_env,
    get_workers_from_env,
)
from catalog_import.db import (
    StoreConfigError,
    delete_products_by_tag,
    get_table_counts,
    open_store,
)
from catalog_import.logging_config import setup_logging
from catalog_import.models import RunSummary
from catalog_import.pipeline import CatalogImporter
from catalog_import.shutdown import get_shutdown_handler
from catalog_import.sources import (
    SHOPIFY_SOURCE,
    SourceLoadError,
    export_path_for_mode,
    load_export,
    load_shopify,
)

__all__ = ["main", "parse_args", "resolve_db_path", "show_stats", "print_summary"]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import external product data into the catalog database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import the primary vendor export (data/ventura-products.json)
  python -m catalog_import.cli

  # Import the full export with 4 workers and write an audit report
  python -m catalog_import.cli --mode full --workers 4 --report-dir data/reports

  # Migrate a Shopify storefront
  python -m catalog_import.cli --source shopify --store-url https://example-store.com

  # Show database statistics
  python -m catalog_import.cli --stats

  # Remove everything a previous vendor import created
  python -m catalog_import.cli --purge-tag ventura
        """,
    )

    parser.add_argument(
        "--source",
        choices=["export", SHOPIFY_SOURCE],
        default="export",
        help="export: read a JSON export file (default); shopify: fetch a storefront's public API",
    )
    parser.add_argument(
        "--mode",
        choices=list(EXPORT_FILES.keys()),
        default="primary",
        help=f"Which export to load (default: primary). Files: {EXPORT_FILES}",
    )
    parser.add_argument(
        "--input",
        metavar="PATH",
        help="Export file to load instead of the one selected by --mode",
    )
    parser.add_argument(
        "--data-dir",
        default=DATA_DIR,
        help=f"Directory holding the export files (default: {DATA_DIR})",
    )
    parser.add_argument(
        "--store-url",
        help="Storefront base URL for --source shopify (default: $SHOPIFY_STORE_URL)",
    )

    parser.add_argument(
        "--db",
        default=None,
        help=f"SQLite catalog path (default: $CATALOG_DB_PATH or {DB_PATH})",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help=f"Parallel record writers (default: $CATALOG_IMPORT_WORKERS or {DEFAULT_WORKERS})",
    )
    parser.add_argument(
        "--tag",
        help=f"Tag stamped on every imported product (default: {SOURCE_TAG} for exports, "
             f"{SHOPIFY_SOURCE} for shopify)",
    )

    parser.add_argument(
        "--report-dir",
        metavar="DIR",
        help="Write a JSON run report (handles, image URLs, counts) to DIR",
    )
    parser.add_argument(
        "--backup-assets",
        action="store_true",
        help="Also download imported images into DIR/assets (requires --report-dir)",
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show database statistics and exit",
    )
    parser.add_argument(
        "--purge-tag",
        metavar="TAG",
        help="Delete all products carrying TAG (with images, documents, links) and exit",
    )

    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--no-log-file", action="store_true", help="Don't write JSONL logs")

    return parser.parse_args(argv)


def resolve_db_path(cli_value: Optional[str]) -> str:
    """--db wins over $CATALOG_DB_PATH, which wins over the default."""
    if cli_value is not None:
        return cli_value
    env_value = get_db_path_from_env()
    return env_value if env_value is not None else DB_PATH


def show_stats(db_path: str) -> None:
    """Display database statistics."""
    counts = get_table_counts(db_path)

    print(f"\n{'='*50}")
    print(f"Database: {db_path}")
    print(f"{'='*50}")
    for table, count in counts.items():
        print(f"  {table + ':':<22}{count}")
    print()


def print_summary(summary: RunSummary) -> None:
    print(f"\n{'='*50}")
    print("  Import Complete!" if not summary.interrupted else "  Import Interrupted")
    print(f"{'='*50}\n")
    print(f"  Products imported: {summary.imported}/{summary.records}")
    print(f"  Images inserted:   {summary.images}")
    print(f"  Variants written:  {summary.variants}")
    print(f"  Collection links:  {summary.collection_links}")
    print(f"  Specs added:       {summary.with_specifications} products")
    print(f"  Documents added:   {summary.documents}")
    print(f"  Skipped records:   {summary.skipped}")
    print(f"  Errors:            {summary.errors} (+{summary.stage_errors} stage errors)")
    if summary.totals:
        print()
        for table, count in summary.totals.items():
            print(f"  Total {table + ':':<20}{count}")
    print()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI. Returns the process exit status."""
    load_dotenv()
    args = parse_args(argv)

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_to_file=not args.no_log_file,
    )

    try:
        db_path = open_store(resolve_db_path(args.db))
    except StoreConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.stats:
        show_stats(db_path)
        return 0

    if args.purge_tag:
        deleted = delete_products_by_tag(db_path, args.purge_tag)
        print(f"Deleted {deleted} products tagged '{args.purge_tag}'")
        print(f"Total products remaining: {get_table_counts(db_path)['products']}")
        return 0

    if args.source == SHOPIFY_SOURCE:
        store_url = args.store_url or get_store_url_from_env()
        print(f"Importing from storefront {store_url}")

        def load():
            return load_shopify(store_url)
    else:
        input_path = Path(args.input) if args.input else export_path_for_mode(args.mode, args.data_dir)
        print(f"Importing {args.mode} export from {input_path}")

        def load():
            return load_export(input_path, source=SOURCE_TAG)

    workers = args.workers if args.workers is not None else get_workers_from_env()
    importer = CatalogImporter(db_path, workers=workers, source_tag=args.tag)

    try:
        with get_shutdown_handler().installed():
            summary = importer.run(load)
    except SourceLoadError as e:
        print(f"Error: could not load source data: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted while loading source data", file=sys.stderr)
        return 130

    print_summary(summary)

    if args.report_dir:
        write_run_report(summary, Path(args.report_dir))
        if args.backup_assets:
            backup_assets(summary, Path(args.report_dir))
    elif args.backup_assets:
        print("--backup-assets needs --report-dir; skipping asset backup")

    return 0


if __name__ == "__main__":
    sys.exit(main())
