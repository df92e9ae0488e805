"""
DynamoDB export/import tool.

Usage:
    ddb-transfer export -t my-table -o backup.json
    ddb-transfer export -t my-table --grouped
    ddb-transfer export -t my-table --filter-expression "attribute_exists(email)"
    ddb-transfer import -t my-table -f backup.json [--dry-run] [--no-overwrite]
    ddb-transfer count -t my-table

Exit code is 0 on success (an import with some failed records still counts as
a success) and 1 on any top-level failure.
"""

from __future__ import annotations

import argparse
import json
import sys
from decimal import Decimal
from typing import Any, Callable

from .db.dynamodb.errors import DdbError
from .errors import TransferError
from .observability.context import bind_run_id
from .observability.logging import configure_logging, get_logger
from .services.export_document import dumps_json
from .services.table_transfer import ExportOptions, ImportOptions, ImportResult, open_transfer
from .settings import Settings, get_settings

log = get_logger("cli")

_RULE = "=" * 60
_SAMPLE_LINES = 10
_MAX_FAILURES_SHOWN = 10


class CliUsageError(Exception):
    pass


class _Parser(argparse.ArgumentParser):
    def error(self, message: str):  # type: ignore[override]
        raise CliUsageError(message)


def _json_arg(raw: str | None, *, flag: str) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        value = json.loads(raw, parse_float=Decimal)
    except ValueError as e:
        raise ValueError(f"{flag} must be a JSON object: {e}") from e
    if not isinstance(value, dict):
        raise ValueError(f"{flag} must be a JSON object")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(prog="ddb-transfer", description="Export a DynamoDB table to JSON or import JSON into a table.")
    sub = parser.add_subparsers(dest="command", metavar="{export,import,count,help}")

    exp = sub.add_parser("export", help="Export table data to a JSON file")
    exp.add_argument("-t", "--table", help="Table name (default: TABLE_NAME env var)")
    exp.add_argument("-o", "--output-file", help="Output filename (default: <table>-export-<timestamp>.json)")
    exp.add_argument("-d", "--output-dir", help="Output directory (default: current directory)")
    exp.add_argument("-r", "--region", help="AWS region (default: AWS_REGION env var)")
    exp.add_argument("-g", "--grouped", action="store_true", help="Group items by entity type")
    exp.add_argument("--filter-expression", "--filter", dest="filter_expression", help="DynamoDB filter expression")
    exp.add_argument("--expression-names", help="ExpressionAttributeNames as a JSON object")
    exp.add_argument("--expression-values", help="ExpressionAttributeValues as a JSON object")
    exp.add_argument("--limit", type=int, help="Items evaluated per scan page")
    exp.add_argument("--compact", action="store_true", help="Compact JSON output (no pretty-print)")
    exp.add_argument("--no-metadata", action="store_true", help="Exclude metadata from output")
    exp.set_defaults(handler=_cmd_export)

    imp = sub.add_parser("import", help="Import JSON file data into a table")
    imp.add_argument("-t", "--table", required=True, help="Target table name")
    imp.add_argument("-f", "--file", required=True, help="Input JSON file")
    imp.add_argument("-r", "--region", help="AWS region (default: AWS_REGION env var)")
    imp.add_argument("--dry-run", action="store_true", help="Preview the import without writing")
    imp.add_argument("--no-overwrite", action="store_true", help="Skip items whose key already exists")
    imp.add_argument("--batch-size", type=int, help="Items per write chunk (max 25)")
    imp.set_defaults(handler=_cmd_import)

    cnt = sub.add_parser("count", help="Count items without exporting")
    cnt.add_argument("-t", "--table", required=True, help="Table name")
    cnt.add_argument("-r", "--region", help="AWS region (default: AWS_REGION env var)")
    cnt.set_defaults(handler=_cmd_count)

    sub.add_parser("help", help="Show this help message")
    return parser


def _banner(title: str, rows: list[tuple[str, Any]]) -> None:
    print(f"\n{title}")
    print(_RULE)
    for label, value in rows:
        if value is not None:
            print(f"{label}: {value}")
    print(_RULE)


def _cmd_export(args: argparse.Namespace, settings: Settings) -> int:
    table = settings.resolve_table(args.table)
    options = ExportOptions(
        output_file=args.output_file or settings.output_file,
        output_dir=args.output_dir or settings.output_dir,
        filter_expression=args.filter_expression or settings.filter_expression,
        expression_attribute_names=_json_arg(args.expression_names, flag="--expression-names"),
        expression_attribute_values=_json_arg(args.expression_values, flag="--expression-values"),
        limit=args.limit,
        pretty=not args.compact,
        include_metadata=not args.no_metadata,
    )
    grouped = bool(args.grouped or settings.group_by_type)

    with open_transfer(table, region=args.region, settings=settings, export_options=options) as transfer:
        # Resolved once: the default name embeds the current time.
        path = transfer.output_path()
        _banner(
            "DynamoDB Export" + (" (grouped by entity type)" if grouped else ""),
            [
                ("Table", table),
                ("Region", transfer.region),
                ("Output", path),
                ("Filter", options.filter_expression),
            ],
        )
        summary = transfer.export_grouped(path) if grouped else transfer.export(path)

    print("\nScan complete")
    print(f"  Items exported: {summary.item_count}")
    print(f"  Items scanned: {summary.scanned_count}")
    print(f"  Pages: {summary.pages}")
    print(f"  Duration: {summary.duration_s:.2f}s")
    if summary.entity_counts is not None:
        print(f"  Entity types: {len(summary.entity_counts)}")
        for entity_type, n in summary.entity_counts.items():
            print(f"    {entity_type}: {n} items")
    print(f"\nSaved {summary.path} ({summary.size_bytes / 1024 / 1024:.2f} MB)\n")
    return 0


def _print_import_summary(result: ImportResult) -> None:
    if result.dry_run:
        print("\nDRY RUN - no items were written")
        print(f"  Would import: {result.total} items")
        print(f"  Batches required: {result.chunks}")
        if result.sample is not None:
            lines = dumps_json(result.sample, pretty=True).splitlines()
            print("\nSample item (first):")
            print("\n".join(lines[:_SAMPLE_LINES]))
            if len(lines) > _SAMPLE_LINES:
                print("  ... (truncated)")
        print()
        return

    print("\nImport complete")
    print(f"  Imported: {result.imported}")
    print(f"  Failed: {result.failed}")
    print(f"  Skipped: {result.skipped}")
    print(f"  Duration: {result.duration_s:.2f}s")
    print(f"  Throughput: {result.throughput:.0f} items/sec")
    for failure in result.failures[:_MAX_FAILURES_SHOWN]:
        print(f"  ! {dumps_json(failure.key, pretty=False)}: {failure.reason}")
    if len(result.failures) > _MAX_FAILURES_SHOWN:
        print(f"  ... and {len(result.failures) - _MAX_FAILURES_SHOWN} more failures")
    print()


def _cmd_import(args: argparse.Namespace, settings: Settings) -> int:
    table = settings.resolve_table(args.table)
    options = ImportOptions(
        dry_run=bool(args.dry_run),
        batch_size=args.batch_size if args.batch_size is not None else settings.import_batch_size,
        overwrite=not args.no_overwrite,
    )

    with open_transfer(table, region=args.region, settings=settings) as transfer:
        _banner(
            "DynamoDB Import",
            [
                ("Source", args.file),
                ("Table", table),
                ("Region", transfer.region),
                ("Mode", "DRY RUN" if options.dry_run else "LIVE"),
                ("Overwrite", "Yes" if options.overwrite else "No"),
            ],
        )
        result = transfer.import_file(args.file, options)

    _print_import_summary(result)
    return 0


def _cmd_count(args: argparse.Namespace, settings: Settings) -> int:
    table = settings.resolve_table(args.table)
    with open_transfer(table, region=args.region, settings=settings) as transfer:
        print(f"\nCounting items in table: {table}\n")
        n = transfer.count()
    print(f"Total items: {n:,}\n")
    return 0


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0

    try:
        args = parser.parse_args(argv)
    except CliUsageError as e:
        print(f"error: {e}", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    if args.command in (None, "help"):
        parser.print_help()
        return 0

    settings = get_settings()
    configure_logging(level=settings.log_level)
    handler: Callable[[argparse.Namespace, Settings], int] = args.handler

    with bind_run_id():
        try:
            return handler(args, settings)
        except (TransferError, DdbError, ValueError) as e:
            log.error("command_failed", command=args.command, error=str(e), error_type=type(e).__name__)
            print(f"\n{args.command} failed: {e}", file=sys.stderr)
            return 1
