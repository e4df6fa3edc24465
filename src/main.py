"""Command-line entry point for schema status, migration and validation checks."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Sequence, TextIO

from simcontent.bootstrap import create_migration_engine, create_registry, create_store
from simcontent.errors import (
    DocumentStoreError,
    MigrationError,
    SchemaDefinitionError,
    UnknownSchemaTypeError,
)
from simcontent.logging_utils import configure_logging
from simcontent.migrations import (
    CollectionMigrationReport,
    MigrationEngine,
    MigrationStatus,
)
from simcontent.sanitizer import sanitize_payload
from simcontent.schemas import SchemaRegistry
from simcontent.settings import ContentSettings
from simcontent.validation import validate_document

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_USAGE = 2

logger = logging.getLogger("simcontent.cli")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Inspect and migrate simulation content documents"
    )
    parser.add_argument(
        "--store-root",
        type=Path,
        help=(
            "Directory holding the JSON document store. "
            "Defaults to SIMCONTENT_STORE_ROOT when unset."
        ),
    )
    parser.add_argument(
        "--schema-dir",
        type=Path,
        help=(
            "Directory of schema definitions to use instead of the bundled ones. "
            "Defaults to SIMCONTENT_SCHEMA_DIR when unset."
        ),
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print machine-readable JSON instead of the text summary.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    status_parser = subparsers.add_parser(
        "status", help="Show the schema version breakdown of collections."
    )
    status_parser.add_argument(
        "schema_type",
        nargs="?",
        help="Entity type to inspect. Every registered type when omitted.",
    )
    status_parser.add_argument(
        "--company", help="Restrict the count to one company id."
    )

    run_parser = subparsers.add_parser(
        "run", help="Migrate a collection, or every collection with 'all'."
    )
    run_parser.add_argument("schema_type", help="Entity type to migrate, or 'all'.")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would change without writing anything.",
    )
    run_parser.add_argument(
        "--company", help="Only migrate documents owned by this company id."
    )

    validate_parser = subparsers.add_parser(
        "validate", help="Validate a JSON payload file against a schema."
    )
    validate_parser.add_argument("schema_type", help="Entity type to validate against.")
    validate_parser.add_argument("path", type=Path, help="JSON file holding the payload.")
    validate_parser.add_argument(
        "--update",
        action="store_true",
        help="Use the update rules instead of creation rules.",
    )

    subparsers.add_parser("types", help="List registered entity types.")
    return parser.parse_args(argv)


def _resolve_settings(args: argparse.Namespace) -> ContentSettings:
    settings = ContentSettings.from_env()
    if args.store_root is not None:
        settings = replace(settings, store_root=args.store_root)
    if args.schema_dir is not None:
        settings = replace(settings, schema_dir=args.schema_dir)
    return settings


def _emit_json(payload: Any, stream: TextIO) -> None:
    stream.write(json.dumps(payload, indent=2))
    stream.write("\n")


def _format_status(status: MigrationStatus) -> list[str]:
    lines = [
        f"{status.collection} (current schema {status.current_version})",
        f"  Total documents: {status.total_documents}",
    ]
    for version, count in status.version_breakdown.items():
        marker = "" if version == status.current_version else " (outdated)"
        lines.append(f"  v{version}: {count}{marker}")
    if status.needs_migration:
        lines.append(f"  Needs migration: {status.outdated_count} documents")
    else:
        lines.append("  Up to date")
    return lines


def _format_collection_report(report: CollectionMigrationReport) -> list[str]:
    prefix = "[DRY RUN] " if report.dry_run else ""
    lines = [
        f"{prefix}{report.collection}: {report.successful} successful, "
        f"{report.failed} failed"
    ]
    for result in report.results:
        label = result.name or result.document_id
        if result.success:
            lines.append(f"  {label}: {result.message}")
            if result.changed:
                lines.append(f"    Changed fields: {', '.join(result.changed)}")
        else:
            lines.append(f"  {label}: {result.message}: {result.error}")
    for backup in report.backups:
        lines.append(f"  Backup written: {backup}")
    return lines


def _write_lines(lines: Sequence[str], stream: TextIO) -> None:
    for line in lines:
        stream.write(line)
        stream.write("\n")


def _run_status(
    engine: MigrationEngine, args: argparse.Namespace, stream: TextIO
) -> int:
    if args.schema_type:
        statuses = [engine.get_migration_status(args.schema_type, args.company)]
    else:
        statuses = engine.status_for_all(args.company)

    if args.json:
        _emit_json([status.to_payload() for status in statuses], stream)
    else:
        for status in statuses:
            _write_lines(_format_status(status), stream)
    return EXIT_OK


def _run_migrations(
    engine: MigrationEngine, args: argparse.Namespace, stream: TextIO
) -> int:
    if args.schema_type == "all":
        reports = engine.migrate_all(args.company, args.dry_run)
    else:
        reports = [
            engine.migrate_collection(args.schema_type, args.company, args.dry_run)
        ]

    if args.json:
        _emit_json([report.to_payload() for report in reports], stream)
    else:
        for report in reports:
            _write_lines(_format_collection_report(report), stream)

    if all(report.success for report in reports):
        return EXIT_OK
    return EXIT_FAILURES


def _run_validate(
    registry: SchemaRegistry,
    settings: ContentSettings,
    args: argparse.Namespace,
    stream: TextIO,
) -> int:
    registry.require(args.schema_type)
    try:
        payload = json.loads(args.path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Could not read payload from %s: %s", args.path, exc)
        return EXIT_USAGE

    result = validate_document(
        registry,
        args.schema_type,
        payload,
        is_update=args.update,
        legacy_version=settings.legacy_version,
    )

    if args.json:
        body = result.to_payload()
        if isinstance(payload, dict):
            body["sanitized"] = sanitize_payload(registry, args.schema_type, payload)
        _emit_json(body, stream)
    else:
        stream.write("Valid\n" if result.valid else "Invalid\n")
        _write_lines([f"  Error: {error}" for error in result.errors], stream)
        _write_lines([f"  Warning: {warning}" for warning in result.warnings], stream)

    return EXIT_OK if result.valid else EXIT_FAILURES


def main(argv: Sequence[str] | None = None, *, stream: TextIO | None = None) -> int:
    args = _parse_args(argv)
    output = stream if stream is not None else sys.stdout

    try:
        settings = _resolve_settings(args)
    except ValueError as exc:
        sys.stderr.write(f"Invalid configuration: {exc}\n")
        return EXIT_USAGE

    # JSON output owns stdout, so every log record goes to stderr.
    stderr_level = logging.DEBUG if args.json else logging.WARNING
    configure_logging(level=settings.log_level, stderr_level=stderr_level)

    try:
        registry = create_registry(settings)
    except SchemaDefinitionError as exc:
        logger.error("%s", exc)
        return EXIT_USAGE

    if args.command == "types":
        if args.json:
            _emit_json(registry.list_types(), output)
        else:
            _write_lines(registry.list_types(), output)
        return EXIT_OK

    try:
        if args.command == "validate":
            return _run_validate(registry, settings, args, output)

        engine = create_migration_engine(settings, registry, create_store(settings))
        if args.command == "status":
            return _run_status(engine, args, output)
        return _run_migrations(engine, args, output)
    except UnknownSchemaTypeError as exc:
        logger.error("%s", exc)
        logger.error("Available types: %s", ", ".join(registry.list_types()))
        return EXIT_USAGE
    except (DocumentStoreError, MigrationError) as exc:
        logger.error("%s", exc)
        return EXIT_FAILURES


if __name__ == "__main__":
    sys.exit(main())
