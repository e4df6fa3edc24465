"""Bring persisted documents up to the registry's current schema version.

Documents keep working after a schema changes: nothing rewrites them until an
operator runs a migration. A migration fills missing fields from declared
defaults (and, depending on :class:`MissingRequiredPolicy`, zero-value
placeholders for required fields), then stamps the new ``schemaVersion``.

Collection sweeps are sequential, page by page, and not atomic. A document
that fails is recorded in the report and the sweep moves on. ``dry_run``
computes the same reports without a single write.
"""

from __future__ import annotations

import copy
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping

from .backup import BackupUploader, build_collection_backup
from .errors import (
    DocumentNotFoundError,
    DocumentStoreError,
    MigrationError,
    SchemaNotFoundError,
    UnresolvedRequiredFieldsError,
)
from .schemas import CompiledSchema, FieldKind, SchemaRegistry
from .store import DEFAULT_PAGE_SIZE, Document, DocumentStore, iter_documents, iter_pages
from .validation import LEGACY_SCHEMA_VERSION, stored_version

logger = logging.getLogger(__name__)


class MissingRequiredPolicy(str, Enum):
    """What a migration does with required fields that have no default."""

    PLACEHOLDER = "placeholder"
    LEAVE = "leave"
    FAIL = "fail"


# Zero values for kinds that have one; other kinds are never fabricated.
_PLACEHOLDERS: Mapping[FieldKind, Callable[[], Any]] = {
    FieldKind.STRING: str,
    FieldKind.TEXT: str,
    FieldKind.REFERENCE: str,
    FieldKind.NUMBER: int,
    FieldKind.BOOLEAN: bool,
    FieldKind.ARRAY: list,
    FieldKind.OBJECT: dict,
}


@dataclass(frozen=True)
class DefaultsOutcome:
    """Result of :func:`apply_defaults` for one document."""

    updated: dict[str, Any]
    changed: tuple[str, ...] = ()
    unresolved: tuple[str, ...] = ()

    @property
    def modified(self) -> bool:
        return bool(self.changed)

    def changes(self) -> dict[str, Any]:
        return {name: self.updated[name] for name in self.changed}


def apply_defaults(
    schema: CompiledSchema,
    document: Mapping[str, Any],
    *,
    policy: MissingRequiredPolicy = MissingRequiredPolicy.PLACEHOLDER,
) -> DefaultsOutcome:
    """Fill missing fields of ``document`` according to ``schema``.

    A field is missing when it is absent or ``None``. Declared defaults are
    applied first; required fields still missing afterwards get a zero-value
    placeholder under :attr:`MissingRequiredPolicy.PLACEHOLDER` and are
    otherwise reported as unresolved. Server-owned bookkeeping fields are only
    ever filled from declared defaults. The input is never mutated and applying
    the function to its own output changes nothing.
    """

    updated = copy.deepcopy(dict(document))
    changed: list[str] = []
    unresolved: list[str] = []

    for name, field_definition in schema.fields.items():
        if updated.get(name) is not None:
            continue

        if field_definition.has_default:
            updated[name] = copy.deepcopy(field_definition.default)
            changed.append(name)
            continue

        if not field_definition.required or field_definition.server_owned:
            continue

        factory = _PLACEHOLDERS.get(field_definition.kind)
        if factory is None or policy is not MissingRequiredPolicy.PLACEHOLDER:
            unresolved.append(name)
            continue

        updated[name] = factory()
        changed.append(name)

    return DefaultsOutcome(
        updated=updated, changed=tuple(changed), unresolved=tuple(unresolved)
    )


@dataclass(frozen=True)
class MigrationReport:
    """Outcome of migrating a single document."""

    schema_type: str
    document_id: str
    success: bool
    message: str
    from_version: str | None = None
    to_version: str | None = None
    changed: tuple[str, ...] = ()
    unresolved: tuple[str, ...] = ()
    dry_run: bool = False
    name: str | None = None
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.document_id,
            "success": self.success,
            "message": self.message,
            "dryRun": self.dry_run,
        }
        if self.name is not None:
            payload["name"] = self.name
        if self.from_version is not None:
            payload["from"] = self.from_version
        if self.to_version is not None:
            payload["to"] = self.to_version
        if self.changed:
            payload["changes"] = list(self.changed)
        if self.unresolved:
            payload["unresolved"] = list(self.unresolved)
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class CollectionMigrationReport:
    """Outcome of sweeping every document of one entity type."""

    schema_type: str
    collection: str
    dry_run: bool
    results: tuple[MigrationReport, ...] = ()
    backups: tuple[str, ...] = ()

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful

    @property
    def success(self) -> bool:
        return self.failed == 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "success": self.success,
            "dryRun": self.dry_run,
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "backups": list(self.backups),
            "results": [result.to_payload() for result in self.results],
        }


@dataclass(frozen=True)
class MigrationStatus:
    """Version distribution of one collection relative to the registry."""

    schema_type: str
    collection: str
    current_version: str
    total_documents: int
    version_breakdown: Mapping[str, int]
    needs_migration: bool
    outdated_count: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "currentSchemaVersion": self.current_version,
            "totalDocuments": self.total_documents,
            "versionBreakdown": dict(self.version_breakdown),
            "needsMigration": self.needs_migration,
            "outdatedCount": self.outdated_count,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MigrationEngine:
    """Compute and apply schema migrations against a :class:`DocumentStore`."""

    def __init__(
        self,
        registry: SchemaRegistry,
        store: DocumentStore,
        *,
        missing_required_policy: MissingRequiredPolicy = MissingRequiredPolicy.PLACEHOLDER,
        legacy_version: str = LEGACY_SCHEMA_VERSION,
        page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], datetime] | None = None,
        backup_uploader: BackupUploader | None = None,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be a positive integer")
        self._registry = registry
        self._store = store
        self._policy = missing_required_policy
        self._legacy_version = legacy_version
        self._page_size = page_size
        self._clock = clock or _utcnow
        self._backup_uploader = backup_uploader

    @property
    def policy(self) -> MissingRequiredPolicy:
        return self._policy

    def migrate_document(
        self, schema_type: str, doc_id: str, dry_run: bool = False
    ) -> MigrationReport:
        """Migrate one document to the current schema version.

        Raises:
            SchemaNotFoundError: If ``schema_type`` is not registered.
            DocumentNotFoundError: If the document does not exist.
            UnresolvedRequiredFieldsError: If required fields stay missing
                under :attr:`MissingRequiredPolicy.FAIL`.
        """

        schema = self._registry.get(schema_type)
        if schema is None:
            raise SchemaNotFoundError(schema_type)

        try:
            document = self._store.get(schema.collection, doc_id)
        except KeyError as exc:
            raise DocumentNotFoundError(schema.collection, doc_id) from exc

        return self._migrate_loaded(schema, doc_id, document, dry_run)

    def migrate_collection(
        self,
        schema_type: str,
        tenant_id: str | None = None,
        dry_run: bool = False,
    ) -> CollectionMigrationReport:
        """Migrate every document of ``schema_type``, optionally for one tenant.

        Raises:
            UnknownSchemaTypeError: If ``schema_type`` is not registered.
            MigrationError: If the pre-write backup cannot be uploaded.
        """

        schema = self._registry.require(schema_type)
        prefix = "[DRY RUN] " if dry_run else ""
        logger.info("%sMigrating %s to schema %s", prefix, schema.collection, schema.version)

        results: list[MigrationReport] = []
        backups: list[str] = []
        for page in iter_pages(
            self._store,
            schema.collection,
            filters=_tenant_filter(tenant_id),
            page_size=self._page_size,
        ):
            if not dry_run and self._backup_uploader is not None:
                backup_name = self._backup_outdated(self._backup_uploader, schema, page)
                if backup_name is not None:
                    backups.append(backup_name)

            for document in page:
                doc_id = str(document["id"])
                results.append(self._migrate_for_sweep(schema, doc_id, document, dry_run))

        report = CollectionMigrationReport(
            schema_type=schema.schema_type,
            collection=schema.collection,
            dry_run=dry_run,
            results=tuple(results),
            backups=tuple(backups),
        )
        logger.info(
            "%sMigration of %s complete: %d successful, %d failed",
            prefix,
            schema.collection,
            report.successful,
            report.failed,
        )
        return report

    def migrate_all(
        self, tenant_id: str | None = None, dry_run: bool = False
    ) -> list[CollectionMigrationReport]:
        return [
            self.migrate_collection(schema_type, tenant_id, dry_run)
            for schema_type in self._registry.list_types()
        ]

    def get_migration_status(
        self, schema_type: str, tenant_id: str | None = None
    ) -> MigrationStatus:
        """Summarise how many documents sit on each schema version.

        Raises:
            UnknownSchemaTypeError: If ``schema_type`` is not registered.
        """

        schema = self._registry.require(schema_type)
        versions: Counter[str] = Counter()
        for document in iter_documents(
            self._store,
            schema.collection,
            filters=_tenant_filter(tenant_id),
            page_size=self._page_size,
        ):
            versions[stored_version(document, legacy_version=self._legacy_version)] += 1

        breakdown = {version: versions[version] for version in sorted(versions)}
        outdated = sum(
            count for version, count in breakdown.items() if version != schema.version
        )
        return MigrationStatus(
            schema_type=schema.schema_type,
            collection=schema.collection,
            current_version=schema.version,
            total_documents=sum(breakdown.values()),
            version_breakdown=breakdown,
            needs_migration=outdated > 0,
            outdated_count=outdated,
        )

    def status_for_all(self, tenant_id: str | None = None) -> list[MigrationStatus]:
        return [
            self.get_migration_status(schema_type, tenant_id)
            for schema_type in self._registry.list_types()
        ]

    def _migrate_for_sweep(
        self,
        schema: CompiledSchema,
        doc_id: str,
        listed: Document,
        dry_run: bool,
    ) -> MigrationReport:
        try:
            report = self.migrate_document(schema.schema_type, doc_id, dry_run)
        except (
            DocumentNotFoundError,
            SchemaNotFoundError,
            MigrationError,
            DocumentStoreError,
        ) as exc:
            logger.warning("Failed to migrate %s/%s: %s", schema.collection, doc_id, exc)
            name = listed.get("name")
            return MigrationReport(
                schema_type=schema.schema_type,
                document_id=doc_id,
                success=False,
                message="Migration failed",
                dry_run=dry_run,
                name=name if isinstance(name, str) else None,
                error=str(exc),
            )

        logger.info("%s/%s: %s", schema.collection, doc_id, report.message)
        if report.changed:
            logger.info("  Changed fields: %s", ", ".join(report.changed))
        return report

    def _migrate_loaded(
        self,
        schema: CompiledSchema,
        doc_id: str,
        document: Document,
        dry_run: bool,
    ) -> MigrationReport:
        current = stored_version(document, legacy_version=self._legacy_version)
        target = schema.version
        raw_name = document.get("name")
        name = raw_name if isinstance(raw_name, str) else None

        if current == target:
            return MigrationReport(
                schema_type=schema.schema_type,
                document_id=doc_id,
                success=True,
                message="Already at latest version",
                from_version=current,
                to_version=target,
                dry_run=dry_run,
                name=name,
            )

        outcome = apply_defaults(schema, document, policy=self._policy)
        if outcome.unresolved and self._policy is MissingRequiredPolicy.FAIL:
            raise UnresolvedRequiredFieldsError(doc_id, outcome.unresolved)

        write: dict[str, Any] = outcome.changes()
        write["schemaVersion"] = target
        write["updatedAt"] = self._clock().isoformat()

        if outcome.modified:
            message = "Document migrated successfully"
        else:
            message = "Version updated (no data changes needed)"

        if not dry_run:
            try:
                self._store.update(schema.collection, doc_id, write)
            except KeyError as exc:
                raise DocumentNotFoundError(schema.collection, doc_id) from exc

        return MigrationReport(
            schema_type=schema.schema_type,
            document_id=doc_id,
            success=True,
            message=message,
            from_version=current,
            to_version=target,
            changed=outcome.changed,
            unresolved=outcome.unresolved,
            dry_run=dry_run,
            name=name,
        )

    def _backup_outdated(
        self,
        uploader: BackupUploader,
        schema: CompiledSchema,
        page: list[Document],
    ) -> str | None:
        outdated = [
            document
            for document in page
            if stored_version(document, legacy_version=self._legacy_version)
            != schema.version
        ]
        if not outdated:
            return None

        backup = build_collection_backup(
            schema.collection,
            outdated,
            schema_version=schema.version,
            generated_at=self._clock(),
        )
        try:
            uploader.upload(backup)
        except Exception as exc:
            raise MigrationError(
                f"Backup of {schema.collection} failed before migrating: {exc}"
            ) from exc
        logger.info(
            "Backed up %d %s documents to %s",
            backup.document_count,
            schema.collection,
            backup.filename,
        )
        return backup.filename


def _tenant_filter(tenant_id: str | None) -> dict[str, Any] | None:
    if tenant_id is None:
        return None
    return {"companyId": tenant_id}


__all__ = [
    "CollectionMigrationReport",
    "DefaultsOutcome",
    "MigrationEngine",
    "MigrationReport",
    "MigrationStatus",
    "MissingRequiredPolicy",
    "apply_defaults",
]
