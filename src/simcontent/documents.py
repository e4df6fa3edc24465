"""Tenant-scoped create/update flow: validate, sanitize, stamp, persist."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping

from .errors import DocumentNotFoundError, TenantAccessError
from .sanitizer import sanitize_payload
from .schemas import CompiledSchema, SchemaRegistry
from .store import (
    DEFAULT_PAGE_SIZE,
    Document,
    DocumentStore,
    delete_where,
    iter_documents,
)
from .validation import LEGACY_SCHEMA_VERSION, validate_document

logger = logging.getLogger(__name__)


class VersionStampPolicy(str, Enum):
    """Whether ordinary updates may advance a document's ``schemaVersion``."""

    PRESERVE = "preserve"
    ADVANCE_WHEN_CONFORMANT = "advance-when-conformant"


@dataclass(frozen=True)
class WriteResult:
    """Document as persisted plus any non-fatal validation warnings."""

    document: Document
    warnings: tuple[str, ...] = ()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class DocumentService:
    """Entity CRUD used by route handlers, enforcing schema and tenancy."""

    def __init__(
        self,
        registry: SchemaRegistry,
        store: DocumentStore,
        *,
        version_policy: VersionStampPolicy = VersionStampPolicy.PRESERVE,
        legacy_version: str = LEGACY_SCHEMA_VERSION,
        page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._version_policy = version_policy
        self._legacy_version = legacy_version
        self._page_size = page_size
        self._clock = clock or _utcnow
        self._id_factory = id_factory or _new_id

    def create(
        self,
        schema_type: str,
        payload: Mapping[str, Any],
        *,
        user_id: str,
        tenant_id: str,
    ) -> WriteResult:
        """Validate strictly and persist a new document.

        Raises:
            UnknownSchemaTypeError: If ``schema_type`` is not registered.
            ValidationFailedError: If the payload violates the schema.
        """

        schema = self._registry.require(schema_type)
        result = validate_document(
            self._registry,
            schema_type,
            payload,
            legacy_version=self._legacy_version,
        )
        result.raise_for_errors()

        now = self._timestamp()
        doc_id = self._id_factory()
        document: Document = {
            **sanitize_payload(self._registry, schema_type, payload),
            "id": doc_id,
            "companyId": tenant_id,
            "createdBy": user_id,
            "createdAt": now,
            "updatedAt": now,
            "schemaVersion": schema.version,
        }
        self._store.create(schema.collection, doc_id, document)
        logger.debug("Created %s/%s for %s", schema.collection, doc_id, tenant_id)
        return WriteResult(document=document, warnings=result.warnings)

    def update(
        self,
        schema_type: str,
        doc_id: str,
        payload: Mapping[str, Any],
        *,
        user_id: str,
        tenant_id: str,
    ) -> WriteResult:
        """Validate flexibly against the stored document and merge the changes.

        Raises:
            UnknownSchemaTypeError: If ``schema_type`` is not registered.
            DocumentNotFoundError: If the document does not exist.
            TenantAccessError: If the document belongs to another tenant.
            ValidationFailedError: If the payload violates the schema.
        """

        schema = self._registry.require(schema_type)
        existing = self._load_owned(schema, doc_id, tenant_id)

        result = validate_document(
            self._registry,
            schema_type,
            payload,
            is_update=True,
            existing=existing,
            legacy_version=self._legacy_version,
        )
        result.raise_for_errors()

        changes: Document = {
            **sanitize_payload(self._registry, schema_type, payload),
            "updatedAt": self._timestamp(),
            "updatedBy": user_id,
        }
        if self._should_restamp(schema, existing, changes):
            changes["schemaVersion"] = schema.version

        try:
            document = self._store.update(schema.collection, doc_id, changes)
        except KeyError as exc:
            raise DocumentNotFoundError(schema.collection, doc_id) from exc
        logger.debug("Updated %s/%s for %s", schema.collection, doc_id, tenant_id)
        return WriteResult(document=document, warnings=result.warnings)

    def get(self, schema_type: str, doc_id: str, *, tenant_id: str) -> Document:
        schema = self._registry.require(schema_type)
        return self._load_owned(schema, doc_id, tenant_id)

    def list_documents(self, schema_type: str, *, tenant_id: str) -> list[Document]:
        schema = self._registry.require(schema_type)
        return list(
            iter_documents(
                self._store,
                schema.collection,
                filters={"companyId": tenant_id},
                page_size=self._page_size,
            )
        )

    def delete(self, schema_type: str, doc_id: str, *, tenant_id: str) -> None:
        schema = self._registry.require(schema_type)
        self._load_owned(schema, doc_id, tenant_id)
        self._store.delete(schema.collection, doc_id)
        logger.debug("Deleted %s/%s for %s", schema.collection, doc_id, tenant_id)

    def duplicate(
        self,
        schema_type: str,
        doc_id: str,
        *,
        user_id: str,
        tenant_id: str,
    ) -> Document:
        """Copy a document under a new id with fresh bookkeeping.

        The copy keeps the source's ``schemaVersion``: duplicating is not a
        migration.
        """

        schema = self._registry.require(schema_type)
        original = self._load_owned(schema, doc_id, tenant_id)

        copied = {
            key: value
            for key, value in original.items()
            if key not in {"id", "createdAt", "createdBy", "updatedAt", "updatedBy"}
        }
        now = self._timestamp()
        new_id = self._id_factory()
        copied.update(
            {
                "id": new_id,
                "name": f"{original.get('name', 'Unnamed')} (Copy)",
                "companyId": tenant_id,
                "createdBy": user_id,
                "createdAt": now,
                "updatedAt": now,
            }
        )
        if "playCount" in original:
            copied["playCount"] = 0
        copied.setdefault("schemaVersion", self._legacy_version)

        self._store.create(schema.collection, new_id, copied)
        return copied

    def purge_tenant(self, schema_type: str, tenant_id: str) -> int:
        """Delete every document of ``schema_type`` owned by ``tenant_id``."""

        schema = self._registry.require(schema_type)
        return delete_where(
            self._store,
            schema.collection,
            filters={"companyId": tenant_id},
            page_size=self._page_size,
        )

    def _load_owned(
        self, schema: CompiledSchema, doc_id: str, tenant_id: str
    ) -> Document:
        try:
            document = self._store.get(schema.collection, doc_id)
        except KeyError as exc:
            raise DocumentNotFoundError(schema.collection, doc_id) from exc
        if document.get("companyId") != tenant_id:
            raise TenantAccessError(doc_id, tenant_id)
        return document

    def _should_restamp(
        self,
        schema: CompiledSchema,
        existing: Mapping[str, Any],
        changes: Mapping[str, Any],
    ) -> bool:
        if self._version_policy is not VersionStampPolicy.ADVANCE_WHEN_CONFORMANT:
            return False
        if existing.get("schemaVersion") == schema.version:
            return False
        merged = {**existing, **changes}
        return validate_document(
            self._registry,
            schema.schema_type,
            merged,
            legacy_version=self._legacy_version,
        ).valid

    def _timestamp(self) -> str:
        return self._clock().isoformat()


__all__ = ["DocumentService", "VersionStampPolicy", "WriteResult"]
