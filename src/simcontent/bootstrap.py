"""Build the core components from :class:`ContentSettings`."""

from __future__ import annotations

from .backup import BackupUploader, DirectoryBackupUploader, S3BackupUploader
from .documents import DocumentService
from .migrations import MigrationEngine
from .schemas import SchemaRegistry, build_registry
from .settings import ContentSettings
from .store import DocumentStore, FileDocumentStore, InMemoryDocumentStore


def create_store(settings: ContentSettings) -> DocumentStore:
    if settings.store_root is None:
        return InMemoryDocumentStore()
    return FileDocumentStore(settings.store_root)


def create_backup_uploader(settings: ContentSettings) -> BackupUploader | None:
    if settings.backup_s3_bucket:
        return S3BackupUploader(
            bucket=settings.backup_s3_bucket, prefix=settings.backup_s3_prefix
        )
    if settings.backup_dir is not None:
        return DirectoryBackupUploader(settings.backup_dir)
    return None


def create_registry(settings: ContentSettings) -> SchemaRegistry:
    return build_registry(settings.schema_dir)


def create_migration_engine(
    settings: ContentSettings,
    registry: SchemaRegistry,
    store: DocumentStore,
) -> MigrationEngine:
    return MigrationEngine(
        registry,
        store,
        missing_required_policy=settings.missing_required_policy,
        legacy_version=settings.legacy_version,
        page_size=settings.page_size,
        backup_uploader=create_backup_uploader(settings),
    )


def create_document_service(
    settings: ContentSettings,
    registry: SchemaRegistry,
    store: DocumentStore,
) -> DocumentService:
    return DocumentService(
        registry,
        store,
        version_policy=settings.version_policy,
        legacy_version=settings.legacy_version,
        page_size=settings.page_size,
    )


__all__ = [
    "create_backup_uploader",
    "create_document_service",
    "create_migration_engine",
    "create_registry",
    "create_store",
]
