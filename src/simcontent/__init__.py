"""Schema-driven validation and migration core for simulation content."""

from .backup import (
    BackupUploader,
    CollectionBackup,
    DirectoryBackupUploader,
    S3BackupUploader,
    build_collection_backup,
)
from .documents import DocumentService, VersionStampPolicy, WriteResult
from .errors import (
    DocumentNotFoundError,
    DocumentStoreError,
    MigrationError,
    SchemaDefinitionError,
    SchemaNotFoundError,
    SimContentError,
    TenantAccessError,
    UnknownSchemaTypeError,
    UnresolvedRequiredFieldsError,
    ValidationFailedError,
)
from .migrations import (
    CollectionMigrationReport,
    MigrationEngine,
    MigrationReport,
    MigrationStatus,
    MissingRequiredPolicy,
    apply_defaults,
)
from .sanitizer import BOOKKEEPING_FIELDS, sanitize_payload
from .schemas import (
    CompiledSchema,
    FieldDefinition,
    FieldKind,
    SchemaDefinition,
    SchemaRegistry,
    build_registry,
    default_registry,
)
from .settings import ContentSettings
from .store import (
    DocumentStore,
    FileDocumentStore,
    InMemoryDocumentStore,
    delete_where,
    iter_documents,
)
from .validation import DocumentValidator, ValidationResult, validate_document

__all__ = [
    "BOOKKEEPING_FIELDS",
    "BackupUploader",
    "CollectionBackup",
    "CollectionMigrationReport",
    "CompiledSchema",
    "ContentSettings",
    "DirectoryBackupUploader",
    "DocumentNotFoundError",
    "DocumentService",
    "DocumentStore",
    "DocumentStoreError",
    "DocumentValidator",
    "FieldDefinition",
    "FieldKind",
    "FileDocumentStore",
    "InMemoryDocumentStore",
    "MigrationEngine",
    "MigrationError",
    "MigrationReport",
    "MigrationStatus",
    "MissingRequiredPolicy",
    "S3BackupUploader",
    "SchemaDefinition",
    "SchemaDefinitionError",
    "SchemaNotFoundError",
    "SchemaRegistry",
    "SimContentError",
    "TenantAccessError",
    "UnknownSchemaTypeError",
    "UnresolvedRequiredFieldsError",
    "ValidationFailedError",
    "ValidationResult",
    "VersionStampPolicy",
    "WriteResult",
    "apply_defaults",
    "build_collection_backup",
    "build_registry",
    "default_registry",
    "delete_where",
    "iter_documents",
    "sanitize_payload",
    "validate_document",
]
