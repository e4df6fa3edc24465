"""Exception hierarchy shared by the schema, validation and migration layers."""

from __future__ import annotations

from typing import Sequence


class SimContentError(Exception):
    """Base exception for every failure raised by :mod:`simcontent`."""


class SchemaDefinitionError(SimContentError, ValueError):
    """Raised when a schema definition cannot be parsed or registered."""


class UnknownSchemaTypeError(SimContentError, LookupError):
    """Raised when no schema is registered for the requested entity type."""

    def __init__(self, schema_type: str) -> None:
        super().__init__(f"Unknown schema type: {schema_type}")
        self.schema_type = schema_type


class SchemaNotFoundError(UnknownSchemaTypeError):
    """Raised by the migration engine when a document's schema is missing."""


class DocumentNotFoundError(SimContentError, LookupError):
    """Raised when a document does not exist in its collection."""

    def __init__(self, collection: str, document_id: str) -> None:
        super().__init__(f"Document '{document_id}' not found in '{collection}'")
        self.collection = collection
        self.document_id = document_id


class TenantAccessError(SimContentError, PermissionError):
    """Raised when a document belongs to a different tenant than the caller."""

    def __init__(self, document_id: str, tenant_id: str) -> None:
        super().__init__(
            f"Document '{document_id}' belongs to another company than '{tenant_id}'"
        )
        self.document_id = document_id
        self.tenant_id = tenant_id


class ValidationFailedError(SimContentError, ValueError):
    """Raised when a payload does not satisfy its schema.

    ``errors`` keeps the field-path-qualified messages in the order the
    validator produced them.
    """

    def __init__(self, schema_type: str, errors: Sequence[str]) -> None:
        self.schema_type = schema_type
        self.errors: tuple[str, ...] = tuple(errors)
        summary = "; ".join(self.errors) if self.errors else "no details"
        super().__init__(f"Validation failed for '{schema_type}': {summary}")


class MigrationError(SimContentError):
    """Raised when a document cannot be brought up to the current schema."""


class UnresolvedRequiredFieldsError(MigrationError):
    """Raised when required fields remain missing and the policy forbids it."""

    def __init__(self, document_id: str, fields: Sequence[str]) -> None:
        self.document_id = document_id
        self.fields: tuple[str, ...] = tuple(fields)
        super().__init__(
            f"Document '{document_id}' is missing required fields without defaults: "
            + ", ".join(self.fields)
        )


class DocumentStoreError(SimContentError):
    """Raised when the document store cannot read or write a document."""


__all__ = [
    "DocumentNotFoundError",
    "DocumentStoreError",
    "MigrationError",
    "SchemaDefinitionError",
    "SchemaNotFoundError",
    "SimContentError",
    "TenantAccessError",
    "UnknownSchemaTypeError",
    "UnresolvedRequiredFieldsError",
    "ValidationFailedError",
]
