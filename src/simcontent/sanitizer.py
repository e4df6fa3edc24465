"""Strip server-owned fields from caller payloads before they are persisted."""

from __future__ import annotations

from typing import Any, Mapping

from .schemas import CompiledSchema, SchemaRegistry

# Bookkeeping keys the server stamps on every document.
BOOKKEEPING_FIELDS = frozenset(
    {
        "id",
        "companyId",
        "createdBy",
        "createdAt",
        "updatedBy",
        "updatedAt",
        "schemaVersion",
    }
)


def protected_fields(schema: CompiledSchema) -> frozenset[str]:
    """Return every key a caller may never write for ``schema``."""

    declared = {
        name
        for name, field in schema.fields.items()
        if not field.editable or field.generated
    }
    return frozenset(declared | BOOKKEEPING_FIELDS)


def sanitize_payload(
    registry: SchemaRegistry,
    schema_type: str,
    payload: Mapping[str, Any],
) -> dict[str, Any]:
    """Return a copy of ``payload`` without server-owned keys.

    Raises:
        UnknownSchemaTypeError: If ``schema_type`` is not registered.
    """

    blocked = protected_fields(registry.require(schema_type))
    return {key: value for key, value in payload.items() if key not in blocked}


__all__ = ["BOOKKEEPING_FIELDS", "protected_fields", "sanitize_payload"]
