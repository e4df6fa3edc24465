"""Schema-driven document validation.

Two regimes share one walk over the compiled field map:

* creation (``is_update=False``) requires every required field to be present
  and non-empty;
* update (``is_update=True``) only rejects a required field when the payload
  explicitly carries it with an empty value. Omitting a field from an update
  means "leave it unchanged".

Fields that are ``generated`` and not ``editable`` are never caller-controlled
and are skipped entirely.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from .errors import ValidationFailedError
from .schemas import FieldDefinition, FieldKind, SchemaRegistry

LEGACY_SCHEMA_VERSION = "1.0"

_ErrorSink = list[str]


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one payload against its schema."""

    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    schema_type: str = ""

    def raise_for_errors(self) -> None:
        """Raise :class:`ValidationFailedError` when the result is invalid."""

        if not self.valid:
            raise ValidationFailedError(self.schema_type, self.errors)

    def to_payload(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


def is_empty(value: Any) -> bool:
    """Return ``True`` for values treated as "not provided"."""

    return value is None or (isinstance(value, str) and value == "")


def stored_version(document: Mapping[str, Any], *, legacy_version: str) -> str:
    """Return the schema version stamped on ``document``."""

    version = document.get("schemaVersion")
    if isinstance(version, str) and version:
        return version
    return legacy_version


def _format_bound(bound: float) -> str:
    if float(bound).is_integer():
        return str(int(bound))
    return str(bound)


def _check_text(
    field: FieldDefinition, value: Any, path: str, errors: _ErrorSink
) -> None:
    if not isinstance(value, str):
        errors.append(f"Field '{path}' must be a string")
        return

    rules = field.validation
    if rules is None:
        return
    if rules.min_length is not None and len(value) < rules.min_length:
        errors.append(f"Field '{path}' must be at least {rules.min_length} characters")
    if rules.max_length is not None and len(value) > rules.max_length:
        errors.append(f"Field '{path}' must be at most {rules.max_length} characters")
    if rules.pattern is not None and re.search(rules.pattern, value) is None:
        errors.append(f"Field '{path}' does not match required pattern")


def _check_number(
    field: FieldDefinition, value: Any, path: str, errors: _ErrorSink
) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        errors.append(f"Field '{path}' must be a number")
        return

    rules = field.validation
    if rules is None:
        return
    if rules.min is not None and value < rules.min:
        errors.append(f"Field '{path}' must be at least {_format_bound(rules.min)}")
    if rules.max is not None and value > rules.max:
        errors.append(f"Field '{path}' must be at most {_format_bound(rules.max)}")


def _check_boolean(
    field: FieldDefinition, value: Any, path: str, errors: _ErrorSink
) -> None:
    if not isinstance(value, bool):
        errors.append(f"Field '{path}' must be a boolean")


def _check_array(
    field: FieldDefinition, value: Any, path: str, errors: _ErrorSink
) -> None:
    if not isinstance(value, (list, tuple)):
        errors.append(f"Field '{path}' must be an array")
        return

    rules = field.validation
    if rules is not None:
        if rules.min_items is not None and len(value) < rules.min_items:
            errors.append(f"Field '{path}' must have at least {rules.min_items} items")
        if rules.max_items is not None and len(value) > rules.max_items:
            errors.append(f"Field '{path}' must have at most {rules.max_items} items")

    item_kind = field.item_type
    if field.nested is not None and item_kind in (None, FieldKind.OBJECT):
        for index, item in enumerate(value):
            item_path = f"{path}[{index}]"
            if not isinstance(item, Mapping):
                errors.append(f"Field '{item_path}' must be an object")
                continue
            _validate_nested(item, field.nested, item_path, errors)
        return

    if item_kind is None or item_kind is FieldKind.OBJECT:
        return

    item_field = _item_field(item_kind)
    for index, item in enumerate(value):
        check_value(item_field, item, f"{path}[{index}]", errors)


def _check_object(
    field: FieldDefinition, value: Any, path: str, errors: _ErrorSink
) -> None:
    if not isinstance(value, Mapping):
        errors.append(f"Field '{path}' must be an object")
        return
    if field.nested is not None:
        _validate_nested(value, field.nested, path, errors)


def _check_select(
    field: FieldDefinition, value: Any, path: str, errors: _ErrorSink
) -> None:
    allowed = field.allowed_values
    if allowed and value not in allowed:
        listing = ", ".join(str(option) for option in allowed)
        errors.append(f"Field '{path}' must be one of: {listing}")


def _check_reference(
    field: FieldDefinition, value: Any, path: str, errors: _ErrorSink
) -> None:
    if not isinstance(value, str):
        errors.append(f"Field '{path}' must be a string (reference ID)")


def _skip(field: FieldDefinition, value: Any, path: str, errors: _ErrorSink) -> None:
    # Files are checked by the upload collaborator; timestamps are server-set.
    return None


_ValueCheck = Callable[[FieldDefinition, Any, str, _ErrorSink], None]

VALUE_CHECKS: Mapping[FieldKind, _ValueCheck] = {
    FieldKind.STRING: _check_text,
    FieldKind.TEXT: _check_text,
    FieldKind.NUMBER: _check_number,
    FieldKind.BOOLEAN: _check_boolean,
    FieldKind.ARRAY: _check_array,
    FieldKind.OBJECT: _check_object,
    FieldKind.SELECT: _check_select,
    FieldKind.REFERENCE: _check_reference,
    FieldKind.FILE: _skip,
    FieldKind.TIMESTAMP: _skip,
}

_unchecked = set(FieldKind) - set(VALUE_CHECKS)
if _unchecked:
    raise RuntimeError(
        "Missing value checks for field kinds: "
        + ", ".join(sorted(kind.value for kind in _unchecked))
    )

# Synthetic descriptors used to type-check scalar array items.
_ITEM_FIELDS: Mapping[FieldKind, FieldDefinition] = {
    kind: FieldDefinition.model_validate({"name": "item", "type": kind.value})
    for kind in FieldKind
}


def _item_field(kind: FieldKind) -> FieldDefinition:
    return _ITEM_FIELDS[kind]


def check_value(
    field: FieldDefinition, value: Any, path: str, errors: _ErrorSink
) -> None:
    """Append to ``errors`` every problem with a present ``value``."""

    VALUE_CHECKS[field.kind](field, value, path, errors)


def _validate_nested(
    obj: Mapping[str, Any],
    nested: Mapping[str, FieldDefinition],
    prefix: str,
    errors: _ErrorSink,
) -> None:
    # Nested maps are always validated with creation strictness.
    for name, field in nested.items():
        if field.server_owned:
            continue
        path = f"{prefix}.{name}"
        value = obj.get(name)
        if field.required and is_empty(value):
            errors.append(f"Field '{path}' is required")
            continue
        if value is None:
            continue
        check_value(field, value, path, errors)


def validate_document(
    registry: SchemaRegistry,
    schema_type: str,
    payload: Mapping[str, Any],
    *,
    is_update: bool = False,
    existing: Mapping[str, Any] | None = None,
    legacy_version: str = LEGACY_SCHEMA_VERSION,
) -> ValidationResult:
    """Validate ``payload`` against the registered schema for ``schema_type``.

    Args:
        registry: Registry providing the compiled schema.
        schema_type: Entity type name, e.g. ``"character"``.
        payload: Caller-supplied document or partial update.
        is_update: Selects the flexible update regime instead of strict
            creation validation.
        existing: Stored document being updated. Only used to warn when it
            was stamped with an older schema version.
        legacy_version: Version assumed for stored documents that carry no
            ``schemaVersion``.

    Raises:
        UnknownSchemaTypeError: If ``schema_type`` is not registered.
    """

    schema = registry.require(schema_type)
    errors: list[str] = []
    warnings: list[str] = []

    if not isinstance(payload, Mapping):
        return ValidationResult(
            valid=False,
            errors=("Document must be an object",),
            schema_type=schema_type,
        )

    if is_update and existing is not None:
        document_version = stored_version(existing, legacy_version=legacy_version)
        if document_version != schema.version:
            warnings.append(
                f"Document uses schema version {document_version} but current "
                f"version is {schema.version}. Consider updating."
            )

    for name, field in schema.fields.items():
        if field.server_owned:
            continue

        value = payload.get(name)
        if field.required and is_empty(value):
            if not is_update:
                errors.append(f"Field '{name}' is required")
            elif name in payload:
                errors.append(f"Field '{name}' is required and cannot be set to empty")
            continue

        if value is None:
            continue

        check_value(field, value, name, errors)

    return ValidationResult(
        valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings),
        schema_type=schema_type,
    )


class DocumentValidator:
    """Validator bound to a registry, for callers that hold one long-lived."""

    def __init__(
        self,
        registry: SchemaRegistry,
        *,
        legacy_version: str = LEGACY_SCHEMA_VERSION,
    ) -> None:
        self._registry = registry
        self._legacy_version = legacy_version

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    def validate(
        self,
        schema_type: str,
        payload: Mapping[str, Any],
        *,
        is_update: bool = False,
        existing: Mapping[str, Any] | None = None,
    ) -> ValidationResult:
        return validate_document(
            self._registry,
            schema_type,
            payload,
            is_update=is_update,
            existing=existing,
            legacy_version=self._legacy_version,
        )


__all__ = [
    "DocumentValidator",
    "LEGACY_SCHEMA_VERSION",
    "VALUE_CHECKS",
    "ValidationResult",
    "check_value",
    "is_empty",
    "stored_version",
    "validate_document",
]
