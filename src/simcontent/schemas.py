"""Schema definitions and the process-wide schema registry.

A schema definition describes one entity type (``scenario``, ``character``,
...) as a tree of field descriptors grouped into presentation sections. The
registry compiles every definition once: sections, ``fields`` and
``listFields`` are flattened into a single read-only mapping keyed by field
name (first occurrence wins) so the validator, sanitizer and migration engine
never need to walk the presentation grouping again.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import SchemaDefinitionError, UnknownSchemaTypeError

DEFAULT_SCHEMA_PACKAGE = "simcontent.data.schemas"

_VERSION_PATTERN = re.compile(r"\d+\.\d+")

# Constraint keys that nested field maps may declare next to ``type``.
_INLINE_CONSTRAINT_KEYS = (
    "minLength",
    "maxLength",
    "pattern",
    "min",
    "max",
    "minItems",
    "maxItems",
)


class FieldKind(str, Enum):
    """Closed set of field kinds understood by the validator."""

    STRING = "string"
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    SELECT = "select"
    REFERENCE = "reference"
    FILE = "file"
    TIMESTAMP = "timestamp"


class FieldValidation(BaseModel):
    """Constraint set attached to a field; only the relevant keys are used."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    min_length: int | None = Field(default=None, alias="minLength", ge=0)
    max_length: int | None = Field(default=None, alias="maxLength", ge=0)
    pattern: str | None = None
    min: float | None = None
    max: float | None = None
    min_items: int | None = Field(default=None, alias="minItems", ge=0)
    max_items: int | None = Field(default=None, alias="maxItems", ge=0)

    @field_validator("pattern")
    @classmethod
    def _check_pattern(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid pattern {value!r}: {exc}") from exc
        return value


class FieldOption(BaseModel):
    """One allowed value of a ``select`` field."""

    model_config = ConfigDict(frozen=True, extra="allow")

    value: Any
    label: str | None = None


class FieldDefinition(BaseModel):
    """Descriptor for a single document field."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    name: str = Field(..., min_length=1)
    kind: FieldKind = Field(..., alias="type")
    required: bool = False
    generated: bool = False
    editable: bool = True
    validation: FieldValidation | None = None
    default: Any = None
    options: tuple[FieldOption, ...] = ()
    item_type: FieldKind | None = Field(default=None, alias="itemType")
    nested: dict[str, "FieldDefinition"] | None = Field(default=None, alias="schema")
    label: str | None = None
    description: str | None = None
    file_types: tuple[str, ...] = Field(default=(), alias="fileTypes")
    max_size: int | None = Field(default=None, alias="maxSize")
    suggestions: tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _normalise_wire_shape(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data

        normalised = dict(data)

        inline = {
            key: normalised.pop(key)
            for key in _INLINE_CONSTRAINT_KEYS
            if key in normalised
        }
        if inline:
            existing = normalised.get("validation")
            merged = dict(existing) if isinstance(existing, Mapping) else {}
            for key, value in inline.items():
                merged.setdefault(key, value)
            normalised["validation"] = merged

        nested = normalised.get("schema")
        if isinstance(nested, Mapping):
            children: dict[str, Any] = {}
            for child_name, child in nested.items():
                if isinstance(child, Mapping):
                    children[child_name] = {"name": child_name, **child}
                else:
                    children[child_name] = child
            normalised["schema"] = children

        return normalised

    @property
    def has_default(self) -> bool:
        return self.default is not None

    @property
    def server_owned(self) -> bool:
        """``True`` when callers may never supply this field."""

        return self.generated and not self.editable

    @property
    def allowed_values(self) -> tuple[Any, ...]:
        return tuple(option.value for option in self.options)


FieldDefinition.model_rebuild()


class SectionDefinition(BaseModel):
    """Presentation-only grouping of fields."""

    model_config = ConfigDict(frozen=True, extra="allow")

    name: str
    label: str | None = None
    fields: tuple[FieldDefinition, ...] = ()


class SchemaDefinition(BaseModel):
    """Versioned definition of one entity type."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    schema_type: str = Field(..., alias="type", min_length=1)
    version: str
    collection: str = Field(..., min_length=1)
    sections: tuple[SectionDefinition, ...] = ()
    fields: tuple[FieldDefinition, ...] = ()
    list_fields: tuple[FieldDefinition, ...] = Field(default=(), alias="listFields")

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        if not _VERSION_PATTERN.fullmatch(value):
            raise ValueError(f"version must look like 'major.minor', got {value!r}")
        return value

    def iter_fields(self) -> Iterator[FieldDefinition]:
        """Yield fields in flattening order: sections, ``fields``, ``listFields``."""

        for section in self.sections:
            yield from section.fields
        yield from self.fields
        yield from self.list_fields

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON representation other teams author against."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def flatten_fields(definition: SchemaDefinition) -> dict[str, FieldDefinition]:
    """Return ``definition``'s fields keyed by name, first occurrence winning."""

    flattened: dict[str, FieldDefinition] = {}
    for field_definition in definition.iter_fields():
        flattened.setdefault(field_definition.name, field_definition)
    return flattened


@dataclass(frozen=True)
class CompiledSchema:
    """A schema definition together with its pre-flattened field map."""

    definition: SchemaDefinition
    fields: Mapping[str, FieldDefinition]

    @classmethod
    def compile(cls, definition: SchemaDefinition) -> "CompiledSchema":
        return cls(
            definition=definition,
            fields=MappingProxyType(flatten_fields(definition)),
        )

    @property
    def schema_type(self) -> str:
        return self.definition.schema_type

    @property
    def version(self) -> str:
        return self.definition.version

    @property
    def collection(self) -> str:
        return self.definition.collection

    def field(self, name: str) -> FieldDefinition | None:
        return self.fields.get(name)


def parse_schema_definition(payload: Mapping[str, Any]) -> SchemaDefinition:
    """Parse a wire-format mapping into a :class:`SchemaDefinition`."""

    try:
        return SchemaDefinition.model_validate(payload)
    except ValidationError as exc:
        label = payload.get("type", "<unnamed>") if isinstance(payload, Mapping) else "<unnamed>"
        raise SchemaDefinitionError(
            f"Invalid schema definition '{label}': {exc}"
        ) from exc


class SchemaRegistry:
    """Read-only lookup of compiled schemas keyed by entity type.

    The registry is populated once in the constructor and never mutated
    afterwards, so concurrent readers need no locking.
    """

    def __init__(
        self, definitions: Iterable[SchemaDefinition | Mapping[str, Any]]
    ) -> None:
        by_type: dict[str, CompiledSchema] = {}
        by_collection: dict[str, CompiledSchema] = {}

        for raw in definitions:
            definition = (
                raw if isinstance(raw, SchemaDefinition) else parse_schema_definition(raw)
            )
            if definition.schema_type in by_type:
                raise SchemaDefinitionError(
                    f"Schema type '{definition.schema_type}' is defined more than once."
                )
            if definition.collection in by_collection:
                raise SchemaDefinitionError(
                    f"Collection '{definition.collection}' is claimed by more than one schema."
                )
            compiled = CompiledSchema.compile(definition)
            by_type[definition.schema_type] = compiled
            by_collection[definition.collection] = compiled

        self._schemas: Mapping[str, CompiledSchema] = MappingProxyType(by_type)
        self._collections: Mapping[str, CompiledSchema] = MappingProxyType(by_collection)

    def get(self, schema_type: str) -> CompiledSchema | None:
        return self._schemas.get(schema_type)

    def require(self, schema_type: str) -> CompiledSchema:
        """Return the schema for ``schema_type``.

        Raises:
            UnknownSchemaTypeError: If no schema is registered for the type.
        """

        schema = self._schemas.get(schema_type)
        if schema is None:
            raise UnknownSchemaTypeError(schema_type)
        return schema

    def for_collection(self, collection: str) -> CompiledSchema | None:
        return self._collections.get(collection)

    def list_types(self) -> list[str]:
        return list(self._schemas.keys())

    def exists(self, schema_type: str) -> bool:
        return schema_type in self._schemas

    def __contains__(self, schema_type: object) -> bool:
        return schema_type in self._schemas

    def __iter__(self) -> Iterator[CompiledSchema]:
        return iter(self._schemas.values())

    def __len__(self) -> int:
        return len(self._schemas)


def load_schema_definitions(
    package: str = DEFAULT_SCHEMA_PACKAGE,
) -> list[SchemaDefinition]:
    """Load every ``*.json`` schema resource bundled in ``package``."""

    root = resources.files(package)
    entries = sorted(
        (entry for entry in root.iterdir() if entry.name.endswith(".json")),
        key=lambda entry: entry.name,
    )
    definitions: list[SchemaDefinition] = []
    for entry in entries:
        payload = json.loads(entry.read_text(encoding="utf-8"))
        definitions.append(parse_schema_definition(payload))
    return definitions


def load_registry_from_directory(directory: Path) -> SchemaRegistry:
    """Build a registry from the ``*.json`` definitions stored in ``directory``."""

    if not directory.is_dir():
        raise SchemaDefinitionError(f"Schema directory '{directory}' does not exist.")

    definitions: list[SchemaDefinition] = []
    for path in sorted(directory.glob("*.json")):
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise SchemaDefinitionError(
                f"Schema file '{path.name}' is not valid JSON: {exc}"
            ) from exc
        definitions.append(parse_schema_definition(payload))
    return SchemaRegistry(definitions)


@lru_cache(maxsize=1)
def default_registry() -> SchemaRegistry:
    """Return the process-wide registry built from the bundled definitions."""

    return SchemaRegistry(load_schema_definitions())


def build_registry(schema_dir: Path | None = None) -> SchemaRegistry:
    """Return the registry for ``schema_dir`` or the bundled default one."""

    if schema_dir is None:
        return default_registry()
    return load_registry_from_directory(schema_dir)


__all__ = [
    "CompiledSchema",
    "DEFAULT_SCHEMA_PACKAGE",
    "FieldDefinition",
    "FieldKind",
    "FieldOption",
    "FieldValidation",
    "SchemaDefinition",
    "SchemaRegistry",
    "SectionDefinition",
    "build_registry",
    "default_registry",
    "flatten_fields",
    "load_registry_from_directory",
    "load_schema_definitions",
    "parse_schema_definition",
]
