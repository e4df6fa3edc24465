"""FastAPI application exposing schema lookup, validation and migration status."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from ..bootstrap import create_migration_engine, create_registry, create_store
from ..errors import UnknownSchemaTypeError
from ..migrations import MigrationEngine, MigrationStatus
from ..sanitizer import sanitize_payload
from ..schemas import CompiledSchema, SchemaRegistry
from ..settings import ContentSettings
from ..store import DocumentStore
from ..validation import validate_document


class SchemaTypesResource(BaseModel):
    """Registered entity types."""

    types: list[str]
    count: int


class SchemaTypesResponse(BaseModel):
    """Response envelope for the schema type listing."""

    success: bool = True
    data: SchemaTypesResource


class SchemaDefinitionResponse(BaseModel):
    """Response envelope carrying one schema definition in wire format."""

    success: bool = True
    data: dict[str, Any]


class ValidationRequest(BaseModel):
    """Payload submitted for a validation preview."""

    model_config = ConfigDict(populate_by_name=True)

    data: dict[str, Any]
    is_update: bool = Field(default=False, alias="isUpdate")
    existing: dict[str, Any] | None = None


class ValidationResource(BaseModel):
    """Validation outcome together with the payload as it would be persisted."""

    valid: bool
    errors: list[str]
    warnings: list[str]
    sanitized: dict[str, Any]


class ValidationResponse(BaseModel):
    """Response envelope for the validation preview endpoint."""

    success: bool = True
    data: ValidationResource


class MigrationStatusResource(BaseModel):
    """Schema version distribution of one collection."""

    model_config = ConfigDict(populate_by_name=True)

    collection: str
    current_schema_version: str = Field(..., alias="currentSchemaVersion")
    total_documents: int = Field(..., ge=0, alias="totalDocuments")
    version_breakdown: dict[str, int] = Field(..., alias="versionBreakdown")
    needs_migration: bool = Field(..., alias="needsMigration")
    outdated_count: int = Field(..., ge=0, alias="outdatedCount")

    @classmethod
    def from_status(cls, status: MigrationStatus) -> "MigrationStatusResource":
        return cls.model_validate(status.to_payload())


class MigrationStatusResponse(BaseModel):
    """Response envelope for the migration status endpoint."""

    success: bool = True
    data: MigrationStatusResource


def _require_schema(registry: SchemaRegistry, schema_type: str) -> CompiledSchema:
    try:
        return registry.require(schema_type)
    except UnknownSchemaTypeError as exc:
        raise HTTPException(
            status_code=404, detail=f"Schema type '{schema_type}' not found"
        ) from exc


def create_app(
    registry: SchemaRegistry | None = None,
    store: DocumentStore | None = None,
    *,
    migration_engine: MigrationEngine | None = None,
    settings: ContentSettings | None = None,
) -> FastAPI:
    """Create a FastAPI app exposing the schema and migration endpoints."""

    resolved_settings = settings or ContentSettings.from_env()
    resolved_registry = (
        registry if registry is not None else create_registry(resolved_settings)
    )
    resolved_store = store if store is not None else create_store(resolved_settings)
    engine = migration_engine or create_migration_engine(
        resolved_settings, resolved_registry, resolved_store
    )

    app = FastAPI(title="Simulation Content Schema API")

    @app.get("/api/schema", response_model=SchemaTypesResponse)
    def list_schema_types() -> SchemaTypesResponse:
        types = resolved_registry.list_types()
        return SchemaTypesResponse(
            data=SchemaTypesResource(types=types, count=len(types))
        )

    @app.get("/api/schema/{schema_type}", response_model=SchemaDefinitionResponse)
    def get_schema(schema_type: str) -> SchemaDefinitionResponse:
        schema = _require_schema(resolved_registry, schema_type)
        return SchemaDefinitionResponse(data=schema.definition.to_wire())

    @app.post(
        "/api/schema/{schema_type}/validate", response_model=ValidationResponse
    )
    def validate_payload(
        schema_type: str, request: ValidationRequest
    ) -> ValidationResponse:
        _require_schema(resolved_registry, schema_type)
        result = validate_document(
            resolved_registry,
            schema_type,
            request.data,
            is_update=request.is_update,
            existing=request.existing,
            legacy_version=resolved_settings.legacy_version,
        )
        sanitized = sanitize_payload(resolved_registry, schema_type, request.data)
        return ValidationResponse(
            data=ValidationResource(
                valid=result.valid,
                errors=list(result.errors),
                warnings=list(result.warnings),
                sanitized=sanitized,
            )
        )

    @app.get(
        "/api/migrations/{schema_type}/status",
        response_model=MigrationStatusResponse,
    )
    def migration_status(
        schema_type: str,
        company_id: str | None = Query(default=None, alias="companyId"),
    ) -> MigrationStatusResponse:
        _require_schema(resolved_registry, schema_type)
        status = engine.get_migration_status(schema_type, company_id)
        return MigrationStatusResponse(data=MigrationStatusResource.from_status(status))

    return app


__all__ = ["create_app"]
