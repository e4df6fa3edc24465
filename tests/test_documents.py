from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

import pytest

from simcontent.documents import DocumentService, VersionStampPolicy
from simcontent.errors import (
    DocumentNotFoundError,
    TenantAccessError,
    UnknownSchemaTypeError,
    ValidationFailedError,
)
from simcontent.schemas import SchemaRegistry
from simcontent.store import InMemoryDocumentStore


def _scenario(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"name": "Fire drill", "referenceId": "fire-drill"}
    payload.update(overrides)
    return payload


def test_create_stamps_bookkeeping_fields(
    service: DocumentService, store: InMemoryDocumentStore, now: datetime
) -> None:
    result = service.create(
        "scenario",
        _scenario(id="forged", companyId="other", playCount=99),
        user_id="user-1",
        tenant_id="company-a",
    )

    document = result.document
    assert document["id"] == "doc-1"
    assert document["companyId"] == "company-a"
    assert document["createdBy"] == "user-1"
    assert document["createdAt"] == now.isoformat()
    assert document["updatedAt"] == now.isoformat()
    assert document["schemaVersion"] == "1.0"
    assert "playCount" not in document
    assert store.get("scenarios", "doc-1") == document
    assert result.warnings == ()


def test_create_rejects_invalid_payload(
    service: DocumentService, store: InMemoryDocumentStore
) -> None:
    with pytest.raises(ValidationFailedError) as excinfo:
        service.create(
            "scenario", {"name": "No ref"}, user_id="user-1", tenant_id="company-a"
        )

    assert excinfo.value.errors == ("Field 'referenceId' is required",)
    assert store.query("scenarios") == []


def test_create_unknown_type_raises(service: DocumentService) -> None:
    with pytest.raises(UnknownSchemaTypeError):
        service.create("spaceship", {}, user_id="user-1", tenant_id="company-a")


def test_update_merges_and_records_editor(
    service: DocumentService, now: datetime
) -> None:
    service.create("scenario", _scenario(), user_id="user-1", tenant_id="company-a")

    result = service.update(
        "scenario",
        "doc-1",
        {"description": "Evacuate the building", "createdBy": "mallory"},
        user_id="user-2",
        tenant_id="company-a",
    )

    document = result.document
    assert document["name"] == "Fire drill"
    assert document["description"] == "Evacuate the building"
    assert document["createdBy"] == "user-1"
    assert document["updatedBy"] == "user-2"
    assert document["updatedAt"] == now.isoformat()


def test_update_rejects_blanking_required_field(service: DocumentService) -> None:
    service.create("scenario", _scenario(), user_id="user-1", tenant_id="company-a")

    with pytest.raises(ValidationFailedError) as excinfo:
        service.update(
            "scenario", "doc-1", {"name": ""}, user_id="user-1", tenant_id="company-a"
        )

    assert excinfo.value.errors == (
        "Field 'name' is required and cannot be set to empty",
    )
    assert service.get("scenario", "doc-1", tenant_id="company-a")["name"] == "Fire drill"


def test_update_of_missing_document_raises(service: DocumentService) -> None:
    with pytest.raises(DocumentNotFoundError):
        service.update(
            "scenario", "missing", {"name": "x"}, user_id="u", tenant_id="company-a"
        )


def test_other_tenants_cannot_touch_documents(service: DocumentService) -> None:
    service.create("scenario", _scenario(), user_id="user-1", tenant_id="company-a")

    with pytest.raises(TenantAccessError):
        service.get("scenario", "doc-1", tenant_id="company-b")
    with pytest.raises(TenantAccessError):
        service.update(
            "scenario", "doc-1", {"name": "Hijack"}, user_id="x", tenant_id="company-b"
        )
    with pytest.raises(TenantAccessError):
        service.delete("scenario", "doc-1", tenant_id="company-b")
    with pytest.raises(TenantAccessError):
        service.duplicate("scenario", "doc-1", user_id="x", tenant_id="company-b")

    assert service.get("scenario", "doc-1", tenant_id="company-a")["name"] == "Fire drill"


def test_list_documents_is_tenant_scoped(service: DocumentService) -> None:
    service.create("scenario", _scenario(), user_id="u", tenant_id="company-a")
    service.create("scenario", _scenario(name="Other"), user_id="u", tenant_id="company-b")

    listed = service.list_documents("scenario", tenant_id="company-a")

    assert [document["id"] for document in listed] == ["doc-1"]


def test_delete_removes_document(service: DocumentService) -> None:
    service.create("scenario", _scenario(), user_id="u", tenant_id="company-a")

    service.delete("scenario", "doc-1", tenant_id="company-a")

    with pytest.raises(DocumentNotFoundError):
        service.get("scenario", "doc-1", tenant_id="company-a")


def test_update_warns_about_stale_documents_and_preserves_version(
    service: DocumentService,
    store: InMemoryDocumentStore,
    make_legacy_character: Callable[..., dict[str, Any]],
) -> None:
    store.create("characters", "c1", make_legacy_character("c1"))

    result = service.update(
        "character", "c1", {"name": "Grace"}, user_id="u", tenant_id="company-a"
    )

    assert result.warnings == (
        "Document uses schema version 1.0 but current version is 1.1. "
        "Consider updating.",
    )
    assert result.document["schemaVersion"] == "1.0"


def test_advance_policy_restamps_conformant_documents(
    registry: SchemaRegistry,
    store: InMemoryDocumentStore,
    make_legacy_character: Callable[..., dict[str, Any]],
) -> None:
    service = DocumentService(
        registry, store, version_policy=VersionStampPolicy.ADVANCE_WHEN_CONFORMANT
    )
    store.create("characters", "c1", make_legacy_character("c1"))
    store.create("characters", "c2", make_legacy_character("c2"))

    # c1 still lacks status after the update, so it stays on 1.0.
    incomplete = service.update(
        "character", "c1", {"name": "Grace"}, user_id="u", tenant_id="company-a"
    )
    complete = service.update(
        "character", "c2", {"status": "active"}, user_id="u", tenant_id="company-a"
    )

    assert incomplete.document["schemaVersion"] == "1.0"
    assert complete.document["schemaVersion"] == "1.1"


def test_duplicate_copies_content_with_fresh_bookkeeping(
    service: DocumentService, store: InMemoryDocumentStore, now: datetime
) -> None:
    service.create("scenario", _scenario(), user_id="user-1", tenant_id="company-a")
    store.update("scenarios", "doc-1", {"playCount": 12, "schemaVersion": "0.9"})

    copy = service.duplicate("scenario", "doc-1", user_id="user-2", tenant_id="company-a")

    assert copy["id"] == "doc-2"
    assert copy["name"] == "Fire drill (Copy)"
    assert copy["referenceId"] == "fire-drill"
    assert copy["playCount"] == 0
    assert copy["createdBy"] == "user-2"
    assert copy["createdAt"] == now.isoformat()
    assert copy["schemaVersion"] == "0.9"
    assert "updatedBy" not in copy
    assert store.get("scenarios", "doc-2") == copy
    assert store.get("scenarios", "doc-1")["playCount"] == 12


def test_purge_tenant_deletes_only_that_tenant(
    registry: SchemaRegistry, store: InMemoryDocumentStore
) -> None:
    service = DocumentService(registry, store, page_size=2)
    for index in range(5):
        service.create(
            "scenario", _scenario(name=f"S{index}"), user_id="u", tenant_id="company-a"
        )
    service.create("scenario", _scenario(), user_id="u", tenant_id="company-b")

    deleted = service.purge_tenant("scenario", "company-a")

    assert deleted == 5
    assert service.list_documents("scenario", tenant_id="company-a") == []
    assert len(service.list_documents("scenario", tenant_id="company-b")) == 1
