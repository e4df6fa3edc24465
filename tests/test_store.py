from __future__ import annotations

import json
from pathlib import Path

import pytest

from simcontent.errors import DocumentStoreError
from simcontent.store import (
    DocumentStore,
    FileDocumentStore,
    InMemoryDocumentStore,
    delete_where,
    iter_documents,
    iter_pages,
)


@pytest.fixture(params=["memory", "file"])
def any_store(request: pytest.FixtureRequest, tmp_path: Path) -> DocumentStore:
    if request.param == "memory":
        return InMemoryDocumentStore()
    return FileDocumentStore(tmp_path / "store")


def _seed(store: DocumentStore, count: int, *, company: str = "company-a") -> None:
    for index in range(count):
        doc_id = f"doc-{index:03d}"
        store.create("scenarios", doc_id, {"id": doc_id, "companyId": company})


def test_create_get_update_delete(any_store: DocumentStore) -> None:
    any_store.create("scenarios", "s1", {"name": "Fire drill", "tags": ["a"]})

    assert any_store.get("scenarios", "s1") == {
        "id": "s1",
        "name": "Fire drill",
        "tags": ["a"],
    }

    updated = any_store.update("scenarios", "s1", {"name": "Flood drill"})
    assert updated["name"] == "Flood drill"
    assert updated["tags"] == ["a"]
    assert any_store.get("scenarios", "s1")["name"] == "Flood drill"

    any_store.delete("scenarios", "s1")
    with pytest.raises(KeyError):
        any_store.get("scenarios", "s1")

    # Deleting a missing document is a no-op.
    any_store.delete("scenarios", "s1")


def test_create_rejects_existing_id(any_store: DocumentStore) -> None:
    any_store.create("scenarios", "s1", {"name": "first"})

    with pytest.raises(DocumentStoreError):
        any_store.create("scenarios", "s1", {"name": "second"})

    assert any_store.get("scenarios", "s1")["name"] == "first"


def test_update_missing_document_raises_key_error(any_store: DocumentStore) -> None:
    with pytest.raises(KeyError):
        any_store.update("scenarios", "missing", {"name": "x"})


def test_returned_documents_are_copies(any_store: DocumentStore) -> None:
    any_store.create("scenarios", "s1", {"tags": ["a"]})

    fetched = any_store.get("scenarios", "s1")
    fetched["tags"].append("b")

    assert any_store.get("scenarios", "s1")["tags"] == ["a"]


@pytest.mark.parametrize("doc_id", ["", "   ", "../escape", "a/b", "..", "a\\b"])
def test_identifiers_are_validated(any_store: DocumentStore, doc_id: str) -> None:
    with pytest.raises(ValueError):
        any_store.create("scenarios", doc_id, {})


def test_query_orders_by_id_and_applies_filters(any_store: DocumentStore) -> None:
    any_store.create("scenarios", "b", {"companyId": "company-a"})
    any_store.create("scenarios", "a", {"companyId": "company-a"})
    any_store.create("scenarios", "c", {"companyId": "company-b"})

    everything = any_store.query("scenarios")
    owned = any_store.query("scenarios", filters={"companyId": "company-a"})

    assert [document["id"] for document in everything] == ["a", "b", "c"]
    assert [document["id"] for document in owned] == ["a", "b"]
    assert any_store.query("characters") == []


def test_query_pages_with_cursor(any_store: DocumentStore) -> None:
    _seed(any_store, 5)

    first = any_store.query("scenarios", limit=2)
    second = any_store.query("scenarios", limit=2, start_after=first[-1]["id"])

    assert [document["id"] for document in first] == ["doc-000", "doc-001"]
    assert [document["id"] for document in second] == ["doc-002", "doc-003"]


def test_query_rejects_non_positive_limits(any_store: DocumentStore) -> None:
    with pytest.raises(ValueError):
        any_store.query("scenarios", limit=0)


def test_iter_pages_yields_bounded_pages(any_store: DocumentStore) -> None:
    _seed(any_store, 7)

    pages = list(iter_pages(any_store, "scenarios", page_size=3))

    assert [len(page) for page in pages] == [3, 3, 1]
    assert [
        document["id"] for document in iter_documents(any_store, "scenarios", page_size=3)
    ] == [f"doc-{index:03d}" for index in range(7)]


def test_iter_pages_stops_on_exact_multiple(any_store: DocumentStore) -> None:
    _seed(any_store, 4)

    pages = list(iter_pages(any_store, "scenarios", page_size=2))

    assert [len(page) for page in pages] == [2, 2]


def test_delete_where_removes_only_matching_documents(any_store: DocumentStore) -> None:
    _seed(any_store, 5, company="company-a")
    any_store.create("scenarios", "other", {"companyId": "company-b"})

    deleted = delete_where(
        any_store, "scenarios", filters={"companyId": "company-a"}, page_size=2
    )

    assert deleted == 5
    assert [document["id"] for document in any_store.query("scenarios")] == ["other"]


def test_storage_key_overrides_id_in_document_data(any_store: DocumentStore) -> None:
    for index in range(3):
        any_store.create("scenarios", f"k{index}", {"id": f"z{index}", "companyId": "a"})

    pages = list(iter_pages(any_store, "scenarios", page_size=1))

    assert [[document["id"] for document in page] for page in pages] == [
        ["k0"],
        ["k1"],
        ["k2"],
    ]
    assert any_store.get("scenarios", "k1")["id"] == "k1"
    assert any_store.update("scenarios", "k2", {"name": "x"})["id"] == "k2"

    deleted = delete_where(any_store, "scenarios", filters={"companyId": "a"}, page_size=2)

    assert deleted == 3
    assert any_store.query("scenarios") == []


def test_in_memory_snapshot_is_detached() -> None:
    store = InMemoryDocumentStore()
    store.create("scenarios", "s1", {"name": "Fire drill"})

    snapshot = store.snapshot()
    snapshot["scenarios"]["s1"]["name"] = "changed"

    assert store.get("scenarios", "s1")["name"] == "Fire drill"


def test_file_store_layout(tmp_path: Path) -> None:
    store = FileDocumentStore(tmp_path)
    store.create("scenarios", "s1", {"name": "Fire drill"})

    document_path = tmp_path / "scenarios" / "s1.json"
    assert json.loads(document_path.read_text(encoding="utf-8")) == {
        "name": "Fire drill"
    }


def test_file_store_reports_corrupt_documents(tmp_path: Path) -> None:
    store = FileDocumentStore(tmp_path)
    (tmp_path / "scenarios").mkdir()
    (tmp_path / "scenarios" / "broken.json").write_text("{oops", encoding="utf-8")
    (tmp_path / "scenarios" / "list.json").write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(DocumentStoreError, match="not valid JSON"):
        store.get("scenarios", "broken")
    with pytest.raises(DocumentStoreError, match="JSON object"):
        store.get("scenarios", "list")
