"""Document store abstraction and local implementations.

The production backend is a shared multi-tenant document database; the core
only needs the narrow capability described by :class:`DocumentStore`. Bulk
work always goes through :func:`iter_documents` / :func:`delete_where`, which
fetch and act on bounded pages sequentially.
"""

from __future__ import annotations

import copy
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping

from .errors import DocumentStoreError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 500

Document = Dict[str, Any]


class DocumentStore(ABC):
    """Interface describing how documents are persisted."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Document:
        """Return a copy of the stored document.

        Raises:
            KeyError: If the document cannot be found.
        """

    @abstractmethod
    def create(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        """Persist a new document.

        Raises:
            DocumentStoreError: If a document with ``doc_id`` already exists.
        """

    @abstractmethod
    def update(
        self, collection: str, doc_id: str, changes: Mapping[str, Any]
    ) -> Document:
        """Merge ``changes`` into the stored document and return the result.

        Raises:
            KeyError: If the document cannot be found.
        """

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Remove the stored document if it exists."""

    @abstractmethod
    def query(
        self,
        collection: str,
        *,
        filters: Mapping[str, Any] | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        start_after: str | None = None,
    ) -> List[Document]:
        """Return up to ``limit`` matching documents ordered by id.

        ``filters`` are equality matches on top-level keys. ``start_after``
        is the id of the last document of the previous page.
        """


class InMemoryDocumentStore(DocumentStore):
    """Keep documents in local process memory."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Document]] = {}

    def get(self, collection: str, doc_id: str) -> Document:
        key = _validate_identifier(doc_id, "doc_id")
        try:
            document = copy.deepcopy(self._collections[collection][key])
        except KeyError as exc:
            raise KeyError(
                f"Document '{doc_id}' does not exist in '{collection}'"
            ) from exc
        document["id"] = key
        return document

    def create(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        key = _validate_identifier(doc_id, "doc_id")
        documents = self._collections.setdefault(
            _validate_identifier(collection, "collection"), {}
        )
        if key in documents:
            raise DocumentStoreError(
                f"Document '{doc_id}' already exists in '{collection}'"
            )
        documents[key] = copy.deepcopy(dict(data))

    def update(
        self, collection: str, doc_id: str, changes: Mapping[str, Any]
    ) -> Document:
        key = _validate_identifier(doc_id, "doc_id")
        documents = self._collections.get(collection, {})
        if key not in documents:
            raise KeyError(f"Document '{doc_id}' does not exist in '{collection}'")
        documents[key].update(copy.deepcopy(dict(changes)))
        updated = copy.deepcopy(documents[key])
        updated["id"] = key
        return updated

    def delete(self, collection: str, doc_id: str) -> None:
        key = _validate_identifier(doc_id, "doc_id")
        self._collections.get(collection, {}).pop(key, None)

    def query(
        self,
        collection: str,
        *,
        filters: Mapping[str, Any] | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        start_after: str | None = None,
    ) -> List[Document]:
        _validate_limit(limit)
        documents = self._collections.get(collection, {})
        page: List[Document] = []
        for doc_id in sorted(documents):
            if start_after is not None and doc_id <= start_after:
                continue
            document = documents[doc_id]
            if not _matches(document, filters):
                continue
            listed = copy.deepcopy(document)
            listed["id"] = doc_id
            page.append(listed)
            if len(page) >= limit:
                break
        return page

    def snapshot(self) -> Dict[str, Dict[str, Document]]:
        """Return a deep copy of every stored document, keyed by collection."""

        return copy.deepcopy(self._collections)


class FileDocumentStore(DocumentStore):
    """Persist documents as JSON files under ``<root>/<collection>/<id>.json``."""

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = storage_dir
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def get(self, collection: str, doc_id: str) -> Document:
        document_path = self._document_path(collection, doc_id)
        if not document_path.exists():
            raise KeyError(f"Document '{doc_id}' does not exist in '{collection}'")
        document = _read_document(document_path)
        document["id"] = document_path.stem
        return document

    def create(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        document_path = self._document_path(collection, doc_id)
        if document_path.exists():
            raise DocumentStoreError(
                f"Document '{doc_id}' already exists in '{collection}'"
            )
        document_path.parent.mkdir(parents=True, exist_ok=True)
        _write_document(document_path, data)

    def update(
        self, collection: str, doc_id: str, changes: Mapping[str, Any]
    ) -> Document:
        document_path = self._document_path(collection, doc_id)
        if not document_path.exists():
            raise KeyError(f"Document '{doc_id}' does not exist in '{collection}'")
        document = _read_document(document_path)
        document.update(changes)
        _write_document(document_path, document)
        document["id"] = document_path.stem
        return document

    def delete(self, collection: str, doc_id: str) -> None:
        document_path = self._document_path(collection, doc_id)
        if document_path.exists():
            document_path.unlink()

    def query(
        self,
        collection: str,
        *,
        filters: Mapping[str, Any] | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        start_after: str | None = None,
    ) -> List[Document]:
        _validate_limit(limit)
        collection_dir = self.storage_dir / _validate_identifier(
            collection, "collection"
        )
        if not collection_dir.is_dir():
            return []

        page: List[Document] = []
        for document_path in sorted(
            collection_dir.glob("*.json"), key=lambda path: path.stem
        ):
            if not document_path.is_file():
                continue
            if start_after is not None and document_path.stem <= start_after:
                continue
            document = _read_document(document_path)
            if not _matches(document, filters):
                continue
            document["id"] = document_path.stem
            page.append(document)
            if len(page) >= limit:
                break
        return page

    def _document_path(self, collection: str, doc_id: str) -> Path:
        collection_name = _validate_identifier(collection, "collection")
        validated = _validate_identifier(doc_id, "doc_id")
        return self.storage_dir / collection_name / f"{validated}.json"


def iter_pages(
    store: DocumentStore,
    collection: str,
    *,
    filters: Mapping[str, Any] | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Iterator[List[Document]]:
    """Yield matching documents in pages of at most ``page_size``."""

    cursor: str | None = None
    while True:
        page = store.query(
            collection, filters=filters, limit=page_size, start_after=cursor
        )
        if not page:
            return
        yield page
        if len(page) < page_size:
            return
        cursor = str(page[-1]["id"])


def iter_documents(
    store: DocumentStore,
    collection: str,
    *,
    filters: Mapping[str, Any] | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Iterator[Document]:
    """Yield every matching document, fetching ``page_size`` at a time."""

    for page in iter_pages(store, collection, filters=filters, page_size=page_size):
        yield from page


def delete_where(
    store: DocumentStore,
    collection: str,
    *,
    filters: Mapping[str, Any] | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> int:
    """Delete every matching document one bounded page at a time."""

    deleted = 0
    while True:
        page = store.query(collection, filters=filters, limit=page_size)
        if not page:
            break
        for document in page:
            store.delete(collection, str(document["id"]))
            deleted += 1
        logger.info("Deleted %d documents from %s", deleted, collection)
    return deleted


def _matches(document: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(document.get(key) == value for key, value in filters.items())


def _read_document(document_path: Path) -> Document:
    try:
        payload = json.loads(document_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise DocumentStoreError(
            f"Stored document '{document_path}' is not valid JSON: {exc}"
        ) from exc
    if not isinstance(payload, dict):
        raise DocumentStoreError(
            f"Stored document '{document_path}' must contain a JSON object"
        )
    return payload


def _write_document(document_path: Path, data: Mapping[str, Any]) -> None:
    document_path.write_text(
        json.dumps(dict(data), indent=2, sort_keys=True), encoding="utf-8"
    )


def _validate_identifier(value: str, label: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{label} must be a string")
    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{label} must be a non-empty string")
    if "/" in stripped or "\\" in stripped or stripped in {".", ".."}:
        raise ValueError(f"{label} must not contain path separators")
    return stripped


def _validate_limit(limit: int) -> None:
    if limit < 1:
        raise ValueError("limit must be a positive integer")


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "Document",
    "DocumentStore",
    "FileDocumentStore",
    "InMemoryDocumentStore",
    "delete_where",
    "iter_documents",
    "iter_pages",
]
