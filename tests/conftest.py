"""Test configuration for the simulation content core."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from collections.abc import Iterator
from typing import Any, Callable

import pytest

from simcontent.documents import DocumentService
from simcontent.migrations import MigrationEngine
from simcontent.schemas import SchemaRegistry, default_registry
from simcontent.store import InMemoryDocumentStore

FIXED_NOW = datetime(2024, 7, 1, 10, 30, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


def _legacy_character(doc_id: str, **overrides: Any) -> dict[str, Any]:
    """Return a character stored before ``status`` existed."""

    document: dict[str, Any] = {
        "id": doc_id,
        "name": f"Character {doc_id}",
        "voiceId": "voice-1",
        "companyId": "company-a",
        "createdBy": "user-1",
        "createdAt": "2024-01-01T00:00:00+00:00",
        "updatedAt": "2024-01-01T00:00:00+00:00",
        "schemaVersion": "1.0",
    }
    document.update(overrides)
    return document


@pytest.fixture()
def registry() -> SchemaRegistry:
    return default_registry()


@pytest.fixture()
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture()
def engine(registry: SchemaRegistry, store: InMemoryDocumentStore) -> MigrationEngine:
    return MigrationEngine(registry, store, clock=fixed_clock)


@pytest.fixture()
def id_factory() -> Callable[[], str]:
    """Return a factory producing ``doc-1``, ``doc-2``, ... in order."""

    def _ids() -> Iterator[str]:
        counter = 0
        while True:
            counter += 1
            yield f"doc-{counter}"

    generator = _ids()
    return lambda: next(generator)


@pytest.fixture()
def service(
    registry: SchemaRegistry,
    store: InMemoryDocumentStore,
    id_factory: Callable[[], str],
) -> DocumentService:
    return DocumentService(registry, store, clock=fixed_clock, id_factory=id_factory)


@pytest.fixture()
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture()
def make_legacy_character() -> Callable[..., dict[str, Any]]:
    """Factory fixture for characters stored before ``status`` existed."""

    return _legacy_character
