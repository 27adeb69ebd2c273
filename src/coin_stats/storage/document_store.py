from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Mapping, Protocol


DATABASES_PATH = "<databases>"


class StoreError(RuntimeError):
    pass


class StoreReadError(StoreError):
    """A single document or collection read failed; other paths may still work."""


class StoreConnectionError(StoreError):
    """The store itself is unreachable or misconfigured."""


@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    data: Any = None
    exists: bool = True


@dataclass(frozen=True)
class DatabaseInfo:
    name: str
    database_id: str
    location_id: str | None = None
    type: str | None = None
    concurrency_mode: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class DocumentStore(Protocol):
    def get_document(self, collection: str, document_id: str) -> DocumentSnapshot: ...

    def scan_collection(self, collection: str, limit: int) -> list[DocumentSnapshot]: ...

    def list_collections(self) -> list[str]: ...

    def list_databases(self) -> list[DatabaseInfo]: ...

    def describe(self) -> dict[str, Any]: ...


class InMemoryDocumentStore:
    def __init__(
        self,
        collections: Mapping[str, Mapping[str, Any]] | None = None,
        *,
        project_id: str | None = "local",
        database_id: str | None = "memory",
        fail_reads: set[str] | None = None,
        fail_connection: bool = False,
    ) -> None:
        self._collections = {name: dict(docs) for name, docs in (collections or {}).items()}
        self._project_id = project_id
        self._database_id = database_id
        self._fail_reads = set(fail_reads or ())
        self._fail_connection = fail_connection
        self.reads: list[str] = []

    @classmethod
    def from_json(cls, path: str | Path) -> "InMemoryDocumentStore":
        source = Path(path)
        with source.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        if not isinstance(payload, Mapping):
            raise ValueError(f"Fixture {source} must map collection names to documents")
        collections = {
            name: docs for name, docs in payload.items() if isinstance(docs, Mapping)
        }
        return cls(collections, project_id="fixture", database_id=source.name)

    def get_document(self, collection: str, document_id: str) -> DocumentSnapshot:
        path = f"{collection}/{document_id}"
        self._check(path)
        docs = self._collections.get(collection, {})
        if document_id not in docs:
            return DocumentSnapshot(id=document_id, data=None, exists=False)
        return DocumentSnapshot(id=document_id, data=docs[document_id])

    def scan_collection(self, collection: str, limit: int) -> list[DocumentSnapshot]:
        self._check(collection)
        docs = self._collections.get(collection, {})
        snapshots = [DocumentSnapshot(id=doc_id, data=data) for doc_id, data in docs.items()]
        return snapshots[:limit]

    def list_collections(self) -> list[str]:
        self._check("")
        return sorted(self._collections)

    def list_databases(self) -> list[DatabaseInfo]:
        self._check(DATABASES_PATH)
        return [
            DatabaseInfo(
                name=f"projects/{self._project_id}/databases/{self._database_id}",
                database_id=str(self._database_id),
                type="IN_MEMORY",
            )
        ]

    def describe(self) -> dict[str, Any]:
        return {"project_id": self._project_id, "database_id": self._database_id}

    def _check(self, path: str) -> None:
        self.reads.append(path)
        if self._fail_connection:
            raise StoreConnectionError("In-memory store configured as unreachable")
        if path in self._fail_reads:
            raise StoreReadError(f"Read failed for {path}")
