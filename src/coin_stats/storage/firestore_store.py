from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, TypeVar

from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore, firestore_admin_v1
from google.oauth2 import service_account

from coin_stats.config.app_config import StoreSettings
from coin_stats.storage.document_store import (
    DATABASES_PATH,
    DatabaseInfo,
    DocumentSnapshot,
    StoreConnectionError,
    StoreReadError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DATABASE_ID = "coin-stats"

_CONNECTION_ERRORS = (
    api_exceptions.ServiceUnavailable,
    api_exceptions.Unauthenticated,
    api_exceptions.DeadlineExceeded,
    auth_exceptions.GoogleAuthError,
)


@dataclass(frozen=True)
class FirestoreConfig:
    credentials_path: Path | None
    project_id: str | None
    database_id: str

    @classmethod
    def from_settings(cls, settings: StoreSettings) -> "FirestoreConfig":
        return cls(
            credentials_path=settings.credentials_path,
            project_id=settings.project_id,
            database_id=settings.database_id or DEFAULT_DATABASE_ID,
        )


class FirestoreDocumentStore:
    def __init__(
        self,
        client: Any,
        *,
        project_id: str | None,
        database_id: str,
        admin_client: Any = None,
    ) -> None:
        self._client = client
        self._admin_client = admin_client
        self._project_id = project_id
        self._database_id = database_id

    @classmethod
    def connect(cls, config: FirestoreConfig) -> "FirestoreDocumentStore":
        project_id = config.project_id
        credentials = None
        if config.credentials_path is not None:
            if not config.credentials_path.exists():
                raise StoreConnectionError(f"Credential JSON not found at: {config.credentials_path}")
            try:
                credentials = service_account.Credentials.from_service_account_file(
                    str(config.credentials_path)
                )
            except (ValueError, auth_exceptions.GoogleAuthError) as exc:
                raise StoreConnectionError(f"Invalid credential JSON: {exc}") from exc
            project_id = project_id or credentials.project_id
        try:
            client = firestore.Client(
                project=project_id,
                credentials=credentials,
                database=config.database_id,
            )
            admin_client = firestore_admin_v1.FirestoreAdminClient(credentials=credentials)
        except auth_exceptions.GoogleAuthError as exc:
            raise StoreConnectionError(f"Firestore client init failed: {exc}") from exc
        logger.info(
            "Firestore initialized projectId=%s databaseId=%s",
            client.project,
            config.database_id,
        )
        return cls(
            client,
            project_id=client.project,
            database_id=config.database_id,
            admin_client=admin_client,
        )

    def get_document(self, collection: str, document_id: str) -> DocumentSnapshot:
        path = f"{collection}/{document_id}"
        snap = self._call(path, lambda: self._client.collection(collection).document(document_id).get())
        if not snap.exists:
            return DocumentSnapshot(id=snap.id, data=None, exists=False)
        return DocumentSnapshot(id=snap.id, data=snap.to_dict() or {})

    def scan_collection(self, collection: str, limit: int) -> list[DocumentSnapshot]:
        snaps = self._call(collection, lambda: self._client.collection(collection).limit(limit).get())
        return [DocumentSnapshot(id=snap.id, data=snap.to_dict() or {}) for snap in snaps]

    def list_collections(self) -> list[str]:
        refs = self._call("<root>", lambda: list(self._client.collections()))
        return [ref.id for ref in refs]

    def list_databases(self) -> list[DatabaseInfo]:
        if self._admin_client is None:
            raise StoreReadError("Database listing needs a Firestore admin client")
        parent = f"projects/{self._project_id}"
        response = self._call(DATABASES_PATH, lambda: self._admin_client.list_databases(parent=parent))
        return [
            DatabaseInfo(
                name=database.name,
                database_id=database.name.rsplit("/", 1)[-1],
                location_id=database.location_id or None,
                type=_enum_name(database.type_),
                concurrency_mode=_enum_name(database.concurrency_mode),
            )
            for database in response.databases
        ]

    def describe(self) -> dict[str, Any]:
        return {"project_id": self._project_id, "database_id": self._database_id}

    def _call(self, path: str, action: Callable[[], T]) -> T:
        try:
            return action()
        except _CONNECTION_ERRORS as exc:
            raise StoreConnectionError(f"Firestore unreachable while reading {path}: {exc}") from exc
        except api_exceptions.GoogleAPICallError as exc:
            raise StoreReadError(f"Firestore read failed for {path}: {exc}") from exc


def _enum_name(value: Any) -> str | None:
    if value is None:
        return None
    return getattr(value, "name", None) or str(value)
