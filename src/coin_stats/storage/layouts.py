from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, TypeVar

from coin_stats.storage.document_store import DocumentSnapshot, DocumentStore, StoreReadError

logger = logging.getLogger(__name__)

T = TypeVar("T")

LEGACY_COLLECTION = "coin-stats"
PAGE_SIZE = 1000


@dataclass(frozen=True)
class LayoutSettings:
    legacy_collection: str = LEGACY_COLLECTION
    page_size: int = PAGE_SIZE


DEFAULT_LAYOUT_SETTINGS = LayoutSettings()


class Layout(Enum):
    LEGACY_DOCUMENT = "legacy_document"
    SYMBOL_COLLECTION = "symbol_collection"


@dataclass(frozen=True)
class LayoutSource:
    layout: Layout
    path: str
    documents: list[DocumentSnapshot]


@dataclass(frozen=True)
class Provenance:
    store: dict[str, Any]
    layout: Layout | None = None
    used_path: str | None = None
    attempted_doc_paths: list[str] = field(default_factory=list)
    attempted_collection: str | None = None
    root_collections: list[str] | None = None
    note: str | None = None

    @property
    def found(self) -> bool:
        return self.used_path is not None

    def to_payload(self) -> dict[str, Any]:
        payload = dict(self.store)
        if self.found:
            payload["used_path"] = self.used_path
            payload["layout"] = self.layout.value if self.layout else None
            return payload
        payload["attempted"] = {
            "old_doc_paths": list(self.attempted_doc_paths),
            "new_collection": self.attempted_collection,
        }
        payload["root_collections"] = None if self.root_collections is None else list(self.root_collections)
        if self.note:
            payload["note"] = self.note
        return payload


@dataclass(frozen=True)
class Resolution(Generic[T]):
    records: list[T]
    provenance: Provenance


def legacy_document_ids(exchange: str, symbol: str) -> list[str]:
    upper = symbol.upper()
    lower = symbol.lower()
    return [
        f"{exchange}-{upper}",
        f"{exchange}-{lower}",
        f"{exchange}_{upper}",
        f"{exchange}_{lower}",
    ]


def symbol_collection_name(exchange: str, symbol: str) -> str:
    return f"{exchange}-{symbol.upper()}"


def resolve_legacy_document(
    store: DocumentStore,
    exchange: str,
    symbol: str,
    settings: LayoutSettings = DEFAULT_LAYOUT_SETTINGS,
) -> LayoutSource | None:
    collection = settings.legacy_collection
    for doc_id in legacy_document_ids(exchange, symbol):
        path = f"{collection}/{doc_id}"
        logger.debug("try legacy path: %s", path)
        try:
            snapshot = store.get_document(collection, doc_id)
        except StoreReadError as exc:
            logger.warning("Error reading %s: %s", path, exc)
            continue
        if snapshot.exists:
            logger.info("legacy path found: %s", path)
            return LayoutSource(layout=Layout.LEGACY_DOCUMENT, path=path, documents=[snapshot])
    return None


def resolve_symbol_collection(
    store: DocumentStore,
    exchange: str,
    symbol: str,
    settings: LayoutSettings = DEFAULT_LAYOUT_SETTINGS,
) -> LayoutSource | None:
    name = symbol_collection_name(exchange, symbol)
    logger.debug("try symbol collection: %s", name)
    try:
        snapshots = store.scan_collection(name, settings.page_size)
    except StoreReadError as exc:
        logger.warning("Error reading collection %s: %s", name, exc)
        return None
    if not snapshots:
        logger.info("symbol collection %s is empty", name)
        return None
    return LayoutSource(layout=Layout.SYMBOL_COLLECTION, path=f"{name}/* (docs)", documents=snapshots)


LayoutResolver = Callable[[DocumentStore, str, str, LayoutSettings], "LayoutSource | None"]

LAYOUT_RESOLVERS: dict[Layout, LayoutResolver] = {
    Layout.LEGACY_DOCUMENT: resolve_legacy_document,
    Layout.SYMBOL_COLLECTION: resolve_symbol_collection,
}

LAYOUT_ORDER: tuple[Layout, ...] = (Layout.LEGACY_DOCUMENT, Layout.SYMBOL_COLLECTION)


def resolve_trades(
    store: DocumentStore,
    exchange: str,
    symbol: str,
    extract: Callable[[LayoutSource], list[T]],
    *,
    settings: LayoutSettings = DEFAULT_LAYOUT_SETTINGS,
    note: str | None = None,
) -> Resolution[T]:
    """Try storage layouts in priority order and return the first non-empty extraction.

    A layout whose source exists but extracts to nothing falls through to the
    next layout. When every layout comes up empty the root collection names are
    attached to the provenance for diagnosis; a failed listing leaves them as
    ``None`` and appends the error to the note. ``StoreConnectionError`` is
    never caught here.
    """
    for layout in LAYOUT_ORDER:
        source = LAYOUT_RESOLVERS[layout](store, exchange, symbol, settings)
        if source is None:
            continue
        records = extract(source)
        logger.info(
            "%s hit at %s; docs=%d records=%d",
            layout.value,
            source.path,
            len(source.documents),
            len(records),
        )
        if records:
            return Resolution(
                records=records,
                provenance=Provenance(store=store.describe(), layout=layout, used_path=source.path),
            )

    root_collections: list[str] | None
    try:
        root_collections = store.list_collections()
    except StoreReadError as exc:
        logger.warning("Error listing root collections: %s", exc)
        root_collections = None
        failure = f"Root collection listing failed: {exc}"
        note = f"{note} {failure}" if note else failure

    return Resolution(
        records=[],
        provenance=Provenance(
            store=store.describe(),
            attempted_doc_paths=[
                f"{settings.legacy_collection}/{doc_id}" for doc_id in legacy_document_ids(exchange, symbol)
            ],
            attempted_collection=symbol_collection_name(exchange, symbol),
            root_collections=root_collections,
            note=note,
        ),
    )
