from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable

from coin_stats.config.app_config import StoreSettings
from coin_stats.ingest.normalize import (
    extract_raw_trades_from_doc_data,
    parse_raw_trade_from_doc_snap,
    parse_trade_from_doc_snap,
    parse_trades_from_doc_data,
)
from coin_stats.models import Trade
from coin_stats.storage.document_store import DocumentStore, InMemoryDocumentStore, StoreReadError
from coin_stats.storage.layouts import (
    LEGACY_COLLECTION,
    PAGE_SIZE,
    Layout,
    LayoutSource,
    LayoutSettings,
    Provenance,
    resolve_trades,
)

logger = logging.getLogger(__name__)

NORMALIZED_NOTE = (
    "No trades found at the legacy document or symbol collection. Ensure the target "
    "collection contains docs with fields or IDs carrying entry/exit times."
)
RAW_NOTE = "RAW endpoint: no trades found at old or new layout."


@dataclass(frozen=True)
class TradeQueryResult:
    exchange: str
    symbol: str
    trades: list[Any]
    provenance: Provenance

    def to_payload(self) -> dict[str, Any]:
        trades = [trade.to_dict() if isinstance(trade, Trade) else trade for trade in self.trades]
        return {
            "symbol": self.symbol,
            "exchange": self.exchange,
            "trades": trades,
            "debug": self.provenance.to_payload(),
        }


class TradeRetrievalService:
    def __init__(
        self,
        store: DocumentStore,
        *,
        legacy_collection: str = LEGACY_COLLECTION,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self._store = store
        self._layout_settings = LayoutSettings(legacy_collection=legacy_collection, page_size=page_size)

    @property
    def store(self) -> DocumentStore:
        return self._store

    def fetch_trades(self, exchange: str, symbol: str) -> TradeQueryResult:
        symbol = symbol.upper()

        def extract(source: LayoutSource) -> list[Trade]:
            if source.layout is Layout.LEGACY_DOCUMENT:
                return parse_trades_from_doc_data(source.documents[0].data or {}, exchange, symbol)
            trades = []
            for snapshot in source.documents:
                trade = parse_trade_from_doc_snap(snapshot, exchange, symbol)
                if trade is not None:
                    trades.append(trade)
            return trades

        resolution = resolve_trades(
            self._store,
            exchange,
            symbol,
            extract,
            settings=self._layout_settings,
            note=NORMALIZED_NOTE,
        )
        trades = sorted(resolution.records, key=lambda trade: trade.entry_timestamp_s or 0)
        return TradeQueryResult(exchange=exchange, symbol=symbol, trades=trades, provenance=resolution.provenance)

    def fetch_raw_trades(self, exchange: str, symbol: str) -> TradeQueryResult:
        symbol = symbol.upper()

        def extract(source: LayoutSource) -> list[Any]:
            if source.layout is Layout.LEGACY_DOCUMENT:
                return extract_raw_trades_from_doc_data(source.documents[0].data or {})
            return [parse_raw_trade_from_doc_snap(snapshot) for snapshot in source.documents]

        resolution = resolve_trades(
            self._store,
            exchange,
            symbol,
            extract,
            settings=self._layout_settings,
            note=RAW_NOTE,
        )
        return TradeQueryResult(
            exchange=exchange,
            symbol=symbol,
            trades=resolution.records,
            provenance=resolution.provenance,
        )

    def sample_collections(self, prefix: str, limit: int = 50) -> dict[str, Any]:
        try:
            names = self._store.list_collections()
        except StoreReadError as exc:
            logger.warning("Error listing root collections: %s", exc)
            return {**self._store.describe(), "root_collections": None, "samples": {}, "error": str(exc)}
        samples: dict[str, Any] = {}
        for name in names:
            if not name.startswith(prefix):
                continue
            try:
                snapshots = self._store.scan_collection(name, limit)
            except StoreReadError as exc:
                samples[name] = [{"error": str(exc)}]
                continue
            samples[name] = [snapshot.id for snapshot in snapshots]
        return {**self._store.describe(), "root_collections": names, "samples": samples}

    def describe_databases(self) -> dict[str, Any]:
        store = self._store.describe()
        return {
            "project_id": store.get("project_id"),
            "current_database_id": store.get("database_id"),
            "databases": [info.to_dict() for info in self._store.list_databases()],
        }


async def gather_trades_by_symbol(
    service: TradeRetrievalService,
    exchange: str,
    symbols: Iterable[str],
    *,
    raw: bool = False,
) -> dict[str, list[Any]]:
    """Fetch every symbol concurrently; any single failure aborts the whole batch."""
    ordered = [symbol.upper() for symbol in symbols]
    if not ordered:
        raise ValueError("At least one symbol is required.")
    fetch = service.fetch_raw_trades if raw else service.fetch_trades
    results = await asyncio.gather(
        *(asyncio.to_thread(fetch, exchange, symbol) for symbol in ordered)
    )
    return {result.symbol: result.trades for result in results}


def open_store(settings: StoreSettings) -> DocumentStore:
    if settings.fixture_path is not None:
        logger.info("Using fixture store at %s", settings.fixture_path)
        return InMemoryDocumentStore.from_json(settings.fixture_path)

    from coin_stats.storage.firestore_store import FirestoreConfig, FirestoreDocumentStore

    return FirestoreDocumentStore.connect(FirestoreConfig.from_settings(settings))


def build_service(settings: StoreSettings) -> TradeRetrievalService:
    return TradeRetrievalService(
        open_store(settings),
        legacy_collection=settings.legacy_collection,
        page_size=settings.page_size,
    )
