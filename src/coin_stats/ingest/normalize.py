from __future__ import annotations

import math
from typing import Any, Iterable, Mapping

from coin_stats.models import RawRecord, Trade
from coin_stats.storage.document_store import DocumentSnapshot
from coin_stats.timestamps import to_epoch_seconds

FIELD_KEYS: dict[str, tuple[str, ...]] = {
    "exchange": ("exchange",),
    "symbol": ("symbol",),
    "position": ("position", "side"),
    "entry_timestamp_s": ("entry_timestamp", "entry", "open_time", "timestamp"),
    "close_timestamp_s": ("close_timestamp", "exit", "close_time"),
}

RECORD_LIST_KEYS = ("trades", "positions")
LINES_KEY = "lines"
LINE_SEPARATOR = "|"
LINE_MIN_PARTS = 5


def first_defined(raw: Mapping[str, Any], keys: Iterable[str], *, skip_empty: bool = False) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is None:
            continue
        if skip_empty and _is_blank(value):
            continue
        return value
    return None


def normalize_trade(raw: RawRecord | None, exchange: str, symbol: str) -> Trade:
    record: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}

    resolved_exchange = first_defined(record, FIELD_KEYS["exchange"], skip_empty=True)
    resolved_symbol = first_defined(record, FIELD_KEYS["symbol"], skip_empty=True)
    position = first_defined(record, FIELD_KEYS["position"], skip_empty=True)
    close_reason = record.get("close_reason")

    return Trade(
        exchange=str(resolved_exchange) if resolved_exchange is not None else exchange,
        symbol=str(resolved_symbol if resolved_symbol is not None else symbol).upper(),
        position=str(position) if position is not None else "",
        entry_timestamp_s=to_epoch_seconds(first_defined(record, FIELD_KEYS["entry_timestamp_s"])),
        close_timestamp_s=to_epoch_seconds(first_defined(record, FIELD_KEYS["close_timestamp_s"])),
        real_pnl=_numeric_or_none(record.get("real_pnl")),
        real_net_pnl=_numeric_or_none(record.get("real_net_pnl")),
        close_reason=str(close_reason) if close_reason is not None else None,
    )


def parse_trade_line(line: Any, exchange: str, symbol: str, *, numeric: bool = True) -> Trade | None:
    """Decode ``exchange|symbol|position|entry|exit``.

    With ``numeric`` the timestamp parts are read as numbers of seconds, as the
    legacy ``lines`` arrays store them; document identifiers keep the text form
    so digit-length rules apply.
    """
    parts = str(line).split(LINE_SEPARATOR)
    if len(parts) < LINE_MIN_PARTS:
        return None
    line_exchange, line_symbol, position, entry, close = (part.strip() for part in parts[:LINE_MIN_PARTS])
    return normalize_trade(
        {
            "exchange": line_exchange,
            "symbol": line_symbol,
            "position": position,
            "entry_timestamp": _line_number(entry) if numeric else entry,
            "close_timestamp": _line_number(close) if numeric else close,
        },
        exchange,
        symbol,
    )


def parse_trades_from_doc_data(data: Any, exchange: str, symbol: str) -> list[Trade]:
    """Normalize every trade held by a legacy per-symbol document.

    Structured records (see ``extract_raw_trades_from_doc_data``) and the
    pipe-encoded ``lines`` array are both read; the combined list keeps only
    complete trades.
    """
    if not isinstance(data, (Mapping, list)):
        return []

    structured = [normalize_trade(raw, exchange, symbol) for raw in extract_raw_trades_from_doc_data(data)]

    lines = data.get(LINES_KEY) if isinstance(data, Mapping) else None
    encoded: list[Trade] = []
    if isinstance(lines, list):
        for line in lines:
            trade = parse_trade_line(line, exchange, symbol)
            if trade is not None:
                encoded.append(trade)

    return [trade for trade in structured + encoded if trade.is_complete]


def parse_trade_from_doc_snap(snapshot: DocumentSnapshot, exchange: str, symbol: str) -> Trade | None:
    """Reconcile a per-trade document's fields with its pipe-encoded id.

    Field data wins when it forms a complete trade; otherwise the identifier
    (``exchange|symbol|position|entry|exit``) is used if it decodes to one.
    """
    from_data = normalize_trade(snapshot.data or {}, exchange, symbol)
    if from_data.is_complete:
        return from_data

    identifier = snapshot.id or ""
    if LINE_SEPARATOR not in identifier:
        return None
    from_id = parse_trade_line(identifier, exchange, symbol, numeric=False)
    if from_id is not None and from_id.is_complete:
        return from_id
    return None


def extract_raw_trades_from_doc_data(data: Any) -> list[Any]:
    if isinstance(data, list):
        return list(data)
    if not isinstance(data, Mapping):
        return []
    for key in RECORD_LIST_KEYS:
        value = data.get(key)
        if isinstance(value, list):
            return list(value)
    values = list(data.values())
    if all(isinstance(value, (Mapping, list)) for value in values):
        return values
    return []


def parse_raw_trade_from_doc_snap(snapshot: DocumentSnapshot) -> dict[str, Any]:
    data = snapshot.data if isinstance(snapshot.data, Mapping) else {}
    return {"id": snapshot.id, **data}


def _is_blank(value: Any) -> bool:
    return isinstance(value, (str, bool, int, float)) and not value


def _numeric_or_none(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _line_number(text: str) -> int | float | str:
    if "_" in text:
        return text
    try:
        return int(text)
    except ValueError:
        pass
    try:
        value = float(text)
    except ValueError:
        return text
    return value if math.isfinite(value) else text
