from __future__ import annotations

import math
from typing import Any, Iterable, Mapping

from coin_stats.models import (
    EquityMetrics,
    EquityPoint,
    LookbackWindow,
    MetricsResult,
    Trade,
    WinLoss,
)
from coin_stats.timestamps import now_seconds, to_epoch_seconds

DEFAULT_STARTING_BALANCE = 100.0

CLOSE_TIME_KEYS = (
    "close_timestamp_s",
    "close_timestamp",
    "exit",
    "close_time",
    "timestamp",
    "entry_timestamp",
)
EQUITY_PNL_KEYS = ("real_profit_loss", "real_net_profit_loss", "real_net_pnl", "real_pnl")
WIN_RATE_PNL_KEYS = ("real_net_pnl", "real_pnl")


def equity_points(trades: Iterable[Trade | EquityPoint | Mapping[str, Any]]) -> list[EquityPoint]:
    points: list[EquityPoint] = []
    for item in trades:
        if isinstance(item, EquityPoint):
            points.append(item)
            continue
        record = _as_record(item)
        close_time = _close_seconds(record)
        if close_time is None:
            continue
        pnl = _first_number(record, EQUITY_PNL_KEYS, allow_text=True)
        if pnl is None:
            continue
        points.append(EquityPoint(close_timestamp_s=close_time, pnl=pnl))
    return points


def compute_equity_metrics(
    trades: Iterable[Trade | EquityPoint | Mapping[str, Any]],
    starting_balance: float = DEFAULT_STARTING_BALANCE,
) -> EquityMetrics:
    """Walk realized P&L in close-time order from ``starting_balance``.

    Drawdown is measured against the starting balance only, not a running peak:
    ``(min_equity - starting_balance) / starting_balance``. Profit factor is
    ``inf`` with profits and no losses, and ``0.0`` when there is neither.
    """
    ordered = sorted(equity_points(trades), key=lambda point: point.close_timestamp_s)

    equity = starting_balance
    min_equity = starting_balance
    total_profits = 0.0
    total_losses = 0.0
    for point in ordered:
        equity += point.pnl
        if equity < min_equity:
            min_equity = equity
        if point.pnl > 0:
            total_profits += point.pnl
        elif point.pnl < 0:
            total_losses += point.pnl

    drawdown = None
    if starting_balance > 0:
        drawdown = (min_equity - starting_balance) / starting_balance

    return EquityMetrics(
        starting_balance=starting_balance,
        min_equity=min_equity,
        final_equity=equity,
        drawdown_fraction=drawdown,
        profit_factor=_profit_factor(total_profits, total_losses),
        total_profits=total_profits,
        total_losses=total_losses,
        trade_count=len(ordered),
    )


def compute_win_rate(
    trades: Iterable[Trade | Mapping[str, Any]],
    lookback: LookbackWindow,
    now: int | None = None,
) -> WinLoss:
    now = now_seconds() if now is None else now
    wins = 0
    losses = 0
    for item in trades:
        record = _as_record(item)
        if not lookback.contains(to_epoch_seconds(record.get("close_timestamp_s")), now):
            continue
        pnl = _first_number(record, WIN_RATE_PNL_KEYS)
        if pnl is None:
            continue
        if pnl > 0:
            wins += 1
        elif pnl < 0:
            losses += 1
    return WinLoss(wins=wins, losses=losses)


def compute_windowed_pnl(
    trades_by_symbol: Mapping[str, Iterable[Trade | Mapping[str, Any]]],
    lookback: LookbackWindow,
    now: int | None = None,
) -> dict[str, float]:
    now = now_seconds() if now is None else now
    output: dict[str, float] = {}
    for symbol, trades in trades_by_symbol.items():
        total = 0.0
        for item in trades:
            record = _as_record(item)
            if not lookback.contains(to_epoch_seconds(record.get("close_timestamp_s")), now):
                continue
            total += _first_number(record, ("real_net_pnl",)) or 0.0
        output[symbol] = total
    return output


def compute_metrics_summary(
    trades_by_symbol: Mapping[str, Iterable[Trade | Mapping[str, Any]]],
    lookback: LookbackWindow,
    *,
    starting_balance: float = DEFAULT_STARTING_BALANCE,
    equity_records: Mapping[str, Iterable[Any]] | None = None,
    now: int | None = None,
) -> MetricsResult:
    """Combine the three metrics for one multi-symbol query.

    ``equity_records`` lets the equity walk run over raw stored records (which
    may carry ``real_profit_loss``) while win/loss and windowed P&L use the
    normalized trades.
    """
    now = now_seconds() if now is None else now
    materialized = {symbol: list(trades) for symbol, trades in trades_by_symbol.items()}
    everything = [trade for trades in materialized.values() for trade in trades]
    equity_source = everything
    if equity_records is not None:
        equity_source = [record for records in equity_records.values() for record in records]
    return MetricsResult(
        lookback=lookback,
        equity=compute_equity_metrics(equity_source, starting_balance),
        win_loss=compute_win_rate(everything, lookback, now),
        pnl_by_symbol=compute_windowed_pnl(materialized, lookback, now),
    )


def _profit_factor(total_profits: float, total_losses: float) -> float:
    if total_losses < 0:
        return total_profits / abs(total_losses)
    if total_profits > 0:
        return math.inf
    return 0.0


def _as_record(item: Trade | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(item, Trade):
        return item.to_dict()
    if isinstance(item, Mapping):
        return item
    return {}


def _close_seconds(record: Mapping[str, Any]) -> int | None:
    for key in CLOSE_TIME_KEYS:
        seconds = to_epoch_seconds(record.get(key))
        if seconds is not None:
            return seconds
    return None


def _first_number(record: Mapping[str, Any], keys: Iterable[str], *, allow_text: bool = False) -> float | None:
    for key in keys:
        value = record.get(key)
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, (int, float)):
            if math.isfinite(value):
                return float(value)
            continue
        if allow_text and isinstance(value, str) and value.strip():
            try:
                parsed = float(value)
            except ValueError:
                continue
            if math.isfinite(parsed):
                return parsed
    return None


def equity_payload(equity: EquityMetrics) -> dict[str, Any]:
    return {
        "starting_balance": equity.starting_balance,
        "min_equity": equity.min_equity,
        "final_equity": equity.final_equity,
        "max_drawdown": equity.drawdown_fraction,
        "profit_factor": None if math.isinf(equity.profit_factor) else equity.profit_factor,
        "profit_factor_display": equity.profit_factor_display,
        "trades": equity.trade_count,
    }


def win_loss_payload(win_loss: WinLoss, lookback: LookbackWindow) -> dict[str, Any]:
    return {
        "range": lookback.key,
        "wins": win_loss.wins,
        "losses": win_loss.losses,
        "win_rate": win_loss.win_rate,
    }


def pnl_payload(pnl_by_symbol: Mapping[str, float], lookback: LookbackWindow) -> dict[str, Any]:
    return {
        "range": lookback.key,
        "total": sum(pnl_by_symbol.values()),
        "symbols": [{"symbol": symbol, "pnl": pnl} for symbol, pnl in pnl_by_symbol.items()],
    }


def metrics_payload(result: MetricsResult) -> dict[str, Any]:
    return {
        "range": result.lookback.key,
        "drawdown": equity_payload(result.equity),
        "win_rate": win_loss_payload(result.win_loss, result.lookback),
        "pnl_by_symbol": pnl_payload(result.pnl_by_symbol, result.lookback),
    }
