from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from coin_stats.config.app_config import AppConfig, load_runtime_config, parse_symbols
from coin_stats.metrics.performance import compute_metrics_summary, metrics_payload
from coin_stats.models import LookbackWindow, MetricsResult, Trade
from coin_stats.service import TradeRetrievalService, build_service, gather_trades_by_symbol
from coin_stats.storage.document_store import StoreConnectionError, StoreError


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main(argv: list[str] | None = None, service: TradeRetrievalService | None = None) -> int:
    parser = argparse.ArgumentParser(description="Inspect stored trades and performance metrics.")
    parser.add_argument("--config", type=Path, default=None, help="Path to app.toml.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    trades_parser = subparsers.add_parser("trades", help="List trades for one symbol.")
    trades_parser.add_argument("--exchange", type=str, default=None, help="Exchange name (default from config).")
    trades_parser.add_argument("--symbol", type=str, default="BTCUSDT", help="Symbol, e.g. BTCUSDT.")
    trades_parser.add_argument("--raw", action="store_true", help="Print stored records without normalization.")
    trades_parser.add_argument("--json", action="store_true", help="Print the JSON payload.")

    metrics_parser = subparsers.add_parser("metrics", help="Drawdown, profit factor, win rate and P&L.")
    metrics_parser.add_argument("--exchange", type=str, default=None, help="Exchange name (default from config).")
    metrics_parser.add_argument("--symbols", type=str, default=None, help="Comma-separated symbols.")
    metrics_parser.add_argument("--range", dest="lookback", type=str, default=None, help="1d, 7d, 30d or 1y.")
    metrics_parser.add_argument("--starting-balance", type=float, default=None, help="Equity walk start.")
    metrics_parser.add_argument("--json", action="store_true", help="Print the JSON payload.")

    subparsers.add_parser("serve", help="Run the HTTP API.")

    args = parser.parse_args(argv)
    app_config = load_runtime_config(args.config)
    setup_logging(app_config.app.log_level)

    if args.command == "serve":
        from coin_stats.web.app import main as serve

        serve(app_config)
        return 0

    try:
        service = service or build_service(app_config.store)
        if args.command == "trades":
            return _run_trades(args, app_config, service)
        return _run_metrics(args, app_config, service)
    except StoreConnectionError as exc:
        print(f"Store unavailable: {exc}", file=sys.stderr)
        return 1
    except StoreError as exc:
        print(f"Store read failed: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2


def _run_trades(args: argparse.Namespace, app_config: AppConfig, service: TradeRetrievalService) -> int:
    exchange = args.exchange or app_config.metrics.exchange
    fetch = service.fetch_raw_trades if args.raw else service.fetch_trades
    result = fetch(exchange, args.symbol)
    payload = result.to_payload()

    if args.json:
        print(json.dumps(payload, indent=2, sort_keys=True, default=str))
        return 0

    if not result.trades:
        attempted = payload["debug"].get("attempted", {})
        print("No trades found.")
        print(f"Tried: {', '.join(attempted.get('old_doc_paths', []))}", file=sys.stderr)
        print(f"Tried collection: {attempted.get('new_collection')}", file=sys.stderr)
        roots = payload["debug"].get("root_collections")
        print(f"Root collections: {', '.join(roots) if roots is not None else 'unavailable'}", file=sys.stderr)
        if payload["debug"].get("note"):
            print(payload["debug"]["note"], file=sys.stderr)
        return 0

    print(f"source: {result.provenance.used_path}", file=sys.stderr)
    if args.raw:
        for record in result.trades:
            print(json.dumps(record, sort_keys=True, default=str))
        return 0

    print("exchange symbol position entry close real_pnl real_net_pnl close_reason")
    for trade in result.trades:
        print(_format_trade(trade))
    return 0


def _run_metrics(args: argparse.Namespace, app_config: AppConfig, service: TradeRetrievalService) -> int:
    settings = app_config.metrics
    exchange = args.exchange or settings.exchange
    symbols = parse_symbols(args.symbols, settings.symbols)
    lookback = LookbackWindow.from_key(args.lookback) if args.lookback else settings.lookback
    starting_balance = args.starting_balance if args.starting_balance is not None else settings.starting_balance

    trades_by_symbol = asyncio.run(gather_trades_by_symbol(service, exchange, symbols))
    raw_by_symbol = asyncio.run(gather_trades_by_symbol(service, exchange, symbols, raw=True))
    result = compute_metrics_summary(
        trades_by_symbol,
        lookback,
        starting_balance=starting_balance,
        equity_records=raw_by_symbol,
    )

    if args.json:
        print(json.dumps(metrics_payload(result), indent=2, sort_keys=True))
        return 0

    for line in _format_metrics(result):
        print(line)
    return 0


def _format_metrics(result: MetricsResult) -> list[str]:
    equity = result.equity
    lines = [f"range {result.lookback.label}"]
    if equity.trade_count == 0:
        lines.append("max_drawdown na profit_factor na (no trades with close time and P&L)")
    else:
        drawdown = "na" if equity.drawdown_fraction is None else f"{equity.drawdown_fraction * 100:.2f}%"
        lines.append(f"max_drawdown {drawdown} profit_factor {equity.profit_factor_display}")
    win_rate = result.win_loss.win_rate
    rate = "na" if win_rate is None else f"{win_rate * 100:.1f}%"
    lines.append(f"wins {result.win_loss.wins} losses {result.win_loss.losses} win_rate {rate}")
    for symbol, pnl in result.pnl_by_symbol.items():
        lines.append(f"{symbol} {pnl:.6g}")
    lines.append(f"total {result.total_pnl:.6g}")
    return lines


def _format_trade(trade: Trade) -> str:
    return (
        f"{trade.exchange} {trade.symbol} {trade.position} "
        f"{trade.entry_timestamp_s} {trade.close_timestamp_s} "
        f"{_format_metric(trade.real_pnl)} {_format_metric(trade.real_net_pnl)} "
        f"{trade.close_reason or '-'}"
    )


def _format_metric(value: float | None) -> str:
    return "na" if value is None else f"{value:.6g}"


if __name__ == "__main__":
    raise SystemExit(main())
