from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coin_stats.config.app_config import AppConfig, load_runtime_config, parse_symbols
from coin_stats.metrics.performance import (
    compute_equity_metrics,
    compute_metrics_summary,
    compute_win_rate,
    compute_windowed_pnl,
    equity_payload,
    metrics_payload,
    pnl_payload,
    win_loss_payload,
)
from coin_stats.models import LookbackWindow
from coin_stats.service import TradeRetrievalService, build_service, gather_trades_by_symbol
from coin_stats.storage.document_store import StoreError

logger = logging.getLogger(__name__)

app = FastAPI(title="Coin Stats")
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["GET"], allow_headers=["*"])


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    return load_runtime_config()


@lru_cache(maxsize=1)
def get_service() -> TradeRetrievalService:
    return build_service(get_config().store)


@app.middleware("http")
async def _log_requests(request: Request, call_next):
    logger.info("%s %s", request.method, request.url.path)
    return await call_next(request)


@app.exception_handler(StoreError)
async def _store_failure(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Store failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.get("/api/coin-stats")
def coin_stats_api(
    exchange: str | None = None,
    symbol: str = "BTCUSDT",
    config: AppConfig = Depends(get_config),
    service: TradeRetrievalService = Depends(get_service),
) -> dict[str, Any]:
    result = service.fetch_trades(exchange or config.metrics.exchange, symbol)
    return result.to_payload()


@app.get("/api/coin-stats/raw")
def coin_stats_raw_api(
    exchange: str | None = None,
    symbol: str = "BTCUSDT",
    config: AppConfig = Depends(get_config),
    service: TradeRetrievalService = Depends(get_service),
) -> dict[str, Any]:
    result = service.fetch_raw_trades(exchange or config.metrics.exchange, symbol)
    return result.to_payload()


@app.get("/api/_store/collections")
def store_collections_api(
    exchange: str | None = None,
    config: AppConfig = Depends(get_config),
    service: TradeRetrievalService = Depends(get_service),
) -> dict[str, Any]:
    prefix = f"{exchange or config.metrics.exchange}-"
    return service.sample_collections(prefix)


@app.get("/api/_store/databases")
def store_databases_api(service: TradeRetrievalService = Depends(get_service)) -> dict[str, Any]:
    return service.describe_databases()


@app.get("/api/metrics/drawdown")
async def drawdown_api(
    exchange: str | None = None,
    symbols: str | None = None,
    starting_balance: float | None = None,
    config: AppConfig = Depends(get_config),
    service: TradeRetrievalService = Depends(get_service),
) -> dict[str, Any]:
    settings = config.metrics
    raw_by_symbol = await gather_trades_by_symbol(
        service,
        exchange or settings.exchange,
        parse_symbols(symbols, settings.symbols),
        raw=True,
    )
    records = [record for items in raw_by_symbol.values() for record in items]
    balance = settings.starting_balance if starting_balance is None else starting_balance
    return equity_payload(compute_equity_metrics(records, balance))


@app.get("/api/metrics/win-rate")
async def win_rate_api(
    exchange: str | None = None,
    symbols: str | None = None,
    range_key: str | None = Query(None, alias="range"),
    config: AppConfig = Depends(get_config),
    service: TradeRetrievalService = Depends(get_service),
) -> dict[str, Any]:
    settings = config.metrics
    lookback = _lookback(range_key, settings.lookback)
    trades_by_symbol = await gather_trades_by_symbol(
        service,
        exchange or settings.exchange,
        parse_symbols(symbols, settings.symbols),
    )
    trades = [trade for items in trades_by_symbol.values() for trade in items]
    return win_loss_payload(compute_win_rate(trades, lookback), lookback)


@app.get("/api/metrics/pnl-by-symbol")
async def pnl_by_symbol_api(
    exchange: str | None = None,
    symbols: str | None = None,
    range_key: str | None = Query(None, alias="range"),
    config: AppConfig = Depends(get_config),
    service: TradeRetrievalService = Depends(get_service),
) -> dict[str, Any]:
    settings = config.metrics
    lookback = _lookback(range_key, settings.lookback)
    trades_by_symbol = await gather_trades_by_symbol(
        service,
        exchange or settings.exchange,
        parse_symbols(symbols, settings.symbols),
    )
    return pnl_payload(compute_windowed_pnl(trades_by_symbol, lookback), lookback)


@app.get("/api/metrics/summary")
async def metrics_summary_api(
    exchange: str | None = None,
    symbols: str | None = None,
    range_key: str | None = Query(None, alias="range"),
    starting_balance: float | None = None,
    config: AppConfig = Depends(get_config),
    service: TradeRetrievalService = Depends(get_service),
) -> dict[str, Any]:
    settings = config.metrics
    lookback = _lookback(range_key, settings.lookback)
    resolved_exchange = exchange or settings.exchange
    resolved_symbols = parse_symbols(symbols, settings.symbols)
    trades_by_symbol, raw_by_symbol = await asyncio.gather(
        gather_trades_by_symbol(service, resolved_exchange, resolved_symbols),
        gather_trades_by_symbol(service, resolved_exchange, resolved_symbols, raw=True),
    )
    result = compute_metrics_summary(
        trades_by_symbol,
        lookback,
        starting_balance=settings.starting_balance if starting_balance is None else starting_balance,
        equity_records=raw_by_symbol,
    )
    return metrics_payload(result)


def _lookback(value: str | None, default: LookbackWindow) -> LookbackWindow:
    if not value:
        return default
    try:
        return LookbackWindow.from_key(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def main(app_config: AppConfig | None = None) -> None:
    import uvicorn

    app_config = app_config or get_config()
    uvicorn.run(
        "coin_stats.web.app:app",
        host=app_config.app.host,
        port=app_config.app.port,
        reload=app_config.app.reload,
        log_level=app_config.app.log_level.lower(),
    )


if __name__ == "__main__":
    main()
