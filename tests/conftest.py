import pytest

from coin_stats.service import TradeRetrievalService
from coin_stats.storage.document_store import InMemoryDocumentStore

NOW = 1_754_600_000


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def legacy_collections():
    """A legacy per-symbol document mixing structured trades with encoded lines."""
    return {
        "coin-stats": {
            "binance-BTCUSDT": {
                "trades": [
                    {
                        "position": "Long",
                        "entry_timestamp": 1754548860,
                        "close_timestamp": "1754549760000",
                        "real_pnl": 12.5,
                        "real_net_pnl": 11.0,
                        "close_reason": "tp",
                    },
                    {
                        "side": "short",
                        "open_time": "2025-08-07T06:00:00Z",
                        "close_time": "2025-08-07T07:00:00Z",
                        "real_net_pnl": "not-a-number",
                    },
                    {"position": "long", "entry": 1754540000},
                ],
                "lines": [
                    "binance|BTCUSDT|Short|1754500000|1754503600",
                    "binance|BTCUSDT|Long",
                ],
            },
        },
        "binance-BTCUSDT": {
            "ignored": {"position": "long", "entry_timestamp": 1, "close_timestamp": 2},
        },
    }


@pytest.fixture
def symbol_collections():
    """The current layout: one collection per symbol, one document per trade."""
    return {
        "binance-ETHUSDT": {
            "abc123": {
                "position": "long",
                "entry_timestamp": 1754500000,
                "close_timestamp": 1754510000,
                "real_net_pnl": -4.0,
            },
            "binance|ETHUSDT|Short|1754400000|1754403600": {"real_net_pnl": 3.0},
            "broken": {"position": "long"},
        },
    }


@pytest.fixture
def memory_store(legacy_collections, symbol_collections):
    return InMemoryDocumentStore({**legacy_collections, **symbol_collections})


@pytest.fixture
def service(memory_store):
    return TradeRetrievalService(memory_store)
