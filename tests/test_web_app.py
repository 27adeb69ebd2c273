import pytest
from fastapi.testclient import TestClient

from coin_stats.config.app_config import load_app_config
from coin_stats.service import TradeRetrievalService
from coin_stats.storage.document_store import DATABASES_PATH, InMemoryDocumentStore
from coin_stats.web.app import app, get_config, get_service


@pytest.fixture
def app_config(tmp_path):
    return load_app_config(tmp_path / "missing.toml", env={})


@pytest.fixture
def client_for(app_config):
    def build(service):
        app.dependency_overrides[get_config] = lambda: app_config
        app.dependency_overrides[get_service] = lambda: service
        return TestClient(app)

    yield build
    app.dependency_overrides.clear()


@pytest.fixture
def client(client_for, service):
    return client_for(service)


def test_coin_stats_normalized(client):
    response = client.get("/api/coin-stats", params={"symbol": "btcusdt"})
    assert response.status_code == 200
    payload = response.json()
    assert payload["symbol"] == "BTCUSDT"
    assert payload["exchange"] == "binance"
    assert [trade["entry_timestamp_s"] for trade in payload["trades"]] == [1754500000, 1754546400, 1754548860]
    assert payload["debug"]["used_path"] == "coin-stats/binance-BTCUSDT"
    assert payload["debug"]["layout"] == "legacy_document"


def test_coin_stats_not_found_is_still_ok(client):
    response = client.get("/api/coin-stats", params={"symbol": "DOGEUSDT"})
    assert response.status_code == 200
    debug = response.json()["debug"]
    assert debug["attempted"]["new_collection"] == "binance-DOGEUSDT"
    assert "coin-stats" in debug["root_collections"]


def test_coin_stats_raw(client):
    response = client.get("/api/coin-stats/raw", params={"symbol": "ETHUSDT"})
    assert response.status_code == 200
    assert [record["id"] for record in response.json()["trades"]] == [
        "abc123",
        "binance|ETHUSDT|Short|1754400000|1754403600",
        "broken",
    ]


def test_store_collections(client):
    payload = client.get("/api/_store/collections").json()
    assert payload["root_collections"] == ["binance-BTCUSDT", "binance-ETHUSDT", "coin-stats"]
    assert set(payload["samples"]) == {"binance-BTCUSDT", "binance-ETHUSDT"}


def test_drawdown(client):
    response = client.get("/api/metrics/drawdown", params={"symbols": "BTCUSDT,ETHUSDT", "starting_balance": 200})
    assert response.status_code == 200
    payload = response.json()
    assert payload["trades"] == 2
    assert payload["starting_balance"] == 200
    assert payload["min_equity"] == 196
    assert payload["profit_factor"] == pytest.approx(2.75)


def test_windowed_metrics_shape(client):
    win_rate = client.get("/api/metrics/win-rate", params={"symbols": "BTCUSDT", "range": "1Y"}).json()
    assert win_rate["range"] == "1y"
    assert set(win_rate) == {"range", "wins", "losses", "win_rate"}

    pnl = client.get("/api/metrics/pnl-by-symbol", params={"symbols": "ethusdt,btcusdt"}).json()
    assert pnl["range"] == "7d"
    assert [item["symbol"] for item in pnl["symbols"]] == ["ETHUSDT", "BTCUSDT"]


def test_summary(client):
    payload = client.get("/api/metrics/summary", params={"symbols": "BTCUSDT,ETHUSDT", "range": "30d"}).json()
    assert payload["range"] == "30d"
    assert payload["drawdown"]["final_equity"] == 107
    assert set(payload["pnl_by_symbol"]) == {"range", "total", "symbols"}


@pytest.mark.parametrize("path", ["/api/metrics/win-rate", "/api/metrics/pnl-by-symbol", "/api/metrics/summary"])
def test_unknown_range_is_rejected(client, path):
    response = client.get(path, params={"range": "2w"})
    assert response.status_code == 400


def test_store_outage_returns_error_body(client_for):
    client = client_for(TradeRetrievalService(InMemoryDocumentStore({}, fail_connection=True)))
    response = client.get("/api/coin-stats")
    assert response.status_code == 500
    assert response.json() == {"error": "In-memory store configured as unreachable"}

    response = client.get("/api/metrics/summary", params={"symbols": "BTCUSDT"})
    assert response.status_code == 500
    assert "error" in response.json()


def test_failed_root_listing_keeps_not_found_ok(client_for):
    client = client_for(TradeRetrievalService(InMemoryDocumentStore({}, fail_reads={""})))
    response = client.get("/api/coin-stats", params={"symbol": "SOLUSDT"})
    assert response.status_code == 200
    debug = response.json()["debug"]
    assert debug["root_collections"] is None
    assert "Root collection listing failed" in debug["note"]

    sample = client.get("/api/_store/collections").json()
    assert sample["root_collections"] is None
    assert sample["error"] == "Read failed for "


def test_store_databases(client):
    payload = client.get("/api/_store/databases").json()
    assert payload["project_id"] == "local"
    assert payload["current_database_id"] == "memory"
    assert [database["database_id"] for database in payload["databases"]] == ["memory"]


def test_store_read_failure_returns_error_body(client_for):
    client = client_for(TradeRetrievalService(InMemoryDocumentStore({}, fail_reads={DATABASES_PATH})))
    response = client.get("/api/_store/databases")
    assert response.status_code == 500
    assert response.json() == {"error": "Read failed for <databases>"}
