from pathlib import Path

import pytest

from coin_stats.config.app_config import (
    DEFAULT_SYMBOLS,
    load_app_config,
    load_dotenv,
    load_runtime_config,
    parse_symbols,
)
from coin_stats.models import LookbackWindow

_ENV_KEYS = (
    "COIN_STATS_CONFIG",
    "PORT",
    "COIN_STATS_LOG_LEVEL",
    "FIREBASE_CREDENTIALS",
    "FIRESTORE_PROJECT_ID",
    "FIRESTORE_DB_ID",
    "COIN_STATS_FIXTURE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_without_config_file(tmp_path):
    config = load_app_config(tmp_path / "missing.toml", env={})
    assert (config.app.host, config.app.port, config.app.log_level) == ("127.0.0.1", 4000, "INFO")
    assert config.store.database_id == "coin-stats"
    assert config.store.legacy_collection == "coin-stats"
    assert config.store.page_size == 1000
    assert config.store.credentials_path is None
    assert config.store.fixture_path is None
    assert config.metrics.exchange == "binance"
    assert config.metrics.symbols == DEFAULT_SYMBOLS
    assert config.metrics.starting_balance == 100.0
    assert config.metrics.lookback is LookbackWindow.SEVEN_DAYS


def test_toml_sections_and_env_overrides(tmp_path):
    path = tmp_path / "app.toml"
    path.write_text(
        "\n".join(
            [
                "[app]",
                "port = 8080",
                'log_level = "debug"',
                "[store]",
                'project_id = "from-file"',
                "page_size = 0",
                "[metrics]",
                'exchange = "bybit"',
                'symbols = ["btcusdt", " ethusdt "]',
                "starting_balance = 250",
                'lookback = "30D"',
            ]
        ),
        encoding="utf-8",
    )
    env = {"PORT": "9000", "FIRESTORE_DB_ID": "trades", "FIREBASE_CREDENTIALS": "creds.json"}
    config = load_app_config(path, env=env)
    assert config.app.port == 9000
    assert config.app.log_level == "DEBUG"
    assert config.store.project_id == "from-file"
    assert config.store.database_id == "trades"
    assert config.store.credentials_path == Path("creds.json")
    assert config.store.page_size == 1000
    assert config.metrics.exchange == "bybit"
    assert config.metrics.symbols == ("BTCUSDT", "ETHUSDT")
    assert config.metrics.starting_balance == 250.0
    assert config.metrics.lookback is LookbackWindow.THIRTY_DAYS


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "custom.toml"
    path.write_text('[metrics]\nexchange = "okx"\n', encoding="utf-8")
    monkeypatch.setenv("COIN_STATS_CONFIG", str(path))
    assert load_app_config().metrics.exchange == "okx"


def test_invalid_lookback_in_config(tmp_path):
    path = tmp_path / "app.toml"
    path.write_text('[metrics]\nlookback = "2w"\n', encoding="utf-8")
    with pytest.raises(ValueError):
        load_app_config(path, env={})


def test_dotenv_values_fill_missing_environment(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# comment\nFIRESTORE_PROJECT_ID='dotenv-project'\nFIRESTORE_DB_ID=\"dotenv-db\"\nnot a pair\n",
        encoding="utf-8",
    )
    assert load_dotenv(env_file) == {"FIRESTORE_PROJECT_ID": "dotenv-project", "FIRESTORE_DB_ID": "dotenv-db"}
    assert load_dotenv(tmp_path / "absent.env") == {}

    path = tmp_path / "app.toml"
    path.write_text(f'[app]\nenv_path = "{env_file.as_posix()}"\n', encoding="utf-8")
    monkeypatch.setenv("FIRESTORE_DB_ID", "real-env")
    config = load_runtime_config(path)
    assert config.store.project_id == "dotenv-project"
    assert config.store.database_id == "real-env"


def test_parse_symbols():
    assert parse_symbols("btcusdt, ethusdt,,", ("X",)) == ("BTCUSDT", "ETHUSDT")
    assert parse_symbols(None, ("X",)) == ("X",)
    assert parse_symbols(" , ", ("X",)) == ("X",)
