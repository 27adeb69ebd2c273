from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python <3.11
    import tomli as tomllib

from coin_stats.models import DEFAULT_LOOKBACK, LookbackWindow

DEFAULT_CONFIG_PATH = Path("config/app.toml")
DEFAULT_SYMBOLS = (
    "ADAUSDT",
    "BTCUSDT",
    "ETHUSDT",
    "SOLUSDT",
    "XRPUSDT",
    "DOGEUSDT",
    "PEPEUSDT",
    "TRUMPUSDT",
)


@dataclass(frozen=True)
class AppSettings:
    host: str
    port: int
    reload: bool
    log_level: str
    env_path: Path


@dataclass(frozen=True)
class StoreSettings:
    credentials_path: Path | None
    project_id: str | None
    database_id: str
    legacy_collection: str
    page_size: int
    fixture_path: Path | None


@dataclass(frozen=True)
class MetricsSettings:
    exchange: str
    symbols: tuple[str, ...]
    starting_balance: float
    lookback: LookbackWindow


@dataclass(frozen=True)
class AppConfig:
    app: AppSettings
    store: StoreSettings
    metrics: MetricsSettings


def load_dotenv(path: Path) -> dict[str, str]:
    env: dict[str, str] = {}
    if not path.exists():
        return env

    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        env[key.strip()] = value.strip().strip("\"").strip("'")
    return env


def load_runtime_config(path: Path | None = None) -> AppConfig:
    base = load_app_config(path)
    env = {**load_dotenv(base.app.env_path), **os.environ}
    return load_app_config(path, env=env)


def load_app_config(path: Path | None = None, env: Mapping[str, str] | None = None) -> AppConfig:
    env = os.environ if env is None else env
    config_path = Path(path or env.get("COIN_STATS_CONFIG") or DEFAULT_CONFIG_PATH)
    raw: Mapping[str, Any] = {}
    if config_path.exists():
        raw = tomllib.loads(config_path.read_text(encoding="utf-8"))

    app_raw = _section(raw, "app")
    store_raw = _section(raw, "store")
    metrics_raw = _section(raw, "metrics")

    app = AppSettings(
        host=str(app_raw.get("host", "127.0.0.1")),
        port=int(env.get("PORT") or app_raw.get("port", 4000)),
        reload=bool(app_raw.get("reload", False)),
        log_level=str(env.get("COIN_STATS_LOG_LEVEL") or app_raw.get("log_level", "INFO")).upper(),
        env_path=Path(app_raw.get("env_path", ".env")),
    )

    store = StoreSettings(
        credentials_path=_path_or_none(env.get("FIREBASE_CREDENTIALS") or store_raw.get("credentials_path")),
        project_id=_str_or_none(env.get("FIRESTORE_PROJECT_ID") or store_raw.get("project_id")),
        database_id=str(env.get("FIRESTORE_DB_ID") or store_raw.get("database_id", "coin-stats")),
        legacy_collection=str(store_raw.get("legacy_collection", "coin-stats")),
        page_size=_positive_int(store_raw.get("page_size"), 1000),
        fixture_path=_path_or_none(env.get("COIN_STATS_FIXTURE") or store_raw.get("fixture_path")),
    )

    metrics = MetricsSettings(
        exchange=str(metrics_raw.get("exchange", "binance")).strip() or "binance",
        symbols=_symbol_list(metrics_raw.get("symbols")) or DEFAULT_SYMBOLS,
        starting_balance=float(metrics_raw.get("starting_balance", 100.0)),
        lookback=LookbackWindow.from_key(metrics_raw.get("lookback", DEFAULT_LOOKBACK.key)),
    )

    return AppConfig(app=app, store=store, metrics=metrics)


def parse_symbols(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if not value:
        return default
    symbols = tuple(item.strip().upper() for item in value.split(",") if item.strip())
    return symbols or default


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if isinstance(value, Mapping):
        return value
    return {}


def _positive_int(value: Any, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _path_or_none(value: Any) -> Path | None:
    if value in (None, ""):
        return None
    return Path(str(value))


def _str_or_none(value: Any) -> str | None:
    if value in (None, ""):
        return None
    return str(value)


def _symbol_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item).strip().upper() for item in value if str(item).strip())
