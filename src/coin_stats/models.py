from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Mapping, Union

RawRecord = Union[Mapping[str, Any], str]


@dataclass(frozen=True)
class Trade:
    exchange: str
    symbol: str
    position: str
    entry_timestamp_s: int | None
    close_timestamp_s: int | None
    real_pnl: float | None = None
    real_net_pnl: float | None = None
    close_reason: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.position) and (
            self.entry_timestamp_s is not None and self.close_timestamp_s is not None
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class LookbackWindow(Enum):
    ONE_DAY = ("1d", "1D", 1 * 24 * 60 * 60)
    SEVEN_DAYS = ("7d", "7D", 7 * 24 * 60 * 60)
    THIRTY_DAYS = ("30d", "30D", 30 * 24 * 60 * 60)
    ONE_YEAR = ("1y", "1Y", 365 * 24 * 60 * 60)

    def __init__(self, key: str, label: str, seconds: int) -> None:
        self.key = key
        self.label = label
        self.seconds = seconds

    @classmethod
    def from_key(cls, key: str) -> "LookbackWindow":
        text = str(key).strip().lower()
        for window in cls:
            if window.key == text:
                return window
        valid = ", ".join(window.key for window in cls)
        raise ValueError(f"Unknown lookback window: {key!r} (expected one of {valid})")

    def bounds(self, now: int) -> tuple[int, int]:
        return now - self.seconds, now

    def contains(self, timestamp: int | None, now: int) -> bool:
        if timestamp is None:
            return False
        start, end = self.bounds(now)
        return start <= timestamp <= end


DEFAULT_LOOKBACK = LookbackWindow.SEVEN_DAYS


@dataclass(frozen=True)
class EquityPoint:
    close_timestamp_s: int
    pnl: float


@dataclass(frozen=True)
class EquityMetrics:
    starting_balance: float
    min_equity: float
    final_equity: float
    drawdown_fraction: float | None
    profit_factor: float
    total_profits: float
    total_losses: float
    trade_count: int

    @property
    def profit_factor_display(self) -> str:
        if math.isinf(self.profit_factor):
            return "inf"
        return f"{self.profit_factor:.2f}"


@dataclass(frozen=True)
class WinLoss:
    wins: int
    losses: int

    @property
    def win_rate(self) -> float | None:
        decided = self.wins + self.losses
        if not decided:
            return None
        return self.wins / decided


@dataclass(frozen=True)
class MetricsResult:
    lookback: LookbackWindow
    equity: EquityMetrics
    win_loss: WinLoss
    pnl_by_symbol: dict[str, float] = field(default_factory=dict)

    @property
    def total_pnl(self) -> float:
        return sum(self.pnl_by_symbol.values())
