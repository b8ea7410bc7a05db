"""Core screening domain models."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import pandas as pd


class PriorityTier(StrEnum):
    """Refresh priority classes."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def default_interval_seconds(self) -> int:
        return DEFAULT_TIER_INTERVALS[self]


DEFAULT_TIER_INTERVALS: dict[PriorityTier, int] = {
    PriorityTier.HIGH: 60,
    PriorityTier.MEDIUM: 300,
    PriorityTier.LOW: 900,
}

TIER_ORDER = (PriorityTier.HIGH, PriorityTier.MEDIUM, PriorityTier.LOW)


@dataclass(frozen=True)
class Bar:
    """One OHLCV observation for a symbol."""

    symbol: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def to_record(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass(frozen=True)
class TickerMeta:
    """Ticker universe row as reported by the provider."""

    symbol: str
    name: str = ""
    exchange: str = ""
    last_sale: str | None = None
    net_change: str | None = None
    pct_change: str | None = None
    market_cap: str | None = None
    country: str | None = None
    ipo_year: str | None = None
    volume: str | None = None
    sector: str | None = None
    industry: str | None = None


@dataclass(frozen=True)
class MacdValue:
    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class BollingerValue:
    upper: float
    middle: float
    lower: float
    bandwidth: float
    percent_b: float


@dataclass(frozen=True)
class StochasticValue:
    k: float
    d: float


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values valid at one bar; None means still warming up."""

    symbol: str
    timestamp: datetime
    close: float
    sma_20: float | None = None
    sma_50: float | None = None
    rsi_14: float | None = None
    macd: MacdValue | None = None
    bollinger: BollingerValue | None = None
    stochastic: StochasticValue | None = None
    cci_20: float | None = None
    atr_14: float | None = None

    def to_record(self) -> dict[str, Any]:
        """Flatten into a JSON-friendly mapping."""
        macd = self.macd
        bands = self.bollinger
        stoch = self.stochastic
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp.isoformat(),
            "close": self.close,
            "sma_20": self.sma_20,
            "sma_50": self.sma_50,
            "rsi_14": self.rsi_14,
            "macd": macd.macd if macd else None,
            "macd_signal": macd.signal if macd else None,
            "macd_histogram": macd.histogram if macd else None,
            "bb_upper": bands.upper if bands else None,
            "bb_middle": bands.middle if bands else None,
            "bb_lower": bands.lower if bands else None,
            "bb_bandwidth": bands.bandwidth if bands else None,
            "bb_percent_b": bands.percent_b if bands else None,
            "stoch_k": stoch.k if stoch else None,
            "stoch_d": stoch.d if stoch else None,
            "cci_20": self.cci_20,
            "atr_14": self.atr_14,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> IndicatorSnapshot:
        """Rebuild a snapshot from `to_record` output."""
        macd = None
        if record.get("macd") is not None:
            macd = MacdValue(
                macd=float(record["macd"]),
                signal=float(record["macd_signal"]),
                histogram=float(record["macd_histogram"]),
            )
        bands = None
        if record.get("bb_upper") is not None:
            bands = BollingerValue(
                upper=float(record["bb_upper"]),
                middle=float(record["bb_middle"]),
                lower=float(record["bb_lower"]),
                bandwidth=float(record["bb_bandwidth"]),
                percent_b=float(record["bb_percent_b"]),
            )
        stoch = None
        if record.get("stoch_k") is not None:
            stoch = StochasticValue(k=float(record["stoch_k"]), d=float(record["stoch_d"]))
        return cls(
            symbol=str(record["symbol"]),
            timestamp=parse_timestamp(str(record["timestamp"])),
            close=float(record["close"]),
            sma_20=_optional_float(record.get("sma_20")),
            sma_50=_optional_float(record.get("sma_50")),
            rsi_14=_optional_float(record.get("rsi_14")),
            macd=macd,
            bollinger=bands,
            stochastic=stoch,
            cci_20=_optional_float(record.get("cci_20")),
            atr_14=_optional_float(record.get("atr_14")),
        )


@dataclass(frozen=True)
class SymbolRecord:
    """Scheduling state of one tracked symbol."""

    symbol: str
    tier: PriorityTier = PriorityTier.LOW
    interval_seconds: int = DEFAULT_TIER_INTERVALS[PriorityTier.LOW]
    last_update: datetime | None = None
    is_active: bool = True
    delisting_reason: str | None = None
    last_error_at: datetime | None = None
    last_error_message: str | None = None
    name: str = ""
    exchange: str = ""
    sector: str | None = None
    industry: str | None = None
    market_cap: str | None = None

    def is_due(self, now: datetime) -> bool:
        """Return true when the tier interval has elapsed or no update exists yet."""
        if self.last_update is None:
            return True
        elapsed = (now - self.last_update).total_seconds()
        return elapsed >= self.interval_seconds


@dataclass(frozen=True)
class TierCounts:
    """Per-tier symbol counts used by status output."""

    tier: PriorityTier
    interval_seconds: int
    total: int
    due: int
    symbols: list[str] = field(default_factory=list)


class AlertCondition(StrEnum):
    PRICE_ABOVE = "price_above"
    PRICE_BELOW = "price_below"
    RSI_ABOVE = "rsi_above"
    RSI_BELOW = "rsi_below"

    @property
    def uses_rsi(self) -> bool:
        return self in (AlertCondition.RSI_ABOVE, AlertCondition.RSI_BELOW)


@dataclass(frozen=True)
class Alert:
    """A one-shot threshold alert on a symbol's close or RSI."""

    alert_id: int
    owner: str
    symbol: str
    condition: AlertCondition
    value: float
    is_active: bool = True
    created_at: datetime | None = None


@dataclass(frozen=True)
class AlertTrigger:
    alert_id: int
    symbol: str
    triggered_at: datetime
    trigger_value: float
    message: str


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO timestamp and coerce it to UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def bars_from_frame(symbol: str, frame: pd.DataFrame) -> list[Bar]:
    """Convert a normalized OHLCV frame into ascending, de-duplicated bars."""
    if frame.empty:
        return []
    index = pd.to_datetime(frame.index, utc=True)
    ordered = frame.set_axis(index).sort_index()
    ordered = ordered[~ordered.index.duplicated(keep="last")]
    bars: list[Bar] = []
    for ts, row in ordered.iterrows():
        bars.append(
            Bar(
                symbol=symbol,
                timestamp=ts.to_pydatetime(),
                open=float(row["open"]),
                high=float(row["high"]),
                low=float(row["low"]),
                close=float(row["close"]),
                volume=float(row.get("volume", 0.0)),
            )
        )
    return bars


def bars_to_frame(bars: list[Bar]) -> pd.DataFrame:
    """Build an OHLCV frame indexed by UTC timestamp."""
    frame = pd.DataFrame(
        [
            {
                "open": bar.open,
                "high": bar.high,
                "low": bar.low,
                "close": bar.close,
                "volume": bar.volume,
            }
            for bar in bars
        ],
        columns=["open", "high", "low", "close", "volume"],
    )
    frame.index = pd.DatetimeIndex([bar.timestamp for bar in bars], name="timestamp")
    return frame


def merge_latest_bar(history: list[Bar], latest: Bar) -> list[Bar]:
    """Append or replace the newest bar so the series stays strictly ascending."""
    if not history:
        return [latest]
    last = history[-1]
    if latest.timestamp > last.timestamp:
        return [*history, latest]
    if latest.timestamp == last.timestamp:
        return [*history[:-1], latest]
    return list(history)


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)
