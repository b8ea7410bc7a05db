"""Keyed streaming indicator engine."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

import pandas as pd

from screener.domain.models import Bar, IndicatorSnapshot, bars_from_frame

from .atr import AverageTrueRange
from .bollinger import BollingerBands
from .cci import CommodityChannelIndex
from .ema import MovingAverageConvergenceDivergence
from .rsi import WilderRSI
from .sma import SimpleMovingAverage
from .stochastic import StochasticOscillator


@dataclass
class IndicatorSet:
    """All streaming calculators for a single symbol."""

    sma_20: SimpleMovingAverage = field(default_factory=lambda: SimpleMovingAverage(20))
    sma_50: SimpleMovingAverage = field(default_factory=lambda: SimpleMovingAverage(50))
    rsi_14: WilderRSI = field(default_factory=lambda: WilderRSI(14))
    macd: MovingAverageConvergenceDivergence = field(
        default_factory=MovingAverageConvergenceDivergence
    )
    bollinger: BollingerBands = field(default_factory=lambda: BollingerBands(20, 2.0))
    stochastic: StochasticOscillator = field(default_factory=lambda: StochasticOscillator(14, 3))
    cci_20: CommodityChannelIndex = field(default_factory=lambda: CommodityChannelIndex(20, 0.015))
    atr_14: AverageTrueRange = field(default_factory=lambda: AverageTrueRange(14))
    last_timestamp: datetime | None = None

    def update(self, bar: Bar) -> IndicatorSnapshot:
        if self.last_timestamp is not None and bar.timestamp <= self.last_timestamp:
            raise ValueError(
                f"Bars for {bar.symbol} must be strictly ascending: "
                f"{bar.timestamp.isoformat()} is not after {self.last_timestamp.isoformat()}"
            )
        self.last_timestamp = bar.timestamp
        return IndicatorSnapshot(
            symbol=bar.symbol,
            timestamp=bar.timestamp,
            close=bar.close,
            sma_20=self.sma_20.next(bar.close),
            sma_50=self.sma_50.next(bar.close),
            rsi_14=self.rsi_14.next(bar.close),
            macd=self.macd.next(bar.close),
            bollinger=self.bollinger.next(bar.close),
            stochastic=self.stochastic.next(bar.high, bar.low, bar.close),
            cci_20=self.cci_20.next(bar.high, bar.low, bar.close),
            atr_14=self.atr_14.next(bar.high, bar.low, bar.close),
        )


class IndicatorEngine:
    """Turns per-symbol bar streams into synchronized indicator snapshots.

    Each symbol gets its own ``IndicatorSet``; feeding bars for one symbol never
    touches another symbol's state. The engine is not thread-safe and is meant
    to be driven from a single thread (the scheduler's event loop).
    """

    def __init__(self) -> None:
        self._sets: dict[str, IndicatorSet] = {}

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._sets

    def reset(self, symbol: str | None = None) -> None:
        if symbol is None:
            self._sets.clear()
        else:
            self._sets.pop(symbol, None)

    def next(self, bar: Bar) -> IndicatorSnapshot:
        indicator_set = self._sets.get(bar.symbol)
        if indicator_set is None:
            indicator_set = IndicatorSet()
            self._sets[bar.symbol] = indicator_set
        return indicator_set.update(bar)

    def calculate(self, symbol: str, bars: Iterable[Bar]) -> list[IndicatorSnapshot]:
        """Recompute the full series for `symbol` from scratch."""
        self.reset(symbol)
        snapshots: list[IndicatorSnapshot] = []
        for bar in bars:
            if bar.symbol != symbol:
                raise ValueError(f"Bar for {bar.symbol} passed to calculate({symbol!r})")
            snapshots.append(self.next(bar))
        return snapshots

    def calculate_frame(self, symbol: str, frame: pd.DataFrame) -> pd.DataFrame:
        """Run `calculate` over a normalized OHLCV frame and return flattened values."""
        snapshots = self.calculate(symbol, bars_from_frame(symbol, frame))
        records = [snapshot.to_record() for snapshot in snapshots]
        if not records:
            return pd.DataFrame()
        result = pd.DataFrame.from_records(records)
        result["timestamp"] = pd.to_datetime(result["timestamp"], utc=True)
        return result.set_index("timestamp").drop(columns=["symbol"])
