"""Commodity channel index."""

from __future__ import annotations

from collections import deque


class CommodityChannelIndex:
    """(TP - SMA(TP)) / (factor * mean absolute deviation), TP = (H+L+C)/3."""

    def __init__(self, period: int = 20, factor: float = 0.015) -> None:
        if period <= 0:
            raise ValueError("period must be positive")
        if factor <= 0:
            raise ValueError("factor must be positive")
        self.period = period
        self.factor = factor
        self._typical_prices: deque[float] = deque(maxlen=period)

    def next(self, high: float, low: float, close: float) -> float | None:
        typical_price = (high + low + close) / 3.0
        self._typical_prices.append(typical_price)
        if len(self._typical_prices) < self.period:
            return None

        sma_tp = sum(self._typical_prices) / self.period
        mean_deviation = sum(abs(tp - sma_tp) for tp in self._typical_prices) / self.period
        if mean_deviation == 0:
            return 0.0
        return (typical_price - sma_tp) / (self.factor * mean_deviation)

    def reset(self) -> None:
        self._typical_prices.clear()
