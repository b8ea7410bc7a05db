"""Stochastic oscillator (%K / %D)."""

from __future__ import annotations

from collections import deque

from screener.domain.models import StochasticValue


class StochasticOscillator:
    """%K over the last `k_period` bars, %D as the mean of the last `d_period` %K."""

    def __init__(self, k_period: int = 14, d_period: int = 3) -> None:
        if k_period <= 0 or d_period <= 0:
            raise ValueError("stochastic periods must be positive")
        self.k_period = k_period
        self.d_period = d_period
        self._highs: deque[float] = deque(maxlen=k_period)
        self._lows: deque[float] = deque(maxlen=k_period)
        self._k_values: deque[float] = deque(maxlen=d_period)

    def next(self, high: float, low: float, close: float) -> StochasticValue | None:
        self._highs.append(float(high))
        self._lows.append(float(low))
        if len(self._highs) < self.k_period:
            return None

        highest_high = max(self._highs)
        lowest_low = min(self._lows)
        if highest_high != lowest_low:
            k_percent = (close - lowest_low) / (highest_high - lowest_low) * 100.0
        else:
            k_percent = 50.0

        self._k_values.append(k_percent)
        if len(self._k_values) < self.d_period:
            # %D falls back to the current %K until enough %K values exist.
            d_percent = k_percent
        else:
            d_percent = sum(self._k_values) / self.d_period
        return StochasticValue(k=k_percent, d=d_percent)

    def reset(self) -> None:
        self._highs.clear()
        self._lows.clear()
        self._k_values.clear()
