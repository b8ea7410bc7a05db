"""Exponential moving average and MACD."""

from __future__ import annotations

from screener.domain.models import MacdValue


class ExponentialMovingAverage:
    """EMA with multiplier 2/(period+1), seeded with the first input."""

    def __init__(self, period: int) -> None:
        if period <= 0:
            raise ValueError("period must be positive")
        self.period = period
        self.multiplier = 2.0 / (period + 1)
        self._current: float | None = None

    def next(self, value: float) -> float:
        if self._current is None:
            self._current = float(value)
        else:
            self._current = self.multiplier * value + (1.0 - self.multiplier) * self._current
        return self._current

    def reset(self) -> None:
        self._current = None


class MovingAverageConvergenceDivergence:
    """MACD line, its signal EMA and the histogram between them."""

    def __init__(self, fast_period: int = 12, slow_period: int = 26, signal_period: int = 9) -> None:
        if fast_period >= slow_period:
            raise ValueError("fast_period must be less than slow_period")
        self._fast = ExponentialMovingAverage(fast_period)
        self._slow = ExponentialMovingAverage(slow_period)
        self._signal = ExponentialMovingAverage(signal_period)

    def next(self, close: float) -> MacdValue:
        macd = self._fast.next(close) - self._slow.next(close)
        signal = self._signal.next(macd)
        return MacdValue(macd=macd, signal=signal, histogram=macd - signal)

    def reset(self) -> None:
        self._fast.reset()
        self._slow.reset()
        self._signal.reset()
