"""Average true range with Wilder smoothing."""

from __future__ import annotations

from collections.abc import Iterable


class AverageTrueRange:
    """First value is the mean of `period` true ranges, then (atr*(n-1) + tr)/n."""

    def __init__(self, period: int = 14) -> None:
        if period <= 0:
            raise ValueError("period must be positive")
        self.period = period
        self._previous_close: float | None = None
        self._initial_ranges: list[float] = []
        self._atr: float | None = None

    def next(self, high: float, low: float, close: float) -> float | None:
        previous_close = self._previous_close
        self._previous_close = float(close)
        if previous_close is None:
            return None

        true_range = max(
            high - low,
            abs(high - previous_close),
            abs(low - previous_close),
        )
        if self._atr is None:
            self._initial_ranges.append(true_range)
            if len(self._initial_ranges) < self.period:
                return None
            self._atr = sum(self._initial_ranges) / self.period
        else:
            self._atr = (self._atr * (self.period - 1) + true_range) / self.period
        return self._atr

    def reset(self) -> None:
        self._previous_close = None
        self._initial_ranges.clear()
        self._atr = None


def volatility_percentile(current_atr: float, atr_values: Iterable[float | None]) -> float:
    """Percentage of known ATR values strictly below `current_atr` (50.0 without history)."""
    valid = [value for value in atr_values if value is not None]
    if not valid:
        return 50.0
    below = sum(1 for value in valid if value < current_atr)
    return below / len(valid) * 100.0
