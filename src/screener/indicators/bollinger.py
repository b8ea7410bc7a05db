"""Bollinger Bands over a rolling close window."""

from __future__ import annotations

import math
from collections import deque

from screener.domain.models import BollingerValue


class BollingerBands:
    """Mean +/- k population standard deviations of the last `period` closes."""

    def __init__(self, period: int = 20, std_dev_multiplier: float = 2.0) -> None:
        if period <= 0:
            raise ValueError("period must be positive")
        if std_dev_multiplier <= 0:
            raise ValueError("std_dev_multiplier must be positive")
        self.period = period
        self.std_dev_multiplier = std_dev_multiplier
        self._window: deque[float] = deque(maxlen=period)

    def next(self, close: float) -> BollingerValue | None:
        self._window.append(float(close))
        if len(self._window) < self.period:
            return None

        mean = sum(self._window) / self.period
        variance = sum((value - mean) ** 2 for value in self._window) / self.period
        std_dev = math.sqrt(variance)
        upper = mean + self.std_dev_multiplier * std_dev
        lower = mean - self.std_dev_multiplier * std_dev

        bandwidth = (upper - lower) / mean * 100.0 if mean != 0 else 0.0
        if upper != lower:
            percent_b = (close - lower) / (upper - lower)
        else:
            percent_b = 0.5

        return BollingerValue(
            upper=upper,
            middle=mean,
            lower=lower,
            bandwidth=bandwidth,
            percent_b=percent_b,
        )

    def reset(self) -> None:
        self._window.clear()
