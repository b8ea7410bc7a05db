"""Simple moving average."""

from __future__ import annotations

from collections import deque


class SimpleMovingAverage:
    """Arithmetic mean of the last `period` inputs."""

    def __init__(self, period: int) -> None:
        if period <= 0:
            raise ValueError("period must be positive")
        self.period = period
        self._window: deque[float] = deque(maxlen=period)

    def next(self, value: float) -> float | None:
        self._window.append(float(value))
        if len(self._window) < self.period:
            return None
        return sum(self._window) / self.period

    def reset(self) -> None:
        self._window.clear()
