"""Relative strength index with Wilder smoothing.

Matches the charting-platform convention rather than a plain EMA of gains
and losses: the first average gain/loss is the simple mean of the first
`period` changes, and every later bar applies exponential smoothing with
alpha = 1/period. A zero average loss reports exactly 100.0.
"""

from __future__ import annotations


class WilderRSI:
    """Streaming RSI; returns None until `period` price changes were seen."""

    def __init__(self, period: int = 14) -> None:
        if period <= 0:
            raise ValueError("period must be positive")
        self.period = period
        self.alpha = 1.0 / period
        self.avg_gain: float | None = None
        self.avg_loss: float | None = None
        self._previous_close: float | None = None
        self._initial_gains: list[float] = []
        self._initial_losses: list[float] = []

    def next(self, close: float) -> float | None:
        previous = self._previous_close
        self._previous_close = float(close)
        if previous is None:
            return None

        change = close - previous
        gain = change if change > 0 else 0.0
        loss = -change if change < 0 else 0.0

        if self.avg_gain is None or self.avg_loss is None:
            self._initial_gains.append(gain)
            self._initial_losses.append(loss)
            if len(self._initial_gains) < self.period:
                return None
            self.avg_gain = sum(self._initial_gains) / self.period
            self.avg_loss = sum(self._initial_losses) / self.period
        else:
            self.avg_gain = self.alpha * gain + (1.0 - self.alpha) * self.avg_gain
            self.avg_loss = self.alpha * loss + (1.0 - self.alpha) * self.avg_loss

        if self.avg_loss == 0:
            return 100.0
        rs = self.avg_gain / self.avg_loss
        return 100.0 - (100.0 / (1.0 + rs))

    def reset(self) -> None:
        self.avg_gain = None
        self.avg_loss = None
        self._previous_close = None
        self._initial_gains.clear()
        self._initial_losses.clear()
