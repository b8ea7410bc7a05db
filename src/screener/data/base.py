"""Market data client contract."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from screener.domain.models import Bar, TickerMeta


class MarketDataClient(Protocol):
    """Interface for bar, quote and ticker universe retrieval.

    Implementations are blocking; the scheduler runs them in worker threads.
    """

    def fetch_bars(
        self,
        symbol: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Bar]:
        """Return bars in ascending timestamp order."""

    def fetch_latest_quote(self, symbol: str) -> Bar:
        """Return the most recent bar."""

    def fetch_ticker_universe(self) -> list[TickerMeta]:
        """Return every listed ticker the provider knows about."""
