"""Result store contract used by the scheduler and runtime."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

from screener.domain.models import (
    Alert,
    AlertCondition,
    AlertTrigger,
    Bar,
    IndicatorSnapshot,
    PriorityTier,
    SymbolRecord,
    TickerMeta,
)


class ResultStore(Protocol):
    """Persistence API for symbols, bars, snapshots and watchlists."""

    def store_bar(self, bar: Bar) -> None:
        """Persist a bar; a second write for the same symbol and timestamp wins."""

    def get_latest(self, symbol: str) -> Bar | None:
        """Return the most recent stored bar."""

    def store_snapshot(self, symbol: str, snapshot: IndicatorSnapshot, session: str) -> None:
        """Persist an indicator snapshot produced during `session`."""

    def get_latest_snapshot(self, symbol: str) -> IndicatorSnapshot | None:
        """Return the most recent stored snapshot."""

    def register_symbols(
        self,
        tickers: Iterable[TickerMeta],
        tier: PriorityTier = PriorityTier.LOW,
    ) -> int:
        """Create records for unseen symbols; return how many were added."""

    def get_symbol(self, symbol: str) -> SymbolRecord | None:
        """Return one symbol record."""

    def list_symbols(
        self,
        tier: PriorityTier | None = None,
        active_only: bool = False,
    ) -> list[SymbolRecord]:
        """Return symbol records ordered by symbol."""

    def count_symbols(self) -> int:
        """Return the number of tracked symbols."""

    def get_due_symbols(self, tier: PriorityTier, now: datetime | None = None) -> list[SymbolRecord]:
        """Return active symbols of `tier` whose interval elapsed, never-updated first."""

    def set_priority(self, symbol: str, tier: PriorityTier) -> None:
        """Move a symbol to `tier` and its configured interval."""

    def set_active(
        self,
        symbol: str,
        active: bool,
        reason: str | None = None,
        message: str | None = None,
    ) -> None:
        """Deactivate with a reason, or reactivate and clear the error fields."""

    def mark_updated(self, symbol: str, when: datetime | None = None) -> None:
        """Record a successful refresh."""

    def add_to_watchlist(self, owner: str, symbol: str) -> bool:
        """Add a watchlist entry; return False when it already existed."""

    def remove_from_watchlist(self, owner: str, symbol: str) -> bool:
        """Remove a watchlist entry; return False when it did not exist."""

    def watchlist_symbols(self, owner: str | None = None) -> list[str]:
        """Return distinct watchlisted symbols, optionally for one owner."""

    def is_watchlisted(self, symbol: str) -> bool:
        """Return true when any watchlist holds `symbol`."""

    def add_alert(self, owner: str, symbol: str, condition: AlertCondition, value: float) -> Alert:
        """Create an active alert and return it with its assigned id."""

    def get_active_alerts(self) -> list[Alert]:
        """Return active alerts ordered by id."""

    def set_alert_active(self, alert_id: int, active: bool) -> None:
        """Enable or disable one alert."""

    def record_alert_trigger(self, trigger: AlertTrigger) -> None:
        """Append a trigger record."""

    def list_alert_triggers(self, alert_id: int | None = None) -> list[AlertTrigger]:
        """Return trigger records oldest first, optionally for one alert."""

    def close(self) -> None:
        """Close persistence resources."""


def due_order(record: SymbolRecord) -> tuple[bool, str, str]:
    """Sort key putting never-updated symbols first, then the stalest."""
    if record.last_update is None:
        return (False, "", record.symbol)
    return (True, record.last_update.isoformat(), record.symbol)
