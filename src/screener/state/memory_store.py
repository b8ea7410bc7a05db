"""In-memory result store."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import datetime

from screener.domain.models import (
    DEFAULT_TIER_INTERVALS,
    Alert,
    AlertCondition,
    AlertTrigger,
    Bar,
    IndicatorSnapshot,
    PriorityTier,
    SymbolRecord,
    TickerMeta,
    utc_now,
)
from screener.state.store import due_order


class MemoryResultStore:
    """Dict-backed result store; state lives for the lifetime of the process."""

    def __init__(self, tier_intervals: Mapping[PriorityTier, int] | None = None) -> None:
        self.tier_intervals = dict(DEFAULT_TIER_INTERVALS)
        if tier_intervals:
            self.tier_intervals.update(tier_intervals)
        self.symbols: dict[str, SymbolRecord] = {}
        self.bars: dict[str, dict[datetime, Bar]] = {}
        self.snapshots: dict[str, dict[tuple[datetime, str], IndicatorSnapshot]] = {}
        self.watchlists: dict[str, set[str]] = {}
        self.alerts: dict[int, Alert] = {}
        self.alert_triggers: list[AlertTrigger] = []

    def store_bar(self, bar: Bar) -> None:
        self.bars.setdefault(bar.symbol, {})[bar.timestamp] = bar

    def get_latest(self, symbol: str) -> Bar | None:
        bars = self.bars.get(symbol)
        if not bars:
            return None
        return bars[max(bars)]

    def store_snapshot(self, symbol: str, snapshot: IndicatorSnapshot, session: str) -> None:
        self.snapshots.setdefault(symbol, {})[(snapshot.timestamp, session)] = snapshot

    def get_latest_snapshot(self, symbol: str) -> IndicatorSnapshot | None:
        snapshots = self.snapshots.get(symbol)
        if not snapshots:
            return None
        latest_ts = max(ts for ts, _ in snapshots)
        # Several sessions may hold the same bar; the newest write wins.
        matching = [value for (ts, _), value in snapshots.items() if ts == latest_ts]
        return matching[-1]

    def register_symbols(
        self,
        tickers: Iterable[TickerMeta],
        tier: PriorityTier = PriorityTier.LOW,
    ) -> int:
        added = 0
        for ticker in tickers:
            if ticker.symbol in self.symbols:
                continue
            self.symbols[ticker.symbol] = SymbolRecord(
                symbol=ticker.symbol,
                tier=tier,
                interval_seconds=self.tier_intervals[tier],
                name=ticker.name,
                exchange=ticker.exchange,
                sector=ticker.sector,
                industry=ticker.industry,
                market_cap=ticker.market_cap,
            )
            added += 1
        return added

    def get_symbol(self, symbol: str) -> SymbolRecord | None:
        return self.symbols.get(symbol)

    def list_symbols(
        self,
        tier: PriorityTier | None = None,
        active_only: bool = False,
    ) -> list[SymbolRecord]:
        records = [
            record
            for record in self.symbols.values()
            if (tier is None or record.tier == tier) and (record.is_active or not active_only)
        ]
        return sorted(records, key=lambda record: record.symbol)

    def count_symbols(self) -> int:
        return len(self.symbols)

    def get_due_symbols(self, tier: PriorityTier, now: datetime | None = None) -> list[SymbolRecord]:
        current = now or utc_now()
        records = self.list_symbols(tier=tier, active_only=True)
        return sorted((record for record in records if record.is_due(current)), key=due_order)

    def set_priority(self, symbol: str, tier: PriorityTier) -> None:
        record = self.symbols.get(symbol) or SymbolRecord(symbol=symbol)
        self.symbols[symbol] = replace(
            record,
            tier=tier,
            interval_seconds=self.tier_intervals[tier],
        )

    def set_active(
        self,
        symbol: str,
        active: bool,
        reason: str | None = None,
        message: str | None = None,
    ) -> None:
        record = self.symbols.get(symbol)
        if record is None:
            return
        if active:
            self.symbols[symbol] = replace(
                record,
                is_active=True,
                delisting_reason=None,
                last_error_at=None,
                last_error_message=None,
            )
        else:
            self.symbols[symbol] = replace(
                record,
                is_active=False,
                delisting_reason=reason,
                last_error_at=utc_now(),
                last_error_message=message,
            )

    def mark_updated(self, symbol: str, when: datetime | None = None) -> None:
        record = self.symbols.get(symbol)
        if record is None:
            return
        self.symbols[symbol] = replace(record, last_update=when or utc_now())

    def add_to_watchlist(self, owner: str, symbol: str) -> bool:
        members = self.watchlists.setdefault(owner, set())
        if symbol in members:
            return False
        members.add(symbol)
        return True

    def remove_from_watchlist(self, owner: str, symbol: str) -> bool:
        members = self.watchlists.get(owner)
        if not members or symbol not in members:
            return False
        members.discard(symbol)
        return True

    def watchlist_symbols(self, owner: str | None = None) -> list[str]:
        if owner is not None:
            return sorted(self.watchlists.get(owner, set()))
        merged: set[str] = set()
        for members in self.watchlists.values():
            merged.update(members)
        return sorted(merged)

    def is_watchlisted(self, symbol: str) -> bool:
        return any(symbol in members for members in self.watchlists.values())

    def add_alert(self, owner: str, symbol: str, condition: AlertCondition, value: float) -> Alert:
        alert = Alert(
            alert_id=max(self.alerts, default=0) + 1,
            owner=owner,
            symbol=symbol,
            condition=AlertCondition(condition),
            value=float(value),
            created_at=utc_now(),
        )
        self.alerts[alert.alert_id] = alert
        return alert

    def get_active_alerts(self) -> list[Alert]:
        return [self.alerts[key] for key in sorted(self.alerts) if self.alerts[key].is_active]

    def set_alert_active(self, alert_id: int, active: bool) -> None:
        alert = self.alerts.get(alert_id)
        if alert is None:
            return
        self.alerts[alert_id] = replace(alert, is_active=active)

    def record_alert_trigger(self, trigger: AlertTrigger) -> None:
        self.alert_triggers.append(trigger)

    def list_alert_triggers(self, alert_id: int | None = None) -> list[AlertTrigger]:
        return [
            trigger
            for trigger in self.alert_triggers
            if alert_id is None or trigger.alert_id == alert_id
        ]

    def close(self) -> None:
        return None
