"""SQLite result store for symbols, bars, snapshots and watchlists."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path

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
    parse_timestamp,
    utc_now,
)
from screener.state.store import due_order

_SYMBOL_COLUMNS = """
    symbol,
    tier,
    interval_seconds,
    last_update,
    is_active,
    delisting_reason,
    last_error_at,
    last_error_message,
    name,
    exchange,
    sector,
    industry,
    market_cap
"""


class SqliteResultStore:
    """SQLite-backed implementation of the result store."""

    def __init__(
        self,
        db_path: str,
        tier_intervals: Mapping[PriorityTier, int] | None = None,
    ) -> None:
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        # The scheduler awaits provider calls in worker threads but only
        # touches the store from the event loop thread.
        self.connection = sqlite3.connect(db_path, check_same_thread=False)
        self.connection.row_factory = sqlite3.Row
        self.tier_intervals = dict(DEFAULT_TIER_INTERVALS)
        if tier_intervals:
            self.tier_intervals.update(tier_intervals)
        self._initialize_schema()
        self._sync_tier_intervals()

    def store_bar(self, bar: Bar) -> None:
        self.connection.execute(
            """
            INSERT OR REPLACE INTO bars(symbol, ts, open, high, low, close, volume)
            VALUES(?, ?, ?, ?, ?, ?, ?)
            """,
            (
                bar.symbol,
                bar.timestamp.isoformat(),
                bar.open,
                bar.high,
                bar.low,
                bar.close,
                bar.volume,
            ),
        )
        self.connection.commit()

    def get_latest(self, symbol: str) -> Bar | None:
        row = self.connection.execute(
            """
            SELECT symbol, ts, open, high, low, close, volume
            FROM bars
            WHERE symbol = ?
            ORDER BY ts DESC
            LIMIT 1
            """,
            (symbol,),
        ).fetchone()
        if row is None:
            return None
        return Bar(
            symbol=str(row["symbol"]),
            timestamp=parse_timestamp(str(row["ts"])),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row["volume"]),
        )

    def store_snapshot(self, symbol: str, snapshot: IndicatorSnapshot, session: str) -> None:
        self.connection.execute(
            """
            INSERT OR REPLACE INTO snapshots(symbol, ts, session, payload, created_ts)
            VALUES(?, ?, ?, ?, ?)
            """,
            (
                symbol,
                snapshot.timestamp.isoformat(),
                session,
                json.dumps(snapshot.to_record()),
                self._utc_now(),
            ),
        )
        self.connection.commit()

    def get_latest_snapshot(self, symbol: str) -> IndicatorSnapshot | None:
        row = self.connection.execute(
            """
            SELECT payload
            FROM snapshots
            WHERE symbol = ?
            ORDER BY ts DESC, created_ts DESC
            LIMIT 1
            """,
            (symbol,),
        ).fetchone()
        if row is None:
            return None
        return IndicatorSnapshot.from_record(json.loads(str(row["payload"])))

    def register_symbols(
        self,
        tickers: Iterable[TickerMeta],
        tier: PriorityTier = PriorityTier.LOW,
    ) -> int:
        interval = self.tier_intervals[tier]
        added = 0
        for ticker in tickers:
            cursor = self.connection.execute(
                """
                INSERT OR IGNORE INTO symbols(
                    symbol, tier, interval_seconds, is_active,
                    name, exchange, sector, industry, market_cap
                )
                VALUES(?, ?, ?, 1, ?, ?, ?, ?, ?)
                """,
                (
                    ticker.symbol,
                    tier.value,
                    interval,
                    ticker.name,
                    ticker.exchange,
                    ticker.sector,
                    ticker.industry,
                    ticker.market_cap,
                ),
            )
            added += cursor.rowcount
        self.connection.commit()
        return added

    def get_symbol(self, symbol: str) -> SymbolRecord | None:
        row = self.connection.execute(
            f"SELECT {_SYMBOL_COLUMNS} FROM symbols WHERE symbol = ?",
            (symbol,),
        ).fetchone()
        if row is None:
            return None
        return self._symbol_from_row(row)

    def list_symbols(
        self,
        tier: PriorityTier | None = None,
        active_only: bool = False,
    ) -> list[SymbolRecord]:
        clauses: list[str] = []
        params: list[object] = []
        if tier is not None:
            clauses.append("tier = ?")
            params.append(tier.value)
        if active_only:
            clauses.append("is_active = 1")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self.connection.execute(
            f"SELECT {_SYMBOL_COLUMNS} FROM symbols {where} ORDER BY symbol ASC",
            params,
        ).fetchall()
        return [self._symbol_from_row(row) for row in rows]

    def count_symbols(self) -> int:
        row = self.connection.execute("SELECT COUNT(*) AS total FROM symbols").fetchone()
        return int(row["total"])

    def get_due_symbols(self, tier: PriorityTier, now: datetime | None = None) -> list[SymbolRecord]:
        current = now or utc_now()
        records = self.list_symbols(tier=tier, active_only=True)
        return sorted((record for record in records if record.is_due(current)), key=due_order)

    def set_priority(self, symbol: str, tier: PriorityTier) -> None:
        interval = self.tier_intervals[tier]
        self.connection.execute(
            """
            INSERT INTO symbols(symbol, tier, interval_seconds, is_active)
            VALUES(?, ?, ?, 1)
            ON CONFLICT(symbol) DO UPDATE SET
                tier = excluded.tier,
                interval_seconds = excluded.interval_seconds
            """,
            (symbol, tier.value, interval),
        )
        self.connection.commit()

    def set_active(
        self,
        symbol: str,
        active: bool,
        reason: str | None = None,
        message: str | None = None,
    ) -> None:
        if active:
            self.connection.execute(
                """
                UPDATE symbols
                SET is_active = 1,
                    delisting_reason = NULL,
                    last_error_at = NULL,
                    last_error_message = NULL
                WHERE symbol = ?
                """,
                (symbol,),
            )
        else:
            self.connection.execute(
                """
                UPDATE symbols
                SET is_active = 0,
                    delisting_reason = ?,
                    last_error_at = ?,
                    last_error_message = ?
                WHERE symbol = ?
                """,
                (reason, self._utc_now(), message, symbol),
            )
        self.connection.commit()

    def mark_updated(self, symbol: str, when: datetime | None = None) -> None:
        stamp = (when or utc_now()).isoformat()
        self.connection.execute(
            "UPDATE symbols SET last_update = ? WHERE symbol = ?",
            (stamp, symbol),
        )
        self.connection.commit()

    def add_to_watchlist(self, owner: str, symbol: str) -> bool:
        cursor = self.connection.execute(
            """
            INSERT OR IGNORE INTO watchlist(owner, symbol, added_ts)
            VALUES(?, ?, ?)
            """,
            (owner, symbol, self._utc_now()),
        )
        self.connection.commit()
        return cursor.rowcount > 0

    def remove_from_watchlist(self, owner: str, symbol: str) -> bool:
        cursor = self.connection.execute(
            "DELETE FROM watchlist WHERE owner = ? AND symbol = ?",
            (owner, symbol),
        )
        self.connection.commit()
        return cursor.rowcount > 0

    def watchlist_symbols(self, owner: str | None = None) -> list[str]:
        if owner is None:
            rows = self.connection.execute(
                "SELECT DISTINCT symbol FROM watchlist ORDER BY symbol ASC"
            ).fetchall()
        else:
            rows = self.connection.execute(
                "SELECT symbol FROM watchlist WHERE owner = ? ORDER BY symbol ASC",
                (owner,),
            ).fetchall()
        return [str(row["symbol"]) for row in rows]

    def is_watchlisted(self, symbol: str) -> bool:
        row = self.connection.execute(
            "SELECT 1 FROM watchlist WHERE symbol = ? LIMIT 1",
            (symbol,),
        ).fetchone()
        return row is not None

    def add_alert(self, owner: str, symbol: str, condition: AlertCondition, value: float) -> Alert:
        created = utc_now()
        cursor = self.connection.execute(
            """
            INSERT INTO alerts(owner, symbol, condition, value, is_active, created_ts)
            VALUES(?, ?, ?, ?, 1, ?)
            """,
            (owner, symbol, AlertCondition(condition).value, float(value), created.isoformat()),
        )
        self.connection.commit()
        return Alert(
            alert_id=int(cursor.lastrowid),
            owner=owner,
            symbol=symbol,
            condition=AlertCondition(condition),
            value=float(value),
            created_at=created,
        )

    def get_active_alerts(self) -> list[Alert]:
        rows = self.connection.execute(
            """
            SELECT alert_id, owner, symbol, condition, value, is_active, created_ts
            FROM alerts
            WHERE is_active = 1
            ORDER BY alert_id ASC
            """
        ).fetchall()
        return [
            Alert(
                alert_id=int(row["alert_id"]),
                owner=str(row["owner"]),
                symbol=str(row["symbol"]),
                condition=AlertCondition(str(row["condition"])),
                value=float(row["value"]),
                is_active=bool(row["is_active"]),
                created_at=parse_timestamp(str(row["created_ts"])),
            )
            for row in rows
        ]

    def set_alert_active(self, alert_id: int, active: bool) -> None:
        self.connection.execute(
            "UPDATE alerts SET is_active = ? WHERE alert_id = ?",
            (1 if active else 0, alert_id),
        )
        self.connection.commit()

    def record_alert_trigger(self, trigger: AlertTrigger) -> None:
        self.connection.execute(
            """
            INSERT INTO alert_triggers(alert_id, symbol, triggered_ts, trigger_value, message)
            VALUES(?, ?, ?, ?, ?)
            """,
            (
                trigger.alert_id,
                trigger.symbol,
                trigger.triggered_at.isoformat(),
                trigger.trigger_value,
                trigger.message,
            ),
        )
        self.connection.commit()

    def list_alert_triggers(self, alert_id: int | None = None) -> list[AlertTrigger]:
        query = """
            SELECT alert_id, symbol, triggered_ts, trigger_value, message
            FROM alert_triggers
        """
        params: tuple[object, ...] = ()
        if alert_id is not None:
            query += " WHERE alert_id = ?"
            params = (alert_id,)
        rows = self.connection.execute(f"{query} ORDER BY trigger_id ASC", params).fetchall()
        return [
            AlertTrigger(
                alert_id=int(row["alert_id"]),
                symbol=str(row["symbol"]),
                triggered_at=parse_timestamp(str(row["triggered_ts"])),
                trigger_value=float(row["trigger_value"]),
                message=str(row["message"]),
            )
            for row in rows
        ]

    def close(self) -> None:
        self.connection.close()

    def _initialize_schema(self) -> None:
        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS symbols(
                symbol TEXT PRIMARY KEY,
                tier TEXT NOT NULL,
                interval_seconds INTEGER NOT NULL,
                last_update TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                delisting_reason TEXT,
                last_error_at TEXT,
                last_error_message TEXT,
                name TEXT NOT NULL DEFAULT '',
                exchange TEXT NOT NULL DEFAULT '',
                sector TEXT,
                industry TEXT,
                market_cap TEXT
            )
            """
        )
        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS bars(
                symbol TEXT NOT NULL,
                ts TEXT NOT NULL,
                open REAL NOT NULL,
                high REAL NOT NULL,
                low REAL NOT NULL,
                close REAL NOT NULL,
                volume REAL NOT NULL,
                PRIMARY KEY(symbol, ts)
            )
            """
        )
        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS snapshots(
                symbol TEXT NOT NULL,
                ts TEXT NOT NULL,
                session TEXT NOT NULL,
                payload TEXT NOT NULL,
                created_ts TEXT NOT NULL,
                PRIMARY KEY(symbol, ts, session)
            )
            """
        )
        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS watchlist(
                owner TEXT NOT NULL,
                symbol TEXT NOT NULL,
                added_ts TEXT NOT NULL,
                PRIMARY KEY(owner, symbol)
            )
            """
        )
        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS alerts(
                alert_id INTEGER PRIMARY KEY AUTOINCREMENT,
                owner TEXT NOT NULL,
                symbol TEXT NOT NULL,
                condition TEXT NOT NULL,
                value REAL NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_ts TEXT NOT NULL
            )
            """
        )
        self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS alert_triggers(
                trigger_id INTEGER PRIMARY KEY AUTOINCREMENT,
                alert_id INTEGER NOT NULL REFERENCES alerts(alert_id) ON DELETE CASCADE,
                symbol TEXT NOT NULL,
                triggered_ts TEXT NOT NULL,
                trigger_value REAL NOT NULL,
                message TEXT NOT NULL
            )
            """
        )
        self.connection.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_symbols_tier_active
            ON symbols(tier, is_active)
            """
        )
        self.connection.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_watchlist_symbol
            ON watchlist(symbol)
            """
        )
        self.connection.commit()

    def _sync_tier_intervals(self) -> None:
        for tier, interval in self.tier_intervals.items():
            self.connection.execute(
                "UPDATE symbols SET interval_seconds = ? WHERE tier = ?",
                (interval, tier.value),
            )
        self.connection.commit()

    @staticmethod
    def _symbol_from_row(row: sqlite3.Row) -> SymbolRecord:
        last_update = row["last_update"]
        last_error_at = row["last_error_at"]
        return SymbolRecord(
            symbol=str(row["symbol"]),
            tier=PriorityTier(str(row["tier"])),
            interval_seconds=int(row["interval_seconds"]),
            last_update=parse_timestamp(str(last_update)) if last_update else None,
            is_active=bool(row["is_active"]),
            delisting_reason=row["delisting_reason"],
            last_error_at=parse_timestamp(str(last_error_at)) if last_error_at else None,
            last_error_message=row["last_error_message"],
            name=str(row["name"] or ""),
            exchange=str(row["exchange"] or ""),
            sector=row["sector"],
            industry=row["industry"],
            market_cap=row["market_cap"],
        )

    @staticmethod
    def _utc_now() -> str:
        return utc_now().isoformat()
