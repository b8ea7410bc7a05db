"""Priority-tiered refresh scheduler."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from screener.alerts import AlertEvaluator
from screener.cache.manager import CacheManager
from screener.config import Settings
from screener.data.base import MarketDataClient
from screener.domain.events import ScreenerEvent
from screener.domain.models import (
    TIER_ORDER,
    Bar,
    IndicatorSnapshot,
    PriorityTier,
    TierCounts,
    merge_latest_bar,
    utc_now,
)
from screener.errors import DelistingError, ParseError, ScreenerError, classify_provider_error
from screener.indicators.engine import IndicatorEngine
from screener.logging.event_sink import JsonlEventSink
from screener.logging.logger import HumanLogger
from screener.screening import should_ignore_symbol
from screener.signals.evaluator import evaluate_signals
from screener.state.store import ResultStore

Sleep = Callable[[float], Awaitable[None]]


class RefreshStatus(StrEnum):
    REFRESHED = "refreshed"
    FAILED = "failed"
    DELISTED = "delisted"
    SKIPPED = "skipped"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class RefreshOutcome:
    symbol: str
    status: RefreshStatus
    message: str = ""
    snapshot: IndicatorSnapshot | None = None


@dataclass
class TierRefreshSummary:
    """Counts for one pass over a tier's due-set."""

    tier: PriorityTier
    symbols: int
    batches: int = 0
    refreshed: int = 0
    failed: int = 0
    delisted: int = 0
    skipped: int = 0
    rate_limited: int = 0
    elapsed_seconds: float = 0.0

    def record(self, outcome: RefreshOutcome) -> None:
        if outcome.status == RefreshStatus.REFRESHED:
            self.refreshed += 1
        elif outcome.status == RefreshStatus.DELISTED:
            self.delisted += 1
        elif outcome.status == RefreshStatus.SKIPPED:
            self.skipped += 1
        elif outcome.status == RefreshStatus.RATE_LIMITED:
            self.rate_limited += 1
        else:
            self.failed += 1

    def to_payload(self) -> dict[str, Any]:
        return {
            "tier": self.tier.value,
            "symbols": self.symbols,
            "batches": self.batches,
            "refreshed": self.refreshed,
            "failed": self.failed,
            "delisted": self.delisted,
            "skipped": self.skipped,
            "rate_limited": self.rate_limited,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


class PriorityScheduler:
    """Keeps tracked symbols fresh at the cadence of their priority tier.

    Every tick scans the tiers from High to Low and spawns one refresh task
    per tier with a non-empty due-set. Tiers refresh concurrently; symbols
    inside a tier are processed sequentially in batches, paced by the tier's
    request and batch delays. A tier whose previous task is still running is
    not scanned again until that task finishes. Active alerts are checked
    after a tick once `alert_check_seconds` have passed since the last check.

    Provider calls run in worker threads. Store, cache and indicator engine
    are only touched from the event loop thread.
    """

    def __init__(
        self,
        settings: Settings,
        client: MarketDataClient,
        store: ResultStore,
        cache: CacheManager,
        engine: IndicatorEngine,
        logger: HumanLogger | None = None,
        event_sink: JsonlEventSink | None = None,
        session: str = "",
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
        alerts: AlertEvaluator | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.store = store
        self.cache = cache
        self.engine = engine
        self.logger = logger or HumanLogger(settings.log_level)
        self.event_sink = event_sink
        self.session = session
        self.thresholds = settings.signal_thresholds()
        self.tick_count = 0
        self._sleep = sleep
        self._clock = clock
        self._forced: dict[PriorityTier, list[str]] = {tier: [] for tier in TIER_ORDER}
        self._tier_tasks: dict[PriorityTier, asyncio.Task[TierRefreshSummary]] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._last_universe_sync: datetime | None = None
        self._last_alert_check: datetime | None = None
        self.alerts = alerts or AlertEvaluator(
            store,
            client,
            cache,
            engine,
            logger=self.logger,
            lookback_days=settings.history_lookback_days,
            clock=clock,
        )

    def due_symbols(self, tier: PriorityTier, now: datetime | None = None) -> list[str]:
        """Return and consume the due-set for `tier`.

        Symbols force-promoted since the previous scan come first; they are
        dropped if they have since left the tier or been deactivated.
        """
        current = now or self._clock()
        forced = self._forced[tier]
        self._forced[tier] = []
        symbols: list[str] = []
        for symbol in forced:
            record = self.store.get_symbol(symbol)
            if record is None or not record.is_active or record.tier != tier:
                continue
            if symbol not in symbols:
                symbols.append(symbol)
        for record in self.store.get_due_symbols(tier, current):
            if record.symbol not in symbols:
                symbols.append(record.symbol)
        return symbols

    async def tick(self) -> list[asyncio.Task[TierRefreshSummary]]:
        """Scan every tier once and spawn refresh tasks for non-empty due-sets."""
        self.tick_count += 1
        now = self._clock()
        spawned: list[asyncio.Task[TierRefreshSummary]] = []
        due_counts: list[tuple[str, int]] = []
        for tier in TIER_ORDER:
            running = self._tier_tasks.get(tier)
            if running is not None and not running.done():
                continue
            symbols = self.due_symbols(tier, now)
            if not symbols:
                continue
            due_counts.append((tier.value, len(symbols)))
            task = self._spawn(self.refresh_tier(tier, symbols), name=f"refresh-{tier.value}")
            self._tier_tasks[tier] = task
            spawned.append(task)
        self.logger.tick(self.tick_count, due_counts)
        return spawned

    async def run_forever(self, max_ticks: int | None = None) -> int:
        """Tick, then sleep `tick_seconds`, until `max_ticks` ticks have run.

        Without a tick limit the loop only ends by cancellation. With one, it
        waits for outstanding refresh tasks before returning the tick count.
        """
        limit = max_ticks if max_ticks is not None else self.settings.max_ticks
        await self.startup()
        ticks = 0
        while limit is None or ticks < limit:
            await self._maybe_sync_universe()
            await self.tick()
            await self._maybe_evaluate_alerts()
            ticks += 1
            if limit is not None and ticks >= limit:
                break
            await self._sleep(self.settings.tick_seconds)
        await self.wait_idle()
        return ticks

    async def startup(self) -> None:
        """Promote watchlisted symbols and seed an empty store with the universe."""
        self.initialize_watchlist_priorities()
        if self.store.count_symbols() == 0:
            try:
                await self.sync_universe()
            except ScreenerError as exc:
                self.logger.error(f"universe sync failed: {exc}")
        self._last_universe_sync = self._clock()

    async def wait_idle(self) -> None:
        # Immediate updates spawned while waiting are picked up by the next pass.
        while True:
            pending = [task for task in self._background if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def refresh_tier(self, tier: PriorityTier, symbols: list[str]) -> TierRefreshSummary:
        tuning = self.settings.tier(tier)
        batches = [
            symbols[index : index + tuning.batch_size]
            for index in range(0, len(symbols), tuning.batch_size)
        ]
        summary = TierRefreshSummary(tier=tier, symbols=len(symbols), batches=len(batches))
        started = time.monotonic()
        self.logger.tier_started(tier.value, len(symbols), len(batches))
        for batch in batches:
            for symbol in batch:
                outcome = await self.refresh_symbol(symbol)
                summary.record(outcome)
                await self._sleep(tuning.request_delay_seconds)
            await self._sleep(tuning.batch_delay_seconds)
        summary.elapsed_seconds = time.monotonic() - started
        self.logger.tier_summary(
            tier.value,
            summary.refreshed,
            summary.failed,
            summary.delisted,
            summary.skipped + summary.rate_limited,
            summary.elapsed_seconds,
        )
        self._emit("tier_refreshed", summary.to_payload())
        return summary

    async def refresh_symbol(self, symbol: str, bypass_rate_limit: bool = False) -> RefreshOutcome:
        """Fetch, store and analyze one symbol; failures never propagate."""
        key = f"refresh:{symbol}"
        if not bypass_rate_limit and self.cache.should_rate_limit(
            key, self.settings.rate_limit_seconds
        ):
            return RefreshOutcome(symbol=symbol, status=RefreshStatus.RATE_LIMITED)
        try:
            bar = await asyncio.to_thread(self.client.fetch_latest_quote, symbol)
            self.store.store_bar(bar)
            snapshot = None
            if self.settings.compute_indicators:
                snapshot = await self._analyze(symbol, bar)
            self.store.mark_updated(symbol, self._clock())
        except Exception as exc:
            return self._handle_failure(symbol, exc)
        return RefreshOutcome(symbol=symbol, status=RefreshStatus.REFRESHED, snapshot=snapshot)

    async def trigger_immediate_update(self, symbol: str) -> RefreshOutcome:
        """Refresh `symbol` now, regardless of its tier interval and the rate limiter."""
        return await self.refresh_symbol(symbol, bypass_rate_limit=True)

    async def watchlist_added(self, symbol: str) -> asyncio.Task[RefreshOutcome]:
        """Promote to High, queue for the next High scan and refresh immediately."""
        self.store.set_priority(symbol, PriorityTier.HIGH)
        if symbol not in self._forced[PriorityTier.HIGH]:
            self._forced[PriorityTier.HIGH].append(symbol)
        self.logger.priority_changed(symbol, PriorityTier.HIGH.value, "watchlist add")
        self._emit("priority_changed", {"symbol": symbol, "tier": PriorityTier.HIGH.value})
        return self._spawn(self.trigger_immediate_update(symbol), name=f"immediate-{symbol}")

    def watchlist_removed(self, symbol: str) -> bool:
        """Demote to Medium once no watchlist holds `symbol`; return True when demoted."""
        if self.store.is_watchlisted(symbol):
            return False
        if symbol in self._forced[PriorityTier.HIGH]:
            self._forced[PriorityTier.HIGH].remove(symbol)
        if self.store.get_symbol(symbol) is None:
            return False
        self.store.set_priority(symbol, PriorityTier.MEDIUM)
        self.logger.priority_changed(symbol, PriorityTier.MEDIUM.value, "watchlist remove")
        self._emit("priority_changed", {"symbol": symbol, "tier": PriorityTier.MEDIUM.value})
        return True

    def initialize_watchlist_priorities(self) -> int:
        symbols = self.store.watchlist_symbols()
        for symbol in symbols:
            self.store.set_priority(symbol, PriorityTier.HIGH)
        return len(symbols)

    async def sync_universe(self, force: bool = False) -> int:
        """Register unseen universe symbols at Low tier; return how many were added."""
        tickers = None if force else self.cache.get_tickers()
        if tickers is None:
            tickers = await asyncio.to_thread(self.client.fetch_ticker_universe)
            self.cache.cache_tickers(tickers)
        eligible = [ticker for ticker in tickers if not should_ignore_symbol(ticker.symbol)]
        added = self.store.register_symbols(eligible, PriorityTier.LOW)
        self._last_universe_sync = self._clock()
        total = self.store.count_symbols()
        self.logger.universe_synced(len(tickers), added, total)
        self._emit("universe_synced", {"fetched": len(tickers), "added": added, "total": total})
        return added

    def tier_counts(self, now: datetime | None = None) -> list[TierCounts]:
        current = now or self._clock()
        counts: list[TierCounts] = []
        for tier in TIER_ORDER:
            records = self.store.list_symbols(tier=tier, active_only=True)
            due = self.store.get_due_symbols(tier, current)
            counts.append(
                TierCounts(
                    tier=tier,
                    interval_seconds=self.settings.tier(tier).interval_seconds,
                    total=len(records),
                    due=len(due),
                    symbols=[record.symbol for record in records],
                )
            )
        return counts

    async def _analyze(self, symbol: str, latest: Bar) -> IndicatorSnapshot | None:
        history = self.cache.get_bars(symbol)
        if history is None:
            end = self._clock()
            start = end - timedelta(days=self.settings.history_lookback_days)
            history = await asyncio.to_thread(self.client.fetch_bars, symbol, start, end)
            self.cache.cache_bars(symbol, history)

        snapshots = self.engine.calculate(symbol, merge_latest_bar(history, latest))
        if not snapshots:
            return None
        self.cache.cache_indicators(symbol, snapshots)
        snapshot = snapshots[-1]
        self.store.store_snapshot(symbol, snapshot, self.session)

        prior = snapshots[-2] if len(snapshots) > 1 else None
        report = evaluate_signals(snapshot, prior=prior, thresholds=self.thresholds)
        if report.opportunity:
            self.logger.analysis(snapshot, [tag.value for tag in report.tags], True)
            self._emit(
                "opportunity",
                {
                    "symbol": symbol,
                    "rsi_14": snapshot.rsi_14,
                    "tags": [tag.value for tag in report.tags],
                },
            )
        return snapshot

    def _handle_failure(self, symbol: str, exc: Exception) -> RefreshOutcome:
        error = classify_provider_error(exc, self.settings.delisting_phrases)
        message = str(error)
        if isinstance(error, DelistingError):
            self.store.set_active(symbol, False, error.reason, message)
            self.cache.invalidate_bars(symbol)
            self.logger.symbol_delisted(symbol, error.reason)
            self._emit("symbol_delisted", {"symbol": symbol, "reason": error.reason})
            return RefreshOutcome(symbol=symbol, status=RefreshStatus.DELISTED, message=message)
        if isinstance(error, ParseError):
            self.logger.symbol_failed(symbol, "parse", message)
            return RefreshOutcome(symbol=symbol, status=RefreshStatus.SKIPPED, message=message)
        self.logger.symbol_failed(symbol, "transient", message)
        return RefreshOutcome(symbol=symbol, status=RefreshStatus.FAILED, message=message)

    async def evaluate_alerts(self) -> int:
        """Check active alerts against stored bars; return how many fired."""
        self._last_alert_check = self._clock()
        triggers = await self.alerts.evaluate()
        for trigger in triggers:
            self._emit(
                "alert_triggered",
                {
                    "alert_id": trigger.alert_id,
                    "symbol": trigger.symbol,
                    "close": trigger.trigger_value,
                    "message": trigger.message,
                },
            )
        return len(triggers)

    async def _maybe_evaluate_alerts(self) -> None:
        if self._last_alert_check is not None:
            elapsed = (self._clock() - self._last_alert_check).total_seconds()
            if elapsed < self.settings.alert_check_seconds:
                return
        await self.evaluate_alerts()

    async def _maybe_sync_universe(self) -> None:
        now = self._clock()
        if self._last_universe_sync is not None:
            elapsed = (now - self._last_universe_sync).total_seconds()
            if elapsed < self.settings.universe_refresh_seconds:
                return
        try:
            await self.sync_universe()
        except ScreenerError as exc:
            self._last_universe_sync = now
            self.logger.error(f"universe sync failed: {exc}")

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error(f"{task.get_name()} failed: {exc}")

    def _emit(self, event_type: str, payload: dict[str, Any]) -> None:
        if self.event_sink is None:
            return
        self.event_sink.emit(ScreenerEvent(session=self.session, event_type=event_type, payload=payload))
