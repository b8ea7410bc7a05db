"""Runtime wiring, the refresh loop and one-shot actions."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path
from uuid import uuid4

from screener.cache.manager import CacheManager
from screener.config import Settings
from screener.data.base import MarketDataClient
from screener.data.csv_data import CsvMarketDataClient
from screener.data.yfinance_data import YFinanceMarketDataClient
from screener.domain.events import ScreenerEvent
from screener.domain.models import AlertCondition, PriorityTier, TickerMeta, utc_now
from screener.errors import classify_provider_error
from screener.indicators.engine import IndicatorEngine
from screener.logging.event_sink import JsonlEventSink, generate_plotly_report
from screener.logging.logger import HumanLogger
from screener.scheduler.priority import PriorityScheduler, RefreshStatus
from screener.screening import (
    StockFilter,
    filter_tickers,
    passes_basic_filters,
    should_ignore_symbol,
    top_performers,
)
from screener.signals.evaluator import evaluate_signals
from screener.state.memory_store import MemoryResultStore
from screener.state.sqlite_store import SqliteResultStore
from screener.state.store import ResultStore

DEFAULT_OWNER = "default"


def run(settings: Settings) -> int:
    """Run the priority scheduler until interrupted or `max_ticks` is reached."""
    session = uuid4().hex
    session_directory = Path(settings.events_dir) / session
    session_directory.mkdir(parents=True, exist_ok=True)
    events_path = session_directory / "events.jsonl"
    report_path = session_directory / "report.html"

    event_sink = JsonlEventSink(str(events_path))
    human_logger = HumanLogger(level=settings.log_level)
    store = build_result_store(settings)
    scheduler = build_scheduler(
        settings,
        store=store,
        human_logger=human_logger,
        event_sink=event_sink,
        session=session,
    )

    human_logger.run_started(session, settings.data_source, store.count_symbols())
    event_sink.emit(
        ScreenerEvent(
            session=session,
            event_type="run_started",
            payload={"data_source": settings.data_source, "max_ticks": settings.max_ticks},
        )
    )

    exit_code = 0
    try:
        asyncio.run(scheduler.run_forever(settings.max_ticks))
    except KeyboardInterrupt:
        exit_code = 0
    except Exception as exc:
        human_logger.error(str(exc))
        event_sink.emit(
            ScreenerEvent(
                session=session,
                event_type="error",
                payload={"message": str(exc)},
            )
        )
        exit_code = 1
    finally:
        try:
            generate_plotly_report(str(events_path), str(report_path))
        finally:
            store.close()

    return exit_code


def analyze(settings: Settings, symbol: str) -> int:
    """Compute indicators over the lookback window and print the latest signals."""
    human_logger = HumanLogger(level=settings.log_level)
    client = build_market_data_client(settings)
    end = utc_now()
    start = end - timedelta(days=settings.history_lookback_days)
    try:
        bars = client.fetch_bars(symbol, start, end)
    except Exception as exc:
        error = classify_provider_error(exc, settings.delisting_phrases)
        human_logger.error(f"{symbol}: {error}")
        return 1
    if not bars:
        human_logger.error(f"{symbol}: no bars returned")
        return 1

    snapshots = IndicatorEngine().calculate(symbol, bars)
    latest = snapshots[-1]
    prior = snapshots[-2] if len(snapshots) > 1 else None
    report = evaluate_signals(latest, prior=prior, thresholds=settings.signal_thresholds())
    human_logger.analysis(latest, [tag.value for tag in report.tags], report.opportunity)
    return 0


def screen(settings: Settings, stock_filter: StockFilter, limit: int = 20) -> int:
    """Filter the ticker universe and print the best performers."""
    human_logger = HumanLogger(level=settings.log_level)
    client = build_market_data_client(settings)
    try:
        selected = select_tickers(settings, client, stock_filter, human_logger)
    except Exception as exc:
        error = classify_provider_error(exc, settings.delisting_phrases)
        human_logger.error(f"ticker universe: {error}")
        return 1
    shown = top_performers(selected, limit)
    if not shown:
        # Offline universes carry no percent change to rank by.
        shown = selected[:limit]
    for ticker in shown:
        human_logger.ticker(ticker)
    human_logger.screen_summary(len(selected), len(shown))
    return 0


def select_tickers(
    settings: Settings,
    client: MarketDataClient,
    stock_filter: StockFilter,
    human_logger: HumanLogger | None = None,
) -> list[TickerMeta]:
    """Apply the metadata filters, then the RSI range when one is set.

    RSI is computed only for tickers that already passed the metadata
    filters. A ticker whose history cannot be fetched has no RSI and is
    dropped by an RSI range.
    """
    tickers = client.fetch_ticker_universe()
    eligible = [ticker for ticker in tickers if not should_ignore_symbol(ticker.symbol)]
    if not stock_filter.uses_rsi:
        return filter_tickers(eligible, stock_filter)

    candidates = [ticker for ticker in eligible if passes_basic_filters(ticker, stock_filter)]
    rsi_by_symbol = current_rsi_values(
        settings,
        client,
        [ticker.symbol for ticker in candidates],
        human_logger,
    )
    return filter_tickers(candidates, stock_filter, rsi_by_symbol)


def current_rsi_values(
    settings: Settings,
    client: MarketDataClient,
    symbols: list[str],
    human_logger: HumanLogger | None = None,
) -> dict[str, float | None]:
    """Latest RSI(14) per symbol over the lookback window."""
    engine = IndicatorEngine()
    end = utc_now()
    start = end - timedelta(days=settings.history_lookback_days)
    values: dict[str, float | None] = {}
    for symbol in symbols:
        try:
            bars = client.fetch_bars(symbol, start, end)
        except Exception as exc:
            error = classify_provider_error(exc, settings.delisting_phrases)
            if human_logger is not None:
                human_logger.symbol_failed(symbol, "rsi", str(error))
            values[symbol] = None
            continue
        snapshots = engine.calculate(symbol, bars) if bars else []
        values[symbol] = snapshots[-1].rsi_14 if snapshots else None
    return values


def watch(settings: Settings, symbol: str, owner: str = DEFAULT_OWNER) -> int:
    """Add `symbol` to a watchlist, promote it and refresh it right away."""
    store = build_result_store(settings)
    try:
        store.add_to_watchlist(owner, symbol)
        scheduler = build_scheduler(settings, store=store)

        async def promote_and_refresh() -> RefreshStatus:
            task = await scheduler.watchlist_added(symbol)
            outcome = await task
            return outcome.status

        status = asyncio.run(promote_and_refresh())
    finally:
        store.close()
    return 0 if status == RefreshStatus.REFRESHED else 1


def unwatch(settings: Settings, symbol: str, owner: str = DEFAULT_OWNER) -> int:
    store = build_result_store(settings)
    try:
        if not store.remove_from_watchlist(owner, symbol):
            HumanLogger(level=settings.log_level).error(f"{symbol} is not on watchlist '{owner}'")
            return 1
        build_scheduler(settings, store=store).watchlist_removed(symbol)
    finally:
        store.close()
    return 0


def reactivate(settings: Settings, symbol: str) -> int:
    """Clear a delisting so the symbol is scheduled again."""
    human_logger = HumanLogger(level=settings.log_level)
    store = build_result_store(settings)
    try:
        record = store.get_symbol(symbol)
        if record is None:
            human_logger.error(f"{symbol} is not tracked")
            return 1
        store.set_active(symbol, True)
        human_logger.priority_changed(symbol, record.tier.value, "reactivated")
    finally:
        store.close()
    return 0


def add_alert(
    settings: Settings,
    symbol: str,
    condition: AlertCondition,
    value: float,
    owner: str = DEFAULT_OWNER,
) -> int:
    store = build_result_store(settings)
    try:
        alert = store.add_alert(owner, symbol, condition, value)
    finally:
        store.close()
    HumanLogger(level=settings.log_level).alert_added(
        alert.alert_id, alert.symbol, alert.condition.value, alert.value
    )
    return 0


def check_alerts(settings: Settings) -> int:
    """Evaluate active alerts once against the stored bars."""
    store = build_result_store(settings)
    try:
        scheduler = build_scheduler(settings, store=store)
        asyncio.run(scheduler.evaluate_alerts())
    finally:
        store.close()
    return 0


def show_priorities(settings: Settings) -> int:
    human_logger = HumanLogger(level=settings.log_level)
    store = build_result_store(settings)
    try:
        scheduler = build_scheduler(settings, store=store, human_logger=human_logger)
        human_logger.tier_counts(scheduler.tier_counts())
    finally:
        store.close()
    return 0


def build_scheduler(
    settings: Settings,
    store: ResultStore,
    human_logger: HumanLogger | None = None,
    event_sink: JsonlEventSink | None = None,
    session: str = "",
) -> PriorityScheduler:
    return PriorityScheduler(
        settings=settings,
        client=build_market_data_client(settings),
        store=store,
        cache=build_cache(settings),
        engine=IndicatorEngine(),
        logger=human_logger or HumanLogger(level=settings.log_level),
        event_sink=event_sink,
        session=session or uuid4().hex,
    )


def build_market_data_client(settings: Settings) -> MarketDataClient:
    """Select the market data client from the configured source."""
    if settings.data_source == "csv":
        return CsvMarketDataClient(data_dir=settings.historical_data_dir)
    return YFinanceMarketDataClient(
        timeframe=settings.timeframe,
        lookback_days=settings.history_lookback_days,
        screener_url=settings.nasdaq_screener_url,
        ticker_limit=settings.ticker_limit,
        timeout=settings.request_timeout,
    )


def build_result_store(settings: Settings) -> ResultStore:
    tier_intervals: dict[PriorityTier, int] = settings.tier_intervals()
    if settings.store_backend == "memory":
        return MemoryResultStore(tier_intervals)
    return SqliteResultStore(settings.state_db_path, tier_intervals)


def build_cache(settings: Settings) -> CacheManager:
    return CacheManager(
        bars_ttl_seconds=settings.bars_cache_ttl_seconds,
        indicators_ttl_seconds=settings.indicators_cache_ttl_seconds,
        tickers_ttl_seconds=settings.tickers_cache_ttl_seconds,
        bars_capacity=settings.bars_cache_capacity,
        indicators_capacity=settings.indicators_cache_capacity,
        tickers_capacity=settings.tickers_cache_capacity,
    )
