from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from screener.alerts import AlertEvaluator, condition_met
from screener.cache import CacheManager
from screener.domain.models import AlertCondition, Bar, IndicatorSnapshot
from screener.indicators import IndicatorEngine
from screener.state import MemoryResultStore

NOW = datetime(2024, 6, 3, 15, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class HistoryClient:
    def __init__(self, closes: list[float], failing: set[str] | None = None) -> None:
        self.closes = closes
        self.failing = failing or set()
        self.history_calls: list[str] = []

    def fetch_bars(self, symbol, start=None, end=None):
        self.history_calls.append(symbol)
        if symbol in self.failing:
            raise RuntimeError("connection reset by peer")
        first = NOW - timedelta(days=len(self.closes))
        return [make_bar(symbol, first + timedelta(days=index), close) for index, close in enumerate(self.closes)]

    def fetch_latest_quote(self, symbol):
        raise AssertionError("alerts read stored bars only")

    def fetch_ticker_universe(self):
        return []


def make_bar(symbol: str, timestamp: datetime, close: float) -> Bar:
    return Bar(
        symbol=symbol,
        timestamp=timestamp,
        open=close,
        high=close + 1.0,
        low=close - 1.0,
        close=close,
        volume=1_000.0,
    )


def build(client: HistoryClient | None = None):
    store = MemoryResultStore()
    cache = CacheManager(clock=FakeClock())
    client = client or HistoryClient([100.0 - index for index in range(30)])
    evaluator = AlertEvaluator(store, client, cache, IndicatorEngine(), clock=lambda: NOW)
    return evaluator, store, cache, client


def test_condition_met_is_strict() -> None:
    assert condition_met(AlertCondition.PRICE_ABOVE, 100.0, 100.5) is True
    assert condition_met(AlertCondition.PRICE_ABOVE, 100.0, 100.0) is False
    assert condition_met(AlertCondition.PRICE_BELOW, 100.0, 99.0) is True
    assert condition_met(AlertCondition.RSI_BELOW, 30.0, 50.0, rsi=30.0) is False
    assert condition_met(AlertCondition.RSI_ABOVE, 70.0, 50.0, rsi=71.0) is True
    assert condition_met(AlertCondition.RSI_ABOVE, 70.0, 50.0, rsi=None) is False


def test_price_alert_fires_once_and_is_recorded() -> None:
    evaluator, store, _, _ = build()
    store.store_bar(make_bar("AAPL", NOW, 95.0))
    alert = store.add_alert("alice", "AAPL", AlertCondition.PRICE_BELOW, 100.0)

    first = asyncio.run(evaluator.evaluate())
    second = asyncio.run(evaluator.evaluate())

    assert [trigger.alert_id for trigger in first] == [alert.alert_id]
    assert first[0].trigger_value == 95.0
    assert first[0].triggered_at == NOW
    assert first[0].message == "Alert triggered: AAPL price_below 100"
    assert second == []
    assert store.list_alert_triggers(alert.alert_id) == first
    assert store.get_active_alerts() == []


def test_alert_without_stored_bar_waits() -> None:
    evaluator, store, _, _ = build()
    store.add_alert("alice", "MSFT", AlertCondition.PRICE_ABOVE, 1.0)

    assert asyncio.run(evaluator.evaluate()) == []
    assert len(store.get_active_alerts()) == 1


def test_rsi_alert_uses_fresh_history() -> None:
    evaluator, store, cache, client = build()
    store.store_bar(make_bar("AAPL", NOW, 70.0))
    below = store.add_alert("alice", "AAPL", AlertCondition.RSI_BELOW, 30.0)
    above = store.add_alert("alice", "AAPL", AlertCondition.RSI_ABOVE, 70.0)

    triggers = asyncio.run(evaluator.evaluate())

    assert [trigger.alert_id for trigger in triggers] == [below.alert_id]
    assert [alert.alert_id for alert in store.get_active_alerts()] == [above.alert_id]
    # The second alert reuses the indicators computed for the first.
    assert client.history_calls == ["AAPL"]
    assert cache.get_indicators("AAPL")[-1].rsi_14 == 0.0


def test_cached_indicators_for_the_latest_bar_skip_history() -> None:
    evaluator, store, cache, client = build()
    store.store_bar(make_bar("AAPL", NOW, 150.0))
    cache.cache_indicators(
        "AAPL",
        [IndicatorSnapshot(symbol="AAPL", timestamp=NOW, close=150.0, rsi_14=82.0)],
    )
    store.add_alert("alice", "AAPL", AlertCondition.RSI_ABOVE, 80.0)

    triggers = asyncio.run(evaluator.evaluate())

    assert len(triggers) == 1
    assert client.history_calls == []


def test_failing_alert_does_not_block_others() -> None:
    client = HistoryClient([100.0 + index for index in range(30)], failing={"BAD"})
    evaluator, store, _, _ = build(client)
    store.store_bar(make_bar("BAD", NOW, 10.0))
    store.store_bar(make_bar("AAPL", NOW, 10.0))
    broken = store.add_alert("alice", "BAD", AlertCondition.RSI_BELOW, 50.0)
    store.add_alert("alice", "AAPL", AlertCondition.PRICE_BELOW, 20.0)

    triggers = asyncio.run(evaluator.evaluate())

    assert [trigger.symbol for trigger in triggers] == ["AAPL"]
    assert [alert.alert_id for alert in store.get_active_alerts()] == [broken.alert_id]
