"""Price and RSI alert evaluation."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta

from screener.cache.manager import CacheManager
from screener.data.base import MarketDataClient
from screener.domain.models import (
    Alert,
    AlertCondition,
    AlertTrigger,
    Bar,
    merge_latest_bar,
    utc_now,
)
from screener.indicators.engine import IndicatorEngine
from screener.logging.logger import HumanLogger
from screener.state.store import ResultStore


def condition_met(
    condition: AlertCondition,
    threshold: float,
    price: float,
    rsi: float | None = None,
) -> bool:
    """Strict comparison of the close or RSI against `threshold`.

    RSI conditions never fire while RSI is still warming up.
    """
    if condition == AlertCondition.PRICE_ABOVE:
        return price > threshold
    if condition == AlertCondition.PRICE_BELOW:
        return price < threshold
    if rsi is None:
        return False
    if condition == AlertCondition.RSI_ABOVE:
        return rsi > threshold
    return rsi < threshold


def alert_message(alert: Alert) -> str:
    return f"Alert triggered: {alert.symbol} {alert.condition.value} {alert.value:g}"


class AlertEvaluator:
    """Checks active alerts against each symbol's latest stored bar.

    A triggered alert is recorded and deactivated, so it fires once. Price
    alerts read the close of the latest stored bar; RSI alerts compute RSI(14)
    over the cached or freshly fetched history with that bar merged in.
    """

    def __init__(
        self,
        store: ResultStore,
        client: MarketDataClient,
        cache: CacheManager,
        engine: IndicatorEngine,
        logger: HumanLogger | None = None,
        lookback_days: int = 365,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.client = client
        self.cache = cache
        self.engine = engine
        self.logger = logger or HumanLogger()
        self.lookback_days = lookback_days
        self._clock = clock

    async def evaluate(self) -> list[AlertTrigger]:
        """Evaluate every active alert; one failing alert does not stop the rest."""
        triggers: list[AlertTrigger] = []
        for alert in self.store.get_active_alerts():
            try:
                trigger = await self.evaluate_alert(alert)
            except Exception as exc:
                self.logger.error(f"alert {alert.alert_id} {alert.symbol}: {exc}")
                continue
            if trigger is not None:
                triggers.append(trigger)
        return triggers

    async def evaluate_alert(self, alert: Alert) -> AlertTrigger | None:
        latest = self.store.get_latest(alert.symbol)
        if latest is None:
            return None
        rsi = None
        if alert.condition.uses_rsi:
            rsi = await self.current_rsi(alert.symbol, latest)
        if not condition_met(alert.condition, alert.value, latest.close, rsi):
            return None

        trigger = AlertTrigger(
            alert_id=alert.alert_id,
            symbol=alert.symbol,
            triggered_at=self._clock(),
            trigger_value=latest.close,
            message=alert_message(alert),
        )
        self.store.record_alert_trigger(trigger)
        self.store.set_alert_active(alert.alert_id, False)
        self.logger.alert_triggered(alert.symbol, alert.condition.value, alert.value, latest.close)
        return trigger

    async def current_rsi(self, symbol: str, latest: Bar) -> float | None:
        cached = self.cache.get_indicators(symbol)
        if cached and cached[-1].timestamp >= latest.timestamp:
            return cached[-1].rsi_14

        history = self.cache.get_bars(symbol)
        if history is None:
            end = self._clock()
            start = end - timedelta(days=self.lookback_days)
            history = await asyncio.to_thread(self.client.fetch_bars, symbol, start, end)
            self.cache.cache_bars(symbol, history)
        snapshots = self.engine.calculate(symbol, merge_latest_bar(history, latest))
        if not snapshots:
            return None
        self.cache.cache_indicators(symbol, snapshots)
        return snapshots[-1].rsi_14
