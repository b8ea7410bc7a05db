"""Concise human-readable run logger."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from screener.domain.models import IndicatorSnapshot, TickerMeta, TierCounts


class HumanLogger:
    """Console logger with fixed line types."""

    def __init__(self, level: str = "INFO") -> None:
        self._logger = logging.getLogger("screener")
        self._logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        self._logger.propagate = False
        if not self._logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s | %(message)s", "%Y-%m-%d %H:%M:%S")
            handler.setFormatter(formatter)
            self._logger.addHandler(handler)

    def run_started(self, session: str, data_source: str, tracked_symbols: int) -> None:
        self._logger.info(
            "start | session %s | source %s | tracked %d",
            session,
            data_source,
            tracked_symbols,
        )

    def tick(self, number: int, due: Sequence[tuple[str, int]]) -> None:
        if not due:
            self._logger.debug("tick %d | nothing due", number)
            return
        parts = [f"{tier} {count}" for tier, count in due]
        self._logger.info("tick %d | due %s", number, " | ".join(parts))

    def tier_started(self, tier: str, symbols: int, batches: int) -> None:
        self._logger.info("tier | %s | %d symbols in %d batches", tier, symbols, batches)

    def tier_summary(
        self,
        tier: str,
        refreshed: int,
        failed: int,
        delisted: int,
        skipped: int,
        elapsed_seconds: float,
    ) -> None:
        self._logger.info(
            "tier done | %s | ok %d | failed %d | delisted %d | skipped %d | %.1fs",
            tier,
            refreshed,
            failed,
            delisted,
            skipped,
            elapsed_seconds,
        )

    def symbol_failed(self, symbol: str, kind: str, message: str) -> None:
        self._logger.warning("fail | %s | %s | %s", symbol, kind, self._shorten(message))

    def symbol_delisted(self, symbol: str, reason: str) -> None:
        self._logger.warning("delisted | %s | %s", symbol, reason)

    def priority_changed(self, symbol: str, tier: str, reason: str) -> None:
        self._logger.info("priority | %s -> %s | %s", symbol, tier, reason)

    def universe_synced(self, fetched: int, added: int, total: int) -> None:
        self._logger.info("universe | fetched %d | new %d | tracked %d", fetched, added, total)

    def analysis(
        self,
        snapshot: IndicatorSnapshot,
        tags: Sequence[str],
        opportunity: bool,
    ) -> None:
        parts = [f"analysis | {snapshot.symbol} | close ${snapshot.close:,.2f}"]
        if snapshot.rsi_14 is not None:
            parts.append(f"rsi {snapshot.rsi_14:.1f}")
        if snapshot.sma_20 is not None:
            parts.append(f"sma20 {snapshot.sma_20:,.2f}")
        if snapshot.sma_50 is not None:
            parts.append(f"sma50 {snapshot.sma_50:,.2f}")
        if snapshot.macd is not None:
            parts.append(f"macd {snapshot.macd.histogram:+.4f}")
        if opportunity:
            parts.append("OPPORTUNITY")
        if tags:
            parts.append(", ".join(tags))
        self._logger.info(" | ".join(parts))

    def ticker(self, ticker: TickerMeta) -> None:
        parts = [f"ticker | {ticker.symbol}"]
        if ticker.name:
            parts.append(self._shorten(ticker.name, limit=40))
        for value in (ticker.last_sale, ticker.pct_change, ticker.market_cap, ticker.sector):
            if value:
                parts.append(value)
        self._logger.info(" | ".join(parts))

    def screen_summary(self, matched: int, shown: int) -> None:
        self._logger.info("screen | matched %d | shown %d", matched, shown)

    def alert_triggered(self, symbol: str, condition: str, threshold: float, close: float) -> None:
        self._logger.warning(
            "alert | %s | %s %g | close $%.2f",
            symbol,
            condition,
            threshold,
            close,
        )

    def alert_added(self, alert_id: int, symbol: str, condition: str, threshold: float) -> None:
        self._logger.info("alert added | #%d | %s | %s %g", alert_id, symbol, condition, threshold)

    def tier_counts(self, counts: Sequence[TierCounts]) -> None:
        for item in counts:
            self._logger.info(
                "priority | %s every %ds | tracked %d | due %d",
                item.tier,
                item.interval_seconds,
                item.total,
                item.due,
            )

    def error(self, message: str) -> None:
        self._logger.error("error | %s", message)

    @staticmethod
    def _shorten(value: str, limit: int = 160) -> str:
        text = " ".join(str(value).split())
        if len(text) <= limit:
            return text
        return f"{text[: limit - 3]}..."
