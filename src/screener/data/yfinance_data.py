"""Yahoo Finance bars plus the Nasdaq screener ticker universe."""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime, timedelta
from time import sleep
from typing import Any

import pandas as pd
import requests

from screener.domain.models import Bar, TickerMeta, bars_from_frame, utc_now
from screener.errors import ParseError, ProviderError
from screener.screening import should_ignore_symbol

NASDAQ_SCREENER_URL = "https://api.nasdaq.com/api/screener/stocks?tableonly=true"
BROWSER_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


class YFinanceMarketDataClient:
    """Fetch OHLCV bars from Yahoo Finance via yfinance and tickers from Nasdaq."""

    def __init__(
        self,
        timeframe: str = "1d",
        lookback_days: int = 365,
        screener_url: str = NASDAQ_SCREENER_URL,
        ticker_limit: int = 0,
        timeout: int = 20,
        max_retries: int = 3,
        sleep_fn: Callable[[float], None] = sleep,
    ) -> None:
        self.interval = self._normalize_interval(timeframe)
        self.lookback_days = lookback_days
        self.screener_url = screener_url
        self.ticker_limit = ticker_limit
        self.timeout = timeout
        self.max_retries = max_retries
        self._sleep = sleep_fn
        self.session = requests.Session()
        self.session.headers.update(
            {
                "User-Agent": BROWSER_USER_AGENT,
                "Accept": "application/json",
            }
        )

    def fetch_bars(
        self,
        symbol: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Bar]:
        end_time = end or utc_now()
        start_time = start or end_time - timedelta(days=self.lookback_days)
        history = self._history(
            symbol,
            start=start_time,
            end=end_time,
            interval=self.interval,
            auto_adjust=False,
            actions=False,
        )
        return bars_from_frame(symbol, history)

    def fetch_latest_quote(self, symbol: str) -> Bar:
        history = self._history(
            symbol,
            period="5d",
            interval=self.interval,
            auto_adjust=False,
            actions=False,
        )
        bars = bars_from_frame(symbol, history)
        return bars[-1]

    def fetch_ticker_universe(self) -> list[TickerMeta]:
        params = {"limit": str(self.ticker_limit)} if self.ticker_limit > 0 else None
        payload = self._request_with_retry(self.screener_url, params)
        try:
            rows = payload["data"]["table"]["rows"]
        except (KeyError, TypeError) as exc:
            raise ParseError("Nasdaq screener payload missing data.table.rows") from exc
        if not isinstance(rows, list):
            raise ParseError("Nasdaq screener rows are not a list")

        tickers: list[TickerMeta] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            symbol = str(row.get("symbol") or "").strip()
            if should_ignore_symbol(symbol):
                continue
            tickers.append(
                TickerMeta(
                    symbol=symbol,
                    name=str(row.get("name") or "").strip(),
                    last_sale=_optional_text(row.get("lastsale")),
                    net_change=_optional_text(row.get("netchange")),
                    pct_change=_optional_text(row.get("pctchange")),
                    market_cap=_optional_text(row.get("marketCap")),
                    country=_optional_text(row.get("country")),
                    ipo_year=_optional_text(row.get("ipoyear")),
                    volume=_optional_text(row.get("volume")),
                    sector=_optional_text(row.get("sector")),
                    industry=_optional_text(row.get("industry")),
                )
            )
        return tickers

    def _history(self, symbol: str, **kwargs: Any) -> pd.DataFrame:
        try:
            import yfinance as yf
        except ImportError as exc:
            raise ProviderError(
                "yfinance is required for the yfinance data source. Install it with `pip install yfinance`."
            ) from exc

        ticker = symbol.strip().upper()
        try:
            history = yf.Ticker(ticker).history(**kwargs)
        except Exception as exc:
            raise ValueError(f"yfinance request failed for {symbol}: {exc}") from exc
        return self._normalize_history(history, symbol)

    @staticmethod
    def _normalize_history(history: Any, symbol: str) -> pd.DataFrame:
        if history is None:
            raise ValueError(f"No data found for {symbol}, symbol may be delisted")
        frame = pd.DataFrame(history).copy()
        if frame.empty:
            raise ValueError(f"No data found for {symbol}, symbol may be delisted")

        open_column = YFinanceMarketDataClient._pick_column(frame, "open")
        high_column = YFinanceMarketDataClient._pick_column(frame, "high")
        low_column = YFinanceMarketDataClient._pick_column(frame, "low")
        close_column = YFinanceMarketDataClient._pick_column(frame, "close")
        if close_column is None:
            close_column = YFinanceMarketDataClient._pick_column(frame, "adj_close")
        volume_column = YFinanceMarketDataClient._pick_column(frame, "volume")

        if open_column is None or high_column is None or low_column is None or close_column is None:
            raise ParseError(f"yfinance payload missing OHLC columns for {symbol}")

        normalized = pd.DataFrame(index=pd.to_datetime(frame.index, utc=True))
        normalized["open"] = pd.to_numeric(frame[open_column], errors="coerce").to_numpy()
        normalized["high"] = pd.to_numeric(frame[high_column], errors="coerce").to_numpy()
        normalized["low"] = pd.to_numeric(frame[low_column], errors="coerce").to_numpy()
        normalized["close"] = pd.to_numeric(frame[close_column], errors="coerce").to_numpy()
        if volume_column is None:
            normalized["volume"] = 0.0
        else:
            normalized["volume"] = (
                pd.to_numeric(frame[volume_column], errors="coerce").fillna(0.0).to_numpy()
            )
        normalized = normalized.sort_index()
        normalized = normalized.dropna(subset=["open", "high", "low", "close"])
        if normalized.empty:
            raise ParseError(f"yfinance payload for {symbol} has no valid OHLC rows")
        return normalized

    def _request_with_retry(self, url: str, params: dict[str, str] | None) -> dict:
        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.session.get(url, params=params, timeout=self.timeout)
            except requests.RequestException as exc:
                if attempt == self.max_retries:
                    raise ProviderError(f"Nasdaq screener request failed: {exc}") from exc
                self._sleep(float(attempt))
                continue
            if response.status_code == 429:
                if attempt == self.max_retries:
                    raise ProviderError("Nasdaq screener rate limit exceeded (429)")
                self._sleep(float(attempt))
                continue
            if response.status_code >= 500:
                if attempt == self.max_retries:
                    raise ProviderError(f"Nasdaq screener server error: {response.status_code}")
                self._sleep(float(attempt))
                continue
            if response.status_code >= 400:
                detail = response.text.strip() or "No response body"
                raise ProviderError(f"Nasdaq screener error {response.status_code}: {detail}")
            try:
                return response.json()
            except ValueError as exc:
                raise ParseError("Nasdaq screener returned invalid JSON") from exc
        raise ProviderError("Nasdaq screener request exhausted retries")

    @staticmethod
    def _pick_column(frame: pd.DataFrame, field: str) -> Any | None:
        for column in frame.columns:
            key = YFinanceMarketDataClient._column_key(column)
            if key == field or key.startswith(f"{field}_"):
                return column
        return None

    @staticmethod
    def _column_key(value: Any) -> str:
        if isinstance(value, tuple):
            text = "_".join(str(part) for part in value if part is not None)
        else:
            text = str(value)
        normalized = re.sub(r"[^a-zA-Z0-9]+", "_", text).strip("_").lower()
        return normalized

    @staticmethod
    def _normalize_interval(value: str) -> str:
        mapping = {
            "1d": "1d",
            "day": "1d",
            "1day": "1d",
            "1h": "60m",
            "1hour": "60m",
            "60m": "60m",
            "1wk": "1wk",
            "week": "1wk",
        }
        normalized = value.strip().lower()
        return mapping.get(normalized, "1d")


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
