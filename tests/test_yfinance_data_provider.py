from __future__ import annotations

import sys
from datetime import UTC, datetime
from types import SimpleNamespace

import pandas as pd
import pytest
import requests

from screener.data.yfinance_data import YFinanceMarketDataClient
from screener.errors import DelistingError, ParseError, ProviderError, classify_provider_error


def history_frame(index: list[str]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "Open": [10.0 + offset for offset in range(len(index))],
            "High": [11.0 + offset for offset in range(len(index))],
            "Low": [9.0 + offset for offset in range(len(index))],
            "Close": [10.5 + offset for offset in range(len(index))],
        },
        index=index,
    )


def install_fake_yfinance(monkeypatch, history, captured: dict | None = None) -> None:
    class FakeTicker:
        def __init__(self, ticker: str) -> None:
            if captured is not None:
                captured["ticker"] = ticker

        def history(self, **kwargs):
            if captured is not None:
                captured["kwargs"] = kwargs
            if isinstance(history, Exception):
                raise history
            return history

    monkeypatch.setitem(sys.modules, "yfinance", SimpleNamespace(Ticker=FakeTicker))


class FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("not json")
        return self._payload


def test_fetch_bars_normalizes_history(monkeypatch) -> None:
    captured: dict = {}
    install_fake_yfinance(monkeypatch, history_frame(["2025-01-02", "2025-01-01"]), captured)
    client = YFinanceMarketDataClient(timeframe="day")
    start = datetime(2024, 12, 1, tzinfo=UTC)
    end = datetime(2025, 1, 3, tzinfo=UTC)

    bars = client.fetch_bars("aapl", start, end)

    assert captured["ticker"] == "AAPL"
    assert captured["kwargs"]["interval"] == "1d"
    assert captured["kwargs"]["start"] == start
    assert [bar.timestamp for bar in bars] == [
        datetime(2025, 1, 1, tzinfo=UTC),
        datetime(2025, 1, 2, tzinfo=UTC),
    ]
    assert bars[-1].close == 10.5
    assert bars[-1].volume == 0.0


def test_mixed_timezone_offsets_become_utc(monkeypatch) -> None:
    install_fake_yfinance(
        monkeypatch,
        history_frame(["2025-01-02T09:30:00-05:00", "2025-07-02T09:30:00-04:00"]),
    )
    client = YFinanceMarketDataClient()

    bars = client.fetch_bars("SPY")

    assert bars[0].timestamp == datetime(2025, 1, 2, 14, 30, tzinfo=UTC)
    assert bars[1].timestamp == datetime(2025, 7, 2, 13, 30, tzinfo=UTC)


def test_latest_quote_is_last_bar(monkeypatch) -> None:
    captured: dict = {}
    install_fake_yfinance(monkeypatch, history_frame(["2025-01-01", "2025-01-02"]), captured)

    bar = YFinanceMarketDataClient().fetch_latest_quote("MSFT")

    assert captured["kwargs"]["period"] == "5d"
    assert captured["kwargs"]["interval"] == "1d"
    assert bar.timestamp == datetime(2025, 1, 2, tzinfo=UTC)
    assert bar.close == 11.5


def test_latest_quote_uses_configured_timeframe(monkeypatch) -> None:
    captured: dict = {}
    install_fake_yfinance(
        monkeypatch,
        history_frame(["2025-01-02T14:30:00+00:00", "2025-01-02T15:30:00+00:00"]),
        captured,
    )

    bar = YFinanceMarketDataClient(timeframe="1h").fetch_latest_quote("MSFT")

    assert captured["kwargs"]["interval"] == "60m"
    assert bar.timestamp == datetime(2025, 1, 2, 15, 30, tzinfo=UTC)


def test_empty_history_reads_as_delisting(monkeypatch) -> None:
    install_fake_yfinance(monkeypatch, pd.DataFrame())

    with pytest.raises(ValueError) as excinfo:
        YFinanceMarketDataClient().fetch_latest_quote("ZZZZ")

    assert isinstance(classify_provider_error(excinfo.value), DelistingError)


def test_missing_columns_raise_parse_error(monkeypatch) -> None:
    install_fake_yfinance(
        monkeypatch,
        pd.DataFrame({"Close": [1.0]}, index=pd.to_datetime(["2025-01-01"])),
    )

    with pytest.raises(ParseError):
        YFinanceMarketDataClient().fetch_bars("AAPL")


def test_request_failures_are_wrapped(monkeypatch) -> None:
    install_fake_yfinance(monkeypatch, RuntimeError("Read timed out"))

    with pytest.raises(ValueError, match="yfinance request failed for AAPL") as excinfo:
        YFinanceMarketDataClient().fetch_latest_quote("AAPL")

    assert isinstance(classify_provider_error(excinfo.value), ProviderError)


def test_ticker_universe_parses_nasdaq_rows(monkeypatch) -> None:
    payload = {
        "data": {
            "table": {
                "rows": [
                    {
                        "symbol": "AAPL",
                        "name": "Apple Inc. Common Stock",
                        "lastsale": "$190.50",
                        "pctchange": "1.2%",
                        "marketCap": "2,950,000,000,000",
                        "sector": "Technology",
                        "volume": "",
                    },
                    {"symbol": "^IXIC", "name": "Nasdaq Composite"},
                    {"symbol": "BRK/A", "name": "Berkshire"},
                ]
            }
        }
    }
    calls: list[dict] = []
    client = YFinanceMarketDataClient(ticker_limit=25)

    def fake_get(url, params=None, timeout=None):
        calls.append({"url": url, "params": params, "timeout": timeout})
        return FakeResponse(200, payload)

    monkeypatch.setattr(client.session, "get", fake_get)

    tickers = client.fetch_ticker_universe()

    assert [ticker.symbol for ticker in tickers] == ["AAPL"]
    assert tickers[0].last_sale == "$190.50"
    assert tickers[0].volume is None
    assert calls[0]["params"] == {"limit": "25"}
    assert client.session.headers["User-Agent"].startswith("Mozilla/5.0")


def test_ticker_universe_retries_rate_limit() -> None:
    sleeps: list[float] = []
    responses = [FakeResponse(429), FakeResponse(200, {"data": {"table": {"rows": []}}})]
    client = YFinanceMarketDataClient(sleep_fn=sleeps.append)
    client.session.get = lambda url, params=None, timeout=None: responses.pop(0)

    assert client.fetch_ticker_universe() == []
    assert sleeps == [1.0]


def test_ticker_universe_surfaces_provider_errors() -> None:
    client = YFinanceMarketDataClient(max_retries=2, sleep_fn=lambda _seconds: None)

    def refuse(url, params=None, timeout=None):
        raise requests.ConnectionError("connection refused")

    client.session.get = refuse
    with pytest.raises(ProviderError):
        client.fetch_ticker_universe()

    client.session.get = lambda url, params=None, timeout=None: FakeResponse(404, text="gone")
    with pytest.raises(ProviderError, match="404"):
        client.fetch_ticker_universe()


def test_ticker_universe_rejects_unexpected_payload() -> None:
    client = YFinanceMarketDataClient()
    client.session.get = lambda url, params=None, timeout=None: FakeResponse(200, {"data": None})

    with pytest.raises(ParseError):
        client.fetch_ticker_universe()


def test_interval_normalization() -> None:
    assert YFinanceMarketDataClient._normalize_interval("1Hour") == "60m"
    assert YFinanceMarketDataClient._normalize_interval("week") == "1wk"
    assert YFinanceMarketDataClient._normalize_interval("unknown") == "1d"
