from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pandas as pd
import pytest

from screener.data.csv_data import CsvMarketDataClient
from screener.errors import DelistingError, ParseError, classify_provider_error


def _write_csv(path: Path) -> None:
    frame = pd.DataFrame(
        {
            "Date": [
                "2025-01-03",
                "2025-01-01",
                "2025-01-02",
                "2025-01-04",
            ],
            "Open": [102.0, 100.0, 101.0, 103.0],
            "High": [103.0, 101.0, 102.0, 104.0],
            "Low": [101.0, 99.0, 100.0, 102.0],
            "Close": [102.5, 100.5, 101.5, 103.5],
            "Volume": [1200.0, 1000.0, None, 1300.0],
        }
    )
    frame.to_csv(path, index=False)


def test_csv_bars_are_sorted_and_utc(tmp_path: Path) -> None:
    _write_csv(tmp_path / "SPY.csv")
    client = CsvMarketDataClient(data_dir=str(tmp_path))

    bars = client.fetch_bars("SPY")

    assert [bar.close for bar in bars] == [100.5, 101.5, 102.5, 103.5]
    assert bars[0].timestamp == datetime(2025, 1, 1, tzinfo=UTC)
    assert bars[1].volume == 0.0


def test_csv_bars_respect_window(tmp_path: Path) -> None:
    _write_csv(tmp_path / "SPY.csv")
    client = CsvMarketDataClient(data_dir=str(tmp_path))

    bars = client.fetch_bars(
        "SPY",
        start=datetime(2025, 1, 2, tzinfo=UTC),
        end=datetime(2025, 1, 3, tzinfo=UTC),
    )

    assert [bar.close for bar in bars] == [101.5, 102.5]


def test_csv_latest_quote_and_universe(tmp_path: Path) -> None:
    _write_csv(tmp_path / "SPY.csv")
    _write_csv(tmp_path / "qqq.csv")
    client = CsvMarketDataClient(data_dir=str(tmp_path))

    latest = client.fetch_latest_quote("SPY")
    lower_case_file = client.fetch_latest_quote("QQQ")

    assert latest.close == 103.5
    assert latest.timestamp == datetime(2025, 1, 4, tzinfo=UTC)
    assert lower_case_file.close == 103.5
    assert [ticker.symbol for ticker in client.fetch_ticker_universe()] == ["QQQ", "SPY"]


def test_csv_missing_symbol_reads_as_delisting() -> None:
    client = CsvMarketDataClient(data_dir="historical_data_missing")

    with pytest.raises(ValueError, match="No data found") as excinfo:
        client.fetch_latest_quote("ZZZZ")

    assert isinstance(classify_provider_error(excinfo.value), DelistingError)


def test_csv_missing_columns_raise_parse_error(tmp_path: Path) -> None:
    pd.DataFrame({"date": ["2025-01-01"], "close": [1.0]}).to_csv(tmp_path / "BAD.csv", index=False)
    pd.DataFrame({"close": [1.0]}).to_csv(tmp_path / "NODATE.csv", index=False)
    client = CsvMarketDataClient(data_dir=str(tmp_path))

    with pytest.raises(ParseError, match="open"):
        client.fetch_bars("BAD")
    with pytest.raises(ParseError, match="date column"):
        client.fetch_bars("NODATE")


def test_csv_invalidate_reloads_file(tmp_path: Path) -> None:
    path = tmp_path / "SPY.csv"
    _write_csv(path)
    client = CsvMarketDataClient(data_dir=str(tmp_path))
    assert client.fetch_latest_quote("SPY").close == 103.5

    frame = pd.read_csv(path)
    frame.loc[frame["Date"] == "2025-01-04", "Close"] = 110.0
    frame.to_csv(path, index=False)

    assert client.fetch_latest_quote("SPY").close == 103.5
    client.invalidate("SPY")
    assert client.fetch_latest_quote("SPY").close == 110.0


def test_csv_universe_without_directory(tmp_path: Path) -> None:
    client = CsvMarketDataClient(data_dir=str(tmp_path / "missing"))

    assert client.fetch_ticker_universe() == []
