from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from screener.cli import apply_cli_overrides, build_parser, build_stock_filter, main
from screener.config import Settings


@pytest.fixture
def clean_env(monkeypatch) -> None:
    monkeypatch.setattr("screener.config.load_dotenv", None)
    for name in ("DATA_SOURCE", "STORE_BACKEND", "MAX_TICKS", "HISTORICAL_DATA_DIR"):
        monkeypatch.delenv(name, raising=False)


def _write_csv(path: Path) -> None:
    today = pd.Timestamp.now(tz="UTC").normalize()
    dates = [today - pd.Timedelta(days=offset) for offset in (3, 2, 1)]
    pd.DataFrame(
        {
            "date": [date.isoformat() for date in dates],
            "open": [100.0, 101.0, 102.0],
            "high": [101.0, 102.0, 103.0],
            "low": [99.0, 100.0, 101.0],
            "close": [100.5, 101.5, 102.5],
            "volume": [1000.0, 1100.0, 1200.0],
        }
    ).to_csv(path, index=False)


def test_cli_overrides_produce_expected_settings() -> None:
    parser = build_parser()
    args = parser.parse_args(
        [
            "--tick-seconds",
            "5",
            "--max-ticks",
            "3",
            "--data-source",
            "csv",
            "--historical-dir",
            "historical_data",
            "--state-db",
            "state/test.db",
            "--events-dir",
            "runs/test",
            "--store",
            "memory",
            "--log-level",
            "debug",
        ]
    )
    settings = apply_cli_overrides(Settings(), args)

    assert settings.tick_seconds == 5.0
    assert settings.max_ticks == 3
    assert settings.data_source == "csv"
    assert settings.historical_data_dir == "historical_data"
    assert settings.state_db_path == "state/test.db"
    assert settings.events_dir == "runs/test"
    assert settings.store_backend == "memory"
    assert settings.log_level == "DEBUG"


def test_cli_rejects_non_positive_ticks() -> None:
    parser = build_parser()
    args = parser.parse_args(["--max-ticks", "0"])

    with pytest.raises(ValueError):
        apply_cli_overrides(Settings(), args)


def test_cli_rejects_multiple_actions() -> None:
    parser = build_parser()
    args = parser.parse_args(["--screen", "--priorities"])

    with pytest.raises(ValueError, match="one action"):
        apply_cli_overrides(Settings(), args)


def test_cli_rejects_non_positive_limit() -> None:
    parser = build_parser()
    args = parser.parse_args(["--screen", "--limit", "0"])

    with pytest.raises(ValueError, match="limit"):
        apply_cli_overrides(Settings(), args)


def test_stock_filter_flags() -> None:
    parser = build_parser()
    args = parser.parse_args(
        ["--screen", "--min-price", "5", "--min-volume", "1000", "--sector", "Tech", "--sector", "Energy"]
    )

    stock_filter = build_stock_filter(args)

    assert stock_filter.min_price == 5.0
    assert stock_filter.min_volume == 1000
    assert stock_filter.sectors == ("Tech", "Energy")
    assert stock_filter.max_price is None
    assert stock_filter.uses_rsi is False


def test_rsi_filter_flags() -> None:
    parser = build_parser()
    args = parser.parse_args(["--screen", "--min-rsi", "20", "--max-rsi", "35"])

    stock_filter = build_stock_filter(args)

    assert stock_filter.min_rsi == 20.0
    assert stock_filter.max_rsi == 35.0


def test_cli_rejects_inverted_rsi_range() -> None:
    parser = build_parser()
    args = parser.parse_args(["--screen", "--min-rsi", "60", "--max-rsi", "40"])

    with pytest.raises(ValueError, match="min-rsi"):
        apply_cli_overrides(Settings(), args)


def test_alert_needs_condition_and_value() -> None:
    parser = build_parser()
    args = parser.parse_args(["--alert", "AAPL", "--condition", "price_above"])

    with pytest.raises(ValueError, match="--condition and --value"):
        apply_cli_overrides(Settings(), args)


def test_main_reports_configuration_errors(clean_env, monkeypatch) -> None:
    monkeypatch.setenv("DATA_SOURCE", "bogus")

    assert main(["--priorities"]) == 2


def test_main_priorities_with_memory_store(clean_env) -> None:
    assert main(["--store", "memory", "--priorities"]) == 0


def test_main_watch_and_analyze_with_csv(clean_env, tmp_path: Path) -> None:
    _write_csv(tmp_path / "AAPL.csv")
    common = ["--data-source", "csv", "--historical-dir", str(tmp_path), "--store", "memory"]

    assert main([*common, "--watch", "aapl"]) == 0
    assert main([*common, "--analyze", "AAPL"]) == 0
    assert main([*common, "--analyze", "MSFT"]) == 1
    # Memory stores do not outlive one invocation.
    assert main([*common, "--unwatch", "AAPL"]) == 1


def test_main_reactivate_unknown_symbol(clean_env, tmp_path: Path) -> None:
    db_path = str(tmp_path / "state.db")

    assert main(["--state-db", db_path, "--reactivate", "ZZZZ"]) == 1


def test_main_adds_and_checks_alerts(clean_env, tmp_path: Path) -> None:
    db_path = str(tmp_path / "state.db")
    common = ["--data-source", "csv", "--historical-dir", str(tmp_path), "--state-db", db_path]

    assert main([*common, "--alert", "aapl", "--condition", "rsi_above", "--value", "70"]) == 0
    assert main([*common, "--check-alerts"]) == 0
