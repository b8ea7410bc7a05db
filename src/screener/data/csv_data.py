"""CSV-backed market data client."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pandas as pd

from screener.domain.models import Bar, TickerMeta, bars_from_frame
from screener.errors import ParseError


class CsvMarketDataClient:
    """Load OHLCV bars from `<data_dir>/<SYMBOL>.csv` files."""

    date_column_candidates = ("date", "datetime", "timestamp")

    def __init__(self, data_dir: str) -> None:
        self.data_dir = Path(data_dir)
        self._bars_cache: dict[str, pd.DataFrame] = {}

    def fetch_bars(
        self,
        symbol: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Bar]:
        frame = self._load_bars(symbol)
        if start is not None:
            frame = frame[frame.index >= pd.Timestamp(start)]
        if end is not None:
            frame = frame[frame.index <= pd.Timestamp(end)]
        return bars_from_frame(symbol, frame)

    def fetch_latest_quote(self, symbol: str) -> Bar:
        bars = bars_from_frame(symbol, self._load_bars(symbol))
        return bars[-1]

    def fetch_ticker_universe(self) -> list[TickerMeta]:
        if not self.data_dir.exists():
            return []
        symbols = sorted({path.stem.upper() for path in self.data_dir.glob("*.csv")})
        return [TickerMeta(symbol=symbol) for symbol in symbols]

    def invalidate(self, symbol: str | None = None) -> None:
        if symbol is None:
            self._bars_cache.clear()
        else:
            self._bars_cache.pop(symbol, None)

    def _load_bars(self, symbol: str) -> pd.DataFrame:
        cached = self._bars_cache.get(symbol)
        if cached is not None:
            return cached

        path = self._resolve_path(symbol)
        if path is None:
            raise ValueError(f"No data found for {symbol} under {self.data_dir}")
        frame = pd.read_csv(path)
        normalized = self._normalize_csv(frame, symbol)
        self._bars_cache[symbol] = normalized
        return normalized

    def _resolve_path(self, symbol: str) -> Path | None:
        bare_symbol = symbol.strip()
        for candidate in (
            self.data_dir / f"{bare_symbol.upper()}.csv",
            self.data_dir / f"{bare_symbol.lower()}.csv",
        ):
            if candidate.exists():
                return candidate
        return None

    def _normalize_csv(self, frame: pd.DataFrame, symbol: str) -> pd.DataFrame:
        lower_to_original = {column.strip().lower(): column for column in frame.columns}
        date_column = self._pick_date_column(lower_to_original, symbol)
        rename_map = self._build_ohlcv_rename_map(lower_to_original, symbol)
        normalized = frame.rename(columns=rename_map)
        normalized.index = pd.to_datetime(normalized[date_column], utc=True)
        normalized = normalized.sort_index()
        normalized = normalized[["open", "high", "low", "close", "volume"]].copy()
        normalized = normalized.apply(pd.to_numeric, errors="coerce")
        normalized = normalized.dropna(subset=["open", "high", "low", "close"])
        normalized["volume"] = normalized["volume"].fillna(0.0)
        if normalized.empty:
            raise ParseError(f"{symbol}: data has no valid OHLCV rows")
        return normalized

    def _pick_date_column(self, lower_to_original: dict[str, str], symbol: str) -> str:
        for candidate in self.date_column_candidates:
            if candidate in lower_to_original:
                return lower_to_original[candidate]
        candidates = ", ".join(self.date_column_candidates)
        raise ParseError(f"{symbol}: CSV missing date column. Expected one of: {candidates}")

    @staticmethod
    def _build_ohlcv_rename_map(
        lower_to_original: dict[str, str],
        symbol: str,
    ) -> dict[str, str]:
        rename_map: dict[str, str] = {}
        for name in ("open", "high", "low", "close", "volume"):
            source = lower_to_original.get(name)
            if source is None:
                raise ParseError(f"{symbol}: CSV missing required column '{name}'")
            rename_map[source] = name
        return rename_map
