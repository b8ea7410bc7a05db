"""Ticker universe filters over provider-formatted metadata."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from screener.domain.models import TickerMeta

_SUFFIX_MULTIPLIERS = {
    "T": 1_000_000_000_000.0,
    "B": 1_000_000_000.0,
    "M": 1_000_000.0,
    "K": 1_000.0,
}


@dataclass(frozen=True)
class StockFilter:
    """Inclusive ranges and substring lists; unset fields do not filter.

    A ticker whose value for a constrained field is missing or unparseable is
    rejected.
    """

    min_market_cap: float | None = None
    max_market_cap: float | None = None
    min_price: float | None = None
    max_price: float | None = None
    min_volume: int | None = None
    max_volume: int | None = None
    min_pct_change: float | None = None
    max_pct_change: float | None = None
    min_rsi: float | None = None
    max_rsi: float | None = None
    sectors: tuple[str, ...] = ()
    countries: tuple[str, ...] = ()
    industries: tuple[str, ...] = ()
    min_ipo_year: int | None = None
    max_ipo_year: int | None = None

    @property
    def uses_rsi(self) -> bool:
        return self.min_rsi is not None or self.max_rsi is not None


def should_ignore_symbol(symbol: str) -> bool:
    """Skip indices, share-class and warrant style symbols."""
    text = symbol.strip()
    return not text or any(marker in text for marker in ("^", "/", "*"))


def parse_market_cap(text: str | None) -> float | None:
    """Parse values like `$1.5B`, `$500M`, `2,000,000`."""
    if text is None:
        return None
    cleaned = text.replace("$", "").replace(",", "").strip().upper()
    if not cleaned:
        return None
    multiplier = _SUFFIX_MULTIPLIERS.get(cleaned[-1])
    if multiplier is not None:
        cleaned = cleaned[:-1]
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value * multiplier if multiplier is not None else value


def parse_price(text: str | None) -> float | None:
    if text is None:
        return None
    try:
        return float(text.replace("$", "").replace(",", "").strip())
    except ValueError:
        return None


def parse_volume(text: str | None) -> int | None:
    if text is None:
        return None
    try:
        return int(text.replace(",", "").strip())
    except ValueError:
        return None


def parse_percentage(text: str | None) -> float | None:
    if text is None:
        return None
    try:
        return float(text.replace("%", "").strip())
    except ValueError:
        return None


def parse_ipo_year(text: str | None) -> int | None:
    if text is None:
        return None
    try:
        return int(text.strip())
    except ValueError:
        return None


def passes_basic_filters(ticker: TickerMeta, stock_filter: StockFilter) -> bool:
    """Apply every metadata constraint (everything except RSI)."""
    checks = (
        (parse_market_cap(ticker.market_cap), stock_filter.min_market_cap, stock_filter.max_market_cap),
        (parse_price(ticker.last_sale), stock_filter.min_price, stock_filter.max_price),
        (parse_volume(ticker.volume), stock_filter.min_volume, stock_filter.max_volume),
        (parse_percentage(ticker.pct_change), stock_filter.min_pct_change, stock_filter.max_pct_change),
        (parse_ipo_year(ticker.ipo_year), stock_filter.min_ipo_year, stock_filter.max_ipo_year),
    )
    for value, minimum, maximum in checks:
        if not _in_range(value, minimum, maximum):
            return False

    memberships = (
        (ticker.sector, stock_filter.sectors),
        (ticker.country, stock_filter.countries),
        (ticker.industry, stock_filter.industries),
    )
    for value, allowed in memberships:
        if allowed and not _matches_any(value, allowed):
            return False
    return True


def passes_rsi_filter(rsi: float | None, stock_filter: StockFilter) -> bool:
    if not stock_filter.uses_rsi:
        return True
    return _in_range(rsi, stock_filter.min_rsi, stock_filter.max_rsi)


def filter_tickers(
    tickers: Iterable[TickerMeta],
    stock_filter: StockFilter,
    rsi_by_symbol: Mapping[str, float | None] | None = None,
) -> list[TickerMeta]:
    """Return tickers passing the metadata filters and the RSI range.

    An RSI range needs `rsi_by_symbol`; symbols missing from it are rejected.
    """
    if stock_filter.uses_rsi and rsi_by_symbol is None:
        raise ValueError("an RSI range needs rsi_by_symbol values")
    rsi_values = rsi_by_symbol or {}
    selected: list[TickerMeta] = []
    for ticker in tickers:
        if not passes_basic_filters(ticker, stock_filter):
            continue
        if not passes_rsi_filter(rsi_values.get(ticker.symbol), stock_filter):
            continue
        selected.append(ticker)
    return selected


def top_performers(tickers: Iterable[TickerMeta], limit: int = 10) -> list[TickerMeta]:
    """Tickers with a parseable percent change, best first."""
    ranked: list[tuple[float, TickerMeta]] = []
    for ticker in tickers:
        pct = parse_percentage(ticker.pct_change)
        if pct is not None:
            ranked.append((pct, ticker))
    ranked.sort(key=lambda item: item[0], reverse=True)
    return [ticker for _, ticker in ranked[: max(0, limit)]]


def _in_range(value: float | int | None, minimum: float | int | None, maximum: float | int | None) -> bool:
    if minimum is None and maximum is None:
        return True
    if value is None:
        return False
    if minimum is not None and value < minimum:
        return False
    if maximum is not None and value > maximum:
        return False
    return True


def _matches_any(value: str | None, allowed: Iterable[str]) -> bool:
    if value is None:
        return False
    lowered = value.lower()
    return any(candidate.lower() in lowered for candidate in allowed)
