"""Market data client implementations."""

from .base import MarketDataClient
from .csv_data import CsvMarketDataClient
from .yfinance_data import NASDAQ_SCREENER_URL, YFinanceMarketDataClient

__all__ = [
    "MarketDataClient",
    "CsvMarketDataClient",
    "NASDAQ_SCREENER_URL",
    "YFinanceMarketDataClient",
]
