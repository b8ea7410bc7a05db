"""Environment and CLI runtime configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Self

try:
    from dotenv import load_dotenv
except ImportError:
    load_dotenv = None

from screener.data.yfinance_data import NASDAQ_SCREENER_URL
from screener.domain.models import TIER_ORDER, PriorityTier
from screener.errors import DEFAULT_DELISTING_PHRASES, ConfigError
from screener.signals.evaluator import OpportunityPolicy, SignalThresholds

DATA_SOURCES = {"yfinance", "csv"}
STORE_BACKENDS = {"sqlite", "memory"}


@dataclass(frozen=True)
class TierTuning:
    """Refresh cadence and pacing for one priority tier."""

    interval_seconds: int
    batch_size: int
    request_delay_seconds: float
    batch_delay_seconds: float

    def validate(self, tier: PriorityTier) -> None:
        if self.interval_seconds <= 0:
            raise ConfigError(f"{tier} interval_seconds must be positive")
        if self.batch_size <= 0:
            raise ConfigError(f"{tier} batch_size must be positive")
        if self.request_delay_seconds < 0:
            raise ConfigError(f"{tier} request_delay_seconds must be non-negative")
        if self.batch_delay_seconds < 0:
            raise ConfigError(f"{tier} batch_delay_seconds must be non-negative")


DEFAULT_TIERS: dict[PriorityTier, TierTuning] = {
    PriorityTier.HIGH: TierTuning(60, 20, 0.1, 1.0),
    PriorityTier.MEDIUM: TierTuning(300, 50, 0.2, 2.0),
    PriorityTier.LOW: TierTuning(900, 100, 0.5, 5.0),
}


def parse_bool(value: str | None, default: bool) -> bool:
    """Parse truthy environment strings."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def parse_optional_positive_int(value: str | None, *, field_name: str) -> int | None:
    """Parse optional positive integer values from env strings."""
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    parsed = int(text)
    if parsed <= 0:
        raise ConfigError(f"{field_name} must be positive")
    return parsed


def parse_phrases(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    """Parse comma-separated phrases, lower-cased."""
    if not value:
        return default
    phrases = tuple(item.strip().lower() for item in value.split(",") if item.strip())
    return phrases or default


def tier_from_env(tier: PriorityTier, default: TierTuning) -> TierTuning:
    """Read `TIER_<NAME>_*` overrides for one tier."""
    prefix = f"TIER_{tier.name}_"
    return TierTuning(
        interval_seconds=int(os.getenv(f"{prefix}INTERVAL_SECONDS", str(default.interval_seconds))),
        batch_size=int(os.getenv(f"{prefix}BATCH_SIZE", str(default.batch_size))),
        request_delay_seconds=float(
            os.getenv(f"{prefix}REQUEST_DELAY_SECONDS", str(default.request_delay_seconds))
        ),
        batch_delay_seconds=float(
            os.getenv(f"{prefix}BATCH_DELAY_SECONDS", str(default.batch_delay_seconds))
        ),
    )


@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings."""

    data_source: str = "yfinance"
    historical_data_dir: str = "historical_data"
    timeframe: str = "1d"
    history_lookback_days: int = 365
    nasdaq_screener_url: str = NASDAQ_SCREENER_URL
    ticker_limit: int = 0
    request_timeout: int = 20
    state_db_path: str = "state/screener.db"
    events_dir: str = "runs"
    store_backend: str = "sqlite"
    tick_seconds: float = 30.0
    max_ticks: int | None = None
    tiers: dict[PriorityTier, TierTuning] = field(default_factory=lambda: dict(DEFAULT_TIERS))
    compute_indicators: bool = True
    universe_refresh_seconds: int = 86400
    rate_limit_seconds: float = 1.0
    alert_check_seconds: float = 60.0
    delisting_phrases: tuple[str, ...] = DEFAULT_DELISTING_PHRASES
    bars_cache_ttl_seconds: float = 300.0
    indicators_cache_ttl_seconds: float = 300.0
    tickers_cache_ttl_seconds: float = 3600.0
    bars_cache_capacity: int = 1000
    indicators_cache_capacity: int = 1000
    tickers_cache_capacity: int = 10
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    squeeze_bandwidth: float = 10.0
    opportunity_policy: str = "either"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Self:
        """Create settings from environment variables."""
        if load_dotenv is not None:
            load_dotenv()
        raw = cls(
            data_source=str(os.getenv("DATA_SOURCE", "yfinance")).strip().lower(),
            historical_data_dir=str(os.getenv("HISTORICAL_DATA_DIR", "historical_data")).strip(),
            timeframe=str(os.getenv("TIMEFRAME", "1d")).strip(),
            history_lookback_days=int(os.getenv("HISTORY_LOOKBACK_DAYS", "365")),
            nasdaq_screener_url=str(os.getenv("NASDAQ_SCREENER_URL", NASDAQ_SCREENER_URL)).strip(),
            ticker_limit=int(os.getenv("TICKER_LIMIT", "0")),
            request_timeout=int(os.getenv("REQUEST_TIMEOUT", "20")),
            state_db_path=str(os.getenv("STATE_DB_PATH", "state/screener.db")).strip(),
            events_dir=str(os.getenv("EVENTS_DIR", "runs")).strip(),
            store_backend=str(os.getenv("STORE_BACKEND", "sqlite")).strip().lower(),
            tick_seconds=float(os.getenv("TICK_SECONDS", "30")),
            max_ticks=parse_optional_positive_int(os.getenv("MAX_TICKS"), field_name="max_ticks"),
            tiers={tier: tier_from_env(tier, DEFAULT_TIERS[tier]) for tier in TIER_ORDER},
            compute_indicators=parse_bool(os.getenv("COMPUTE_INDICATORS"), True),
            universe_refresh_seconds=int(os.getenv("UNIVERSE_REFRESH_SECONDS", "86400")),
            rate_limit_seconds=float(os.getenv("RATE_LIMIT_SECONDS", "1.0")),
            alert_check_seconds=float(os.getenv("ALERT_CHECK_SECONDS", "60")),
            delisting_phrases=parse_phrases(
                os.getenv("DELISTING_PHRASES"),
                DEFAULT_DELISTING_PHRASES,
            ),
            bars_cache_ttl_seconds=float(os.getenv("BARS_CACHE_TTL_SECONDS", "300")),
            indicators_cache_ttl_seconds=float(os.getenv("INDICATORS_CACHE_TTL_SECONDS", "300")),
            tickers_cache_ttl_seconds=float(os.getenv("TICKERS_CACHE_TTL_SECONDS", "3600")),
            bars_cache_capacity=int(os.getenv("BARS_CACHE_CAPACITY", "1000")),
            indicators_cache_capacity=int(os.getenv("INDICATORS_CACHE_CAPACITY", "1000")),
            tickers_cache_capacity=int(os.getenv("TICKERS_CACHE_CAPACITY", "10")),
            rsi_oversold=float(os.getenv("RSI_OVERSOLD", "30")),
            rsi_overbought=float(os.getenv("RSI_OVERBOUGHT", "70")),
            squeeze_bandwidth=float(os.getenv("SQUEEZE_BANDWIDTH", "10")),
            opportunity_policy=str(os.getenv("OPPORTUNITY_POLICY", "either")).strip().lower(),
            log_level=str(os.getenv("LOG_LEVEL", "INFO")).strip().upper(),
        )
        return raw.validate()

    def with_overrides(self, **kwargs: object) -> Self:
        """Return a new settings object with updated values."""
        updated = replace(self, **kwargs)
        return updated.validate()

    def tier(self, tier: PriorityTier) -> TierTuning:
        return self.tiers[tier]

    def tier_intervals(self) -> dict[PriorityTier, int]:
        return {tier: tuning.interval_seconds for tier, tuning in self.tiers.items()}

    def signal_thresholds(self) -> SignalThresholds:
        return SignalThresholds(
            rsi_oversold=self.rsi_oversold,
            rsi_overbought=self.rsi_overbought,
            squeeze_bandwidth=self.squeeze_bandwidth,
            opportunity_policy=OpportunityPolicy(self.opportunity_policy),
        )

    def validate(self) -> Self:
        """Validate settings fields."""
        if self.data_source not in DATA_SOURCES:
            raise ConfigError("data_source must be one of csv, yfinance")
        if self.store_backend not in STORE_BACKENDS:
            raise ConfigError("store_backend must be one of memory, sqlite")
        if self.tick_seconds <= 0:
            raise ConfigError("tick_seconds must be positive")
        if self.max_ticks is not None and self.max_ticks <= 0:
            raise ConfigError("max_ticks must be positive")
        if self.history_lookback_days <= 0:
            raise ConfigError("history_lookback_days must be positive")
        if self.ticker_limit < 0:
            raise ConfigError("ticker_limit must be non-negative")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")
        if self.universe_refresh_seconds <= 0:
            raise ConfigError("universe_refresh_seconds must be positive")
        if self.rate_limit_seconds < 0:
            raise ConfigError("rate_limit_seconds must be non-negative")
        if self.alert_check_seconds <= 0:
            raise ConfigError("alert_check_seconds must be positive")
        missing = [tier.value for tier in TIER_ORDER if tier not in self.tiers]
        if missing:
            raise ConfigError(f"tiers missing tuning for: {', '.join(missing)}")
        for tier in TIER_ORDER:
            self.tiers[tier].validate(tier)
        for name in (
            "bars_cache_ttl_seconds",
            "indicators_cache_ttl_seconds",
            "tickers_cache_ttl_seconds",
            "bars_cache_capacity",
            "indicators_cache_capacity",
            "tickers_cache_capacity",
        ):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.rsi_oversold >= self.rsi_overbought:
            raise ConfigError("rsi_oversold must be less than rsi_overbought")
        if self.opportunity_policy not in {policy.value for policy in OpportunityPolicy}:
            raise ConfigError("opportunity_policy must be one of either, overbought, oversold")
        if not self.delisting_phrases:
            raise ConfigError("delisting_phrases must not be empty")
        return self
