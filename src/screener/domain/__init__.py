"""Domain models and event types."""

from .events import ScreenerEvent
from .models import (
    DEFAULT_TIER_INTERVALS,
    TIER_ORDER,
    Alert,
    AlertCondition,
    AlertTrigger,
    Bar,
    BollingerValue,
    IndicatorSnapshot,
    MacdValue,
    PriorityTier,
    StochasticValue,
    SymbolRecord,
    TickerMeta,
    TierCounts,
)

__all__ = [
    "DEFAULT_TIER_INTERVALS",
    "TIER_ORDER",
    "Alert",
    "AlertCondition",
    "AlertTrigger",
    "Bar",
    "BollingerValue",
    "IndicatorSnapshot",
    "MacdValue",
    "PriorityTier",
    "ScreenerEvent",
    "StochasticValue",
    "SymbolRecord",
    "TickerMeta",
    "TierCounts",
]
