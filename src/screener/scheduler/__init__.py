"""Refresh scheduling."""

from .priority import (
    PriorityScheduler,
    RefreshOutcome,
    RefreshStatus,
    TierRefreshSummary,
    merge_latest_bar,
)

__all__ = [
    "PriorityScheduler",
    "RefreshOutcome",
    "RefreshStatus",
    "TierRefreshSummary",
    "merge_latest_bar",
]
