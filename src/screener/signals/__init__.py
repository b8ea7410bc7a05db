"""Signal evaluation."""

from .evaluator import (
    OpportunityPolicy,
    SignalReport,
    SignalTag,
    SignalThresholds,
    evaluate_signals,
    is_opportunity,
)

__all__ = [
    "OpportunityPolicy",
    "SignalReport",
    "SignalTag",
    "SignalThresholds",
    "evaluate_signals",
    "is_opportunity",
]
