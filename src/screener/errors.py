"""Custom exceptions and provider failure classification."""

from __future__ import annotations

import re
from collections.abc import Iterable

DEFAULT_DELISTING_PHRASES = (
    "no data found",
    "symbol may be delisted",
    "invalid symbol",
    "not found",
)

# Markers of failures that clear up on their own. Checked before the
# delisting phrases so a "not found" inside a timed out lookup or a 503
# page is never treated as permanent.
TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "connection",
    "temporarily",
    "rate limit",
    "too many requests",
    "server error",
)

TRANSIENT_STATUS = re.compile(r"\b(?:429|5\d\d)\b")


class ScreenerError(Exception):
    """Base exception for all screener errors."""


class ConfigError(ScreenerError, ValueError):
    """Raised when configuration is invalid or missing."""


class ProviderError(ScreenerError):
    """Transient market data failure; retried on the next scheduled tick."""


class ParseError(ScreenerError):
    """Provider payload could not be normalized; the symbol is skipped this cycle."""


class DelistingError(ScreenerError):
    """Provider reports the symbol has no tradable data; terminal until reactivated."""

    def __init__(self, message: str, reason: str = "no_data_found") -> None:
        super().__init__(message)
        self.reason = reason


def classify_provider_error(
    exc: BaseException,
    delisting_phrases: Iterable[str] = DEFAULT_DELISTING_PHRASES,
) -> ScreenerError:
    """Map any fetch failure onto ProviderError, ParseError or DelistingError.

    Rules, in order:

    1. Already-typed screener errors are returned unchanged.
    2. A message carrying a transient marker (timeouts, connection failures,
       HTTP 429/5xx, rate limiting) is a ProviderError even if it also
       contains a delisting phrase.
    3. A message containing one of ``delisting_phrases`` (case-insensitive
       substring match) is a DelistingError whose reason is the matched phrase
       in snake case.
    4. Everything else is a ProviderError.
    """
    if isinstance(exc, ScreenerError):
        return exc
    message = str(exc).strip() or exc.__class__.__name__
    lowered = message.lower()
    if any(marker in lowered for marker in TRANSIENT_MARKERS):
        return ProviderError(message)
    if TRANSIENT_STATUS.search(lowered):
        return ProviderError(message)
    for phrase in delisting_phrases:
        normalized = phrase.strip().lower()
        if normalized and normalized in lowered:
            return DelistingError(message, reason=normalized.replace(" ", "_"))
    return ProviderError(message)
