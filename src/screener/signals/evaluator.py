"""Qualitative signal tags derived from indicator snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from screener.domain.models import IndicatorSnapshot


class SignalTag(StrEnum):
    RSI_OVERSOLD = "rsi_oversold"
    RSI_OVERBOUGHT = "rsi_overbought"
    SMA_BULLISH = "sma_bullish"
    SMA_BEARISH = "sma_bearish"
    MACD_BULLISH = "macd_bullish"
    MACD_BEARISH = "macd_bearish"
    BOLLINGER_SQUEEZE = "bollinger_squeeze"
    NEAR_UPPER_BAND = "near_upper_band"
    NEAR_LOWER_BAND = "near_lower_band"
    UPPER_BAND_WALK = "upper_band_walk"
    LOWER_BAND_WALK = "lower_band_walk"
    REVERSAL_FROM_OVERBOUGHT = "reversal_from_overbought"
    REVERSAL_FROM_OVERSOLD = "reversal_from_oversold"
    STOCH_OVERBOUGHT = "stoch_overbought"
    STOCH_OVERSOLD = "stoch_oversold"
    STOCH_BULLISH_CROSS = "stoch_bullish_cross"
    STOCH_BULLISH_CROSS_WEAK = "stoch_bullish_cross_weak"
    STOCH_BEARISH_CROSS = "stoch_bearish_cross"
    STOCH_BEARISH_CROSS_WEAK = "stoch_bearish_cross_weak"
    STOCH_BULLISH_DIVERGENCE = "stoch_bullish_divergence"
    STOCH_BEARISH_DIVERGENCE = "stoch_bearish_divergence"
    CCI_OVERBOUGHT = "cci_overbought"
    CCI_OVERSOLD = "cci_oversold"
    CCI_EXTREME_OVERBOUGHT = "cci_extreme_overbought"
    CCI_EXTREME_OVERSOLD = "cci_extreme_oversold"
    CCI_BULLISH_ZERO_CROSS = "cci_bullish_zero_cross"
    CCI_BEARISH_ZERO_CROSS = "cci_bearish_zero_cross"
    CCI_UPTREND_CONTINUATION = "cci_uptrend_continuation"
    CCI_DOWNTREND_CONTINUATION = "cci_downtrend_continuation"


class OpportunityPolicy(StrEnum):
    """Which RSI extreme counts as an opportunity."""

    OVERSOLD = "oversold"
    OVERBOUGHT = "overbought"
    EITHER = "either"


@dataclass(frozen=True)
class SignalThresholds:
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    squeeze_bandwidth: float = 10.0
    upper_band_touch: float = 0.99
    lower_band_touch: float = 1.01
    percent_b_high: float = 0.8
    percent_b_low: float = 0.2
    stoch_overbought: float = 80.0
    stoch_oversold: float = 20.0
    stoch_midline: float = 50.0
    cci_level: float = 100.0
    cci_extreme: float = 200.0
    opportunity_policy: OpportunityPolicy = OpportunityPolicy.EITHER
    # Only flag an opportunity on the bar where RSI first reaches the threshold.
    require_cross: bool = False

    def __post_init__(self) -> None:
        if self.rsi_oversold >= self.rsi_overbought:
            raise ValueError("rsi_oversold must be less than rsi_overbought")


@dataclass(frozen=True)
class SignalReport:
    tags: list[SignalTag] = field(default_factory=list)
    opportunity: bool = False

    def has(self, tag: SignalTag) -> bool:
        return tag in self.tags


def evaluate_signals(
    snapshot: IndicatorSnapshot,
    prior: IndicatorSnapshot | None = None,
    price: float | None = None,
    thresholds: SignalThresholds = SignalThresholds(),
) -> SignalReport:
    """Tag `snapshot` and decide the opportunity flag.

    Tags comparing two bars (crossovers, band walks, reversals, continuations)
    need `prior`; the rest only look at the current snapshot. Indicators still
    warming up contribute nothing.
    """
    current_price = snapshot.close if price is None else price
    prior_price = prior.close if prior is not None else None

    tags: list[SignalTag] = []
    tags.extend(_rsi_tags(snapshot, thresholds))
    tags.extend(_sma_tags(snapshot, current_price))
    tags.extend(_macd_tags(snapshot))
    tags.extend(_bollinger_tags(snapshot, prior, current_price, prior_price, thresholds))
    tags.extend(_stochastic_tags(snapshot, prior, thresholds))
    tags.extend(_cci_tags(snapshot, prior, thresholds))
    return SignalReport(tags=tags, opportunity=is_opportunity(snapshot, prior, thresholds))


def is_opportunity(
    snapshot: IndicatorSnapshot,
    prior: IndicatorSnapshot | None = None,
    thresholds: SignalThresholds = SignalThresholds(),
) -> bool:
    rsi = snapshot.rsi_14
    if rsi is None:
        return False
    policy = thresholds.opportunity_policy
    oversold = rsi <= thresholds.rsi_oversold
    overbought = rsi >= thresholds.rsi_overbought

    if thresholds.require_cross:
        prior_rsi = prior.rsi_14 if prior is not None else None
        if prior_rsi is None:
            return False
        oversold = oversold and prior_rsi > thresholds.rsi_oversold
        overbought = overbought and prior_rsi < thresholds.rsi_overbought

    if policy == OpportunityPolicy.OVERSOLD:
        return oversold
    if policy == OpportunityPolicy.OVERBOUGHT:
        return overbought
    return oversold or overbought


def _rsi_tags(snapshot: IndicatorSnapshot, thresholds: SignalThresholds) -> list[SignalTag]:
    rsi = snapshot.rsi_14
    if rsi is None:
        return []
    if rsi > thresholds.rsi_overbought:
        return [SignalTag.RSI_OVERBOUGHT]
    if rsi < thresholds.rsi_oversold:
        return [SignalTag.RSI_OVERSOLD]
    return []


def _sma_tags(snapshot: IndicatorSnapshot, price: float) -> list[SignalTag]:
    sma_20, sma_50 = snapshot.sma_20, snapshot.sma_50
    if sma_20 is None or sma_50 is None:
        return []
    if sma_20 > sma_50 and price > sma_20:
        return [SignalTag.SMA_BULLISH]
    if sma_20 < sma_50 and price < sma_20:
        return [SignalTag.SMA_BEARISH]
    return []


def _macd_tags(snapshot: IndicatorSnapshot) -> list[SignalTag]:
    if snapshot.macd is None:
        return []
    if snapshot.macd.macd > snapshot.macd.signal:
        return [SignalTag.MACD_BULLISH]
    return [SignalTag.MACD_BEARISH]


def _bollinger_tags(
    snapshot: IndicatorSnapshot,
    prior: IndicatorSnapshot | None,
    price: float,
    prior_price: float | None,
    thresholds: SignalThresholds,
) -> list[SignalTag]:
    bands = snapshot.bollinger
    if bands is None:
        return []
    tags: list[SignalTag] = []
    if bands.bandwidth < thresholds.squeeze_bandwidth:
        tags.append(SignalTag.BOLLINGER_SQUEEZE)
    if price >= bands.upper * thresholds.upper_band_touch:
        tags.append(SignalTag.NEAR_UPPER_BAND)
    if price <= bands.lower * thresholds.lower_band_touch:
        tags.append(SignalTag.NEAR_LOWER_BAND)

    prior_bands = prior.bollinger if prior is not None else None
    if prior_bands is None or prior_price is None:
        return tags

    if price > bands.upper and prior_price > prior_bands.upper:
        tags.append(SignalTag.UPPER_BAND_WALK)
    elif price < bands.lower and prior_price < prior_bands.lower:
        tags.append(SignalTag.LOWER_BAND_WALK)

    if prior_bands.percent_b > thresholds.percent_b_high and bands.percent_b < thresholds.percent_b_high:
        tags.append(SignalTag.REVERSAL_FROM_OVERBOUGHT)
    elif prior_bands.percent_b < thresholds.percent_b_low and bands.percent_b > thresholds.percent_b_low:
        tags.append(SignalTag.REVERSAL_FROM_OVERSOLD)
    return tags


def _stochastic_tags(
    snapshot: IndicatorSnapshot,
    prior: IndicatorSnapshot | None,
    thresholds: SignalThresholds,
) -> list[SignalTag]:
    current = snapshot.stochastic
    if current is None:
        return []
    tags: list[SignalTag] = []
    if current.k >= thresholds.stoch_overbought and current.d >= thresholds.stoch_overbought:
        tags.append(SignalTag.STOCH_OVERBOUGHT)
    elif current.k <= thresholds.stoch_oversold and current.d <= thresholds.stoch_oversold:
        tags.append(SignalTag.STOCH_OVERSOLD)

    previous = prior.stochastic if prior is not None else None
    if previous is None:
        return tags

    if previous.k <= previous.d and current.k > current.d:
        if current.k < thresholds.stoch_midline:
            tags.append(SignalTag.STOCH_BULLISH_CROSS)
        else:
            tags.append(SignalTag.STOCH_BULLISH_CROSS_WEAK)
    if previous.k >= previous.d and current.k < current.d:
        if current.k > thresholds.stoch_midline:
            tags.append(SignalTag.STOCH_BEARISH_CROSS)
        else:
            tags.append(SignalTag.STOCH_BEARISH_CROSS_WEAK)

    if current.k > thresholds.stoch_overbought and previous.k > current.k:
        tags.append(SignalTag.STOCH_BEARISH_DIVERGENCE)
    elif current.k < thresholds.stoch_oversold and previous.k < current.k:
        tags.append(SignalTag.STOCH_BULLISH_DIVERGENCE)
    return tags


def _cci_tags(
    snapshot: IndicatorSnapshot,
    prior: IndicatorSnapshot | None,
    thresholds: SignalThresholds,
) -> list[SignalTag]:
    current = snapshot.cci_20
    if current is None:
        return []
    level, extreme = thresholds.cci_level, thresholds.cci_extreme
    tags: list[SignalTag] = []
    if current >= level:
        tags.append(SignalTag.CCI_OVERBOUGHT)
    elif current <= -level:
        tags.append(SignalTag.CCI_OVERSOLD)
    if current >= extreme:
        tags.append(SignalTag.CCI_EXTREME_OVERBOUGHT)
    elif current <= -extreme:
        tags.append(SignalTag.CCI_EXTREME_OVERSOLD)

    previous = prior.cci_20 if prior is not None else None
    if previous is None:
        return tags

    if previous < 0 and current >= 0:
        tags.append(SignalTag.CCI_BULLISH_ZERO_CROSS)
    elif previous > 0 and current <= 0:
        tags.append(SignalTag.CCI_BEARISH_ZERO_CROSS)
    if current > level and previous > level:
        tags.append(SignalTag.CCI_UPTREND_CONTINUATION)
    elif current < -level and previous < -level:
        tags.append(SignalTag.CCI_DOWNTREND_CONTINUATION)
    return tags
