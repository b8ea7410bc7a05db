from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from screener.domain.models import (
    BollingerValue,
    IndicatorSnapshot,
    MacdValue,
    StochasticValue,
)
from screener.signals import (
    OpportunityPolicy,
    SignalTag,
    SignalThresholds,
    evaluate_signals,
    is_opportunity,
)

NOW = datetime(2024, 3, 1, tzinfo=UTC)


def snapshot(**values: object) -> IndicatorSnapshot:
    base = IndicatorSnapshot(symbol="AAPL", timestamp=NOW, close=100.0)
    return replace(base, **values)


def prior_of(current: IndicatorSnapshot, **values: object) -> IndicatorSnapshot:
    return replace(current, timestamp=current.timestamp - timedelta(days=1), **values)


def test_warming_up_snapshot_has_no_tags() -> None:
    report = evaluate_signals(snapshot())

    assert report.tags == []
    assert report.opportunity is False


def test_rsi_tags_are_strict_but_opportunity_is_inclusive() -> None:
    at_threshold = evaluate_signals(snapshot(rsi_14=30.0))
    below = evaluate_signals(snapshot(rsi_14=25.0))
    neutral = evaluate_signals(snapshot(rsi_14=50.0))
    overbought = evaluate_signals(snapshot(rsi_14=75.0))

    assert not at_threshold.has(SignalTag.RSI_OVERSOLD)
    assert at_threshold.opportunity is True
    assert below.has(SignalTag.RSI_OVERSOLD)
    assert below.opportunity is True
    assert neutral.opportunity is False
    assert overbought.has(SignalTag.RSI_OVERBOUGHT)
    assert overbought.opportunity is True


def test_opportunity_policy_selects_side() -> None:
    oversold_only = SignalThresholds(opportunity_policy=OpportunityPolicy.OVERSOLD)
    overbought_only = SignalThresholds(opportunity_policy=OpportunityPolicy.OVERBOUGHT)

    assert is_opportunity(snapshot(rsi_14=75.0), thresholds=oversold_only) is False
    assert is_opportunity(snapshot(rsi_14=25.0), thresholds=oversold_only) is True
    assert is_opportunity(snapshot(rsi_14=25.0), thresholds=overbought_only) is False
    assert is_opportunity(snapshot(rsi_14=70.0), thresholds=overbought_only) is True


def test_require_cross_only_flags_first_bar_past_threshold() -> None:
    thresholds = SignalThresholds(require_cross=True)
    current = snapshot(rsi_14=28.0)

    assert is_opportunity(current, prior_of(current, rsi_14=35.0), thresholds) is True
    assert is_opportunity(current, prior_of(current, rsi_14=29.0), thresholds) is False
    assert is_opportunity(current, None, thresholds) is False


def test_thresholds_reject_inverted_rsi_levels() -> None:
    with pytest.raises(ValueError):
        SignalThresholds(rsi_oversold=70.0, rsi_overbought=30.0)


def test_sma_and_macd_tags() -> None:
    bullish = evaluate_signals(
        snapshot(close=110.0, sma_20=105.0, sma_50=100.0, macd=MacdValue(1.0, 0.5, 0.5))
    )
    bearish = evaluate_signals(
        snapshot(close=90.0, sma_20=95.0, sma_50=100.0, macd=MacdValue(-1.0, 0.5, -1.5))
    )
    mixed = evaluate_signals(snapshot(close=100.0, sma_20=105.0, sma_50=100.0))

    assert bullish.has(SignalTag.SMA_BULLISH)
    assert bullish.has(SignalTag.MACD_BULLISH)
    assert bearish.has(SignalTag.SMA_BEARISH)
    assert bearish.has(SignalTag.MACD_BEARISH)
    assert not mixed.has(SignalTag.SMA_BULLISH)
    assert not mixed.has(SignalTag.SMA_BEARISH)


def test_bollinger_single_bar_tags() -> None:
    bands = BollingerValue(upper=110.0, middle=100.0, lower=90.0, bandwidth=5.0, percent_b=0.97)

    near_upper = evaluate_signals(snapshot(close=109.5, bollinger=bands))
    near_lower = evaluate_signals(snapshot(close=90.5, bollinger=bands))
    middle = evaluate_signals(snapshot(close=100.0, bollinger=replace(bands, bandwidth=20.0)))

    assert near_upper.has(SignalTag.BOLLINGER_SQUEEZE)
    assert near_upper.has(SignalTag.NEAR_UPPER_BAND)
    assert near_lower.has(SignalTag.NEAR_LOWER_BAND)
    assert middle.tags == []


def test_bollinger_walk_and_reversal_need_prior() -> None:
    bands = BollingerValue(upper=110.0, middle=100.0, lower=90.0, bandwidth=20.0, percent_b=0.7)
    current = snapshot(close=111.0, bollinger=bands)
    prior = prior_of(current, close=112.0, bollinger=replace(bands, percent_b=0.9))

    alone = evaluate_signals(current)
    paired = evaluate_signals(current, prior)

    assert not alone.has(SignalTag.UPPER_BAND_WALK)
    assert paired.has(SignalTag.UPPER_BAND_WALK)
    assert paired.has(SignalTag.REVERSAL_FROM_OVERBOUGHT)


def test_bollinger_lower_walk_and_reversal_from_oversold() -> None:
    bands = BollingerValue(upper=110.0, middle=100.0, lower=90.0, bandwidth=20.0, percent_b=0.3)
    current = snapshot(close=89.0, bollinger=bands)
    prior = prior_of(current, close=88.0, bollinger=replace(bands, percent_b=0.1))

    report = evaluate_signals(current, prior)

    assert report.has(SignalTag.LOWER_BAND_WALK)
    assert report.has(SignalTag.REVERSAL_FROM_OVERSOLD)


def test_stochastic_crosses_and_midline_strength() -> None:
    current = snapshot(stochastic=StochasticValue(k=30.0, d=25.0))
    prior = prior_of(current, stochastic=StochasticValue(k=20.0, d=25.0))
    weak_current = snapshot(stochastic=StochasticValue(k=60.0, d=55.0))
    weak_prior = prior_of(weak_current, stochastic=StochasticValue(k=50.0, d=55.0))

    strong = evaluate_signals(current, prior)
    weak = evaluate_signals(weak_current, weak_prior)

    assert strong.has(SignalTag.STOCH_BULLISH_CROSS)
    assert weak.has(SignalTag.STOCH_BULLISH_CROSS_WEAK)
    assert not weak.has(SignalTag.STOCH_BULLISH_CROSS)


def test_stochastic_bearish_cross() -> None:
    current = snapshot(stochastic=StochasticValue(k=65.0, d=70.0))
    prior = prior_of(current, stochastic=StochasticValue(k=75.0, d=70.0))

    report = evaluate_signals(current, prior)

    assert report.has(SignalTag.STOCH_BEARISH_CROSS)


def test_stochastic_zones_are_inclusive_and_divergence_needs_prior() -> None:
    current = snapshot(stochastic=StochasticValue(k=85.0, d=80.0))
    prior = prior_of(current, stochastic=StochasticValue(k=90.0, d=82.0))
    oversold = snapshot(stochastic=StochasticValue(k=20.0, d=20.0))

    assert evaluate_signals(current).has(SignalTag.STOCH_OVERBOUGHT)
    assert not evaluate_signals(current).has(SignalTag.STOCH_BEARISH_DIVERGENCE)
    assert evaluate_signals(current, prior).has(SignalTag.STOCH_BEARISH_DIVERGENCE)
    assert evaluate_signals(oversold).has(SignalTag.STOCH_OVERSOLD)


def test_cci_levels_and_crosses() -> None:
    extreme = evaluate_signals(snapshot(cci_20=250.0))
    at_level = evaluate_signals(snapshot(cci_20=-100.0))
    cross_current = snapshot(cci_20=10.0)
    continuation_current = snapshot(cci_20=120.0)

    assert extreme.has(SignalTag.CCI_OVERBOUGHT)
    assert extreme.has(SignalTag.CCI_EXTREME_OVERBOUGHT)
    assert at_level.has(SignalTag.CCI_OVERSOLD)
    assert not at_level.has(SignalTag.CCI_EXTREME_OVERSOLD)
    assert evaluate_signals(cross_current, prior_of(cross_current, cci_20=-20.0)).has(
        SignalTag.CCI_BULLISH_ZERO_CROSS
    )
    assert evaluate_signals(
        continuation_current, prior_of(continuation_current, cci_20=150.0)
    ).has(SignalTag.CCI_UPTREND_CONTINUATION)


def test_explicit_price_overrides_snapshot_close() -> None:
    bands = BollingerValue(upper=110.0, middle=100.0, lower=90.0, bandwidth=20.0, percent_b=0.5)

    report = evaluate_signals(snapshot(close=100.0, bollinger=bands), price=109.5)

    assert report.has(SignalTag.NEAR_UPPER_BAND)
