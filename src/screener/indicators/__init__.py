"""Streaming technical indicators."""

from .atr import AverageTrueRange, volatility_percentile
from .bollinger import BollingerBands
from .cci import CommodityChannelIndex
from .ema import ExponentialMovingAverage, MovingAverageConvergenceDivergence
from .engine import IndicatorEngine, IndicatorSet
from .rsi import WilderRSI
from .sma import SimpleMovingAverage
from .stochastic import StochasticOscillator

__all__ = [
    "AverageTrueRange",
    "BollingerBands",
    "CommodityChannelIndex",
    "ExponentialMovingAverage",
    "IndicatorEngine",
    "IndicatorSet",
    "MovingAverageConvergenceDivergence",
    "SimpleMovingAverage",
    "StochasticOscillator",
    "WilderRSI",
    "volatility_percentile",
]
