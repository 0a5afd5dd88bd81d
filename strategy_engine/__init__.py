"""
Strategy Engine Module.

Turns oracle confidence plus risk into sized trade signals.

Usage:
    from strategy_engine import SignalGenerator, SignalConfig

    generator = SignalGenerator(aggregator, market_data, oracle, scorer, breaker, SignalConfig())
    signal = await generator.evaluate(asset)
"""

from .config import SignalConfig
from .engine import SignalGenerator
from .oracle import FeatureVector, HttpScoringOracle, ScoringOracle, build_features
from .types import (
    NoSignalReason,
    PredictionMetrics,
    SignalEvaluation,
    TradeAction,
    TradeSignal,
)


__all__ = [
    "SignalConfig",
    "SignalGenerator",
    "FeatureVector",
    "HttpScoringOracle",
    "ScoringOracle",
    "build_features",
    "NoSignalReason",
    "PredictionMetrics",
    "SignalEvaluation",
    "TradeAction",
    "TradeSignal",
]
