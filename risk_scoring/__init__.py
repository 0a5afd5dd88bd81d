"""
Risk Scoring Engine Module.

Converts market and on-chain signals for a candidate asset
into bounded RiskMetrics.

Usage:
    from risk_scoring import RiskScorer

    scorer = RiskScorer()
    metrics = scorer.score(asset, market_data, quote)
"""

from .bad_actors import BadActorRegistry, StaticBadActorRegistry, TokenListBadActorRegistry
from .config import RiskScoringConfig, RiskWeights
from .engine import RiskScorer
from .types import RiskLevel, RiskMetrics


__all__ = [
    "BadActorRegistry",
    "StaticBadActorRegistry",
    "TokenListBadActorRegistry",
    "RiskScoringConfig",
    "RiskWeights",
    "RiskScorer",
    "RiskLevel",
    "RiskMetrics",
]
