"""
Risk Scoring Engine - Type Definitions.

============================================================
PURPOSE
============================================================
Output types of the Risk Scorer.

RiskMetrics is computed per evaluation and never persisted
as live state.

============================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class RiskLevel(str, Enum):
    """Coarse bucket of overall_risk, for logs and guards."""

    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @classmethod
    def from_overall(cls, overall_risk: float) -> "RiskLevel":
        if overall_risk < 0.25:
            return cls.LOW
        if overall_risk < 0.5:
            return cls.MODERATE
        if overall_risk < 0.75:
            return cls.HIGH
        return cls.CRITICAL


@dataclass(frozen=True)
class RiskMetrics:
    """
    Risk sub-metrics for one asset evaluation.

    Raw values (volatility, liquidity_depth, market_cap,
    price_feed_reliability, slippage_estimate, wallet_risk) are
    kept as computed; only overall_risk is bounded to [0, 1].
    """

    volatility: float
    liquidity_depth: float
    market_cap: float
    price_feed_reliability: float
    slippage_estimate: float
    wallet_risk: float
    overall_risk: float

    @property
    def level(self) -> RiskLevel:
        return RiskLevel.from_overall(self.overall_risk)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "volatility": self.volatility,
            "liquidity_depth": self.liquidity_depth,
            "market_cap": self.market_cap,
            "price_feed_reliability": self.price_feed_reliability,
            "slippage_estimate": self.slippage_estimate,
            "wallet_risk": self.wallet_risk,
            "overall_risk": self.overall_risk,
            "level": self.level.value,
        }
