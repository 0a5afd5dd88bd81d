"""
Risk Scoring Engine - Configuration.

============================================================
PURPOSE
============================================================
Weights and normalisation constants for the Risk Scorer.

All sub-metrics are normalised to [0, 1] where 1 is the
highest risk, then combined with the weights below.

============================================================
DESIGN PRINCIPLES
============================================================
- Weights always sum to 1 (normalised on construction)
- Conservative defaults
- Provider reliability is a configuration table, not code

============================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


# ============================================================
# WEIGHTS
# ============================================================


@dataclass
class RiskWeights:
    """
    Contribution of each normalised sub-metric to overall_risk.

    Normalised in __post_init__ so they sum to 1.0.
    """

    volatility: float = 0.2
    liquidity_depth: float = 0.2
    market_cap: float = 0.1
    price_feed_reliability: float = 0.2
    slippage: float = 0.2
    wallet: float = 0.1

    def __post_init__(self) -> None:
        values = self.as_dict()
        if any(v < 0 for v in values.values()):
            raise ValueError("Risk weights must be non-negative")
        total = sum(values.values())
        if total <= 0:
            raise ValueError("Risk weights must not all be zero")
        if abs(total - 1.0) > 1e-9:
            self.volatility /= total
            self.liquidity_depth /= total
            self.market_cap /= total
            self.price_feed_reliability /= total
            self.slippage /= total
            self.wallet /= total

    def as_dict(self) -> Dict[str, float]:
        return {
            "volatility": self.volatility,
            "liquidity_depth": self.liquidity_depth,
            "market_cap": self.market_cap,
            "price_feed_reliability": self.price_feed_reliability,
            "slippage": self.slippage,
            "wallet": self.wallet,
        }


# ============================================================
# MASTER CONFIGURATION
# ============================================================


@dataclass
class RiskScoringConfig:
    """
    Configuration for the Risk Scorer.

    ============================================================
    SOURCE RELIABILITY
    ============================================================
    Base trust in each price provider, multiplied by the quote's
    own confidence. Oracle feeds rank above aggregators.

    ============================================================
    """

    weights: RiskWeights = field(default_factory=RiskWeights)

    source_base_reliability: Dict[str, float] = field(default_factory=lambda: {
        "pyth": 1.0,
        "switchboard": 0.95,
        "birdeye": 0.9,
        "jupiter": 0.85,
    })

    unknown_source_reliability: float = 0.5

    wallet_risk_floor: float = 0.1
    """wallet_risk when the asset is not a known bad actor."""

    market_cap_reference_usd: float = 1_000_000_000.0
    """Market cap treated as zero risk (log scale below it)."""

    default_trade_size: float = 1.0
    """Trade size used for slippage when the caller supplies none."""

    def reliability_for(self, source: str) -> float:
        return self.source_base_reliability.get(source, self.unknown_source_reliability)

    def validate(self) -> List[str]:
        errors = []
        for name, value in self.source_base_reliability.items():
            if not 0.0 <= value <= 1.0:
                errors.append(f"source_base_reliability[{name}] must be in [0, 1]")
        if not 0.0 <= self.wallet_risk_floor <= 1.0:
            errors.append("wallet_risk_floor must be in [0, 1]")
        if self.market_cap_reference_usd <= 0:
            errors.append("market_cap_reference_usd must be positive")
        if self.default_trade_size <= 0:
            errors.append("default_trade_size must be positive")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weights": self.weights.as_dict(),
            "source_base_reliability": dict(self.source_base_reliability),
            "unknown_source_reliability": self.unknown_source_reliability,
            "wallet_risk_floor": self.wallet_risk_floor,
            "market_cap_reference_usd": self.market_cap_reference_usd,
            "default_trade_size": self.default_trade_size,
        }
