"""
Strategy Engine - Type Definitions.

============================================================
CORE CONCEPTS
============================================================
1. SIGNAL: sized trade recommendation, consumed once by the
   executor
2. NO SIGNAL: explicit, logged decision not to trade, with a
   reason

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from data_sources.models import AssetDescriptor
from risk_scoring.types import RiskMetrics


# ============================================================
# ENUMS
# ============================================================


class TradeAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class NoSignalReason(str, Enum):
    """Why a candidate did not produce a signal."""
    LOW_CONFIDENCE = "low_confidence"
    INSUFFICIENT_LIQUIDITY = "insufficient_liquidity"
    EXCESSIVE_SLIPPAGE = "excessive_slippage"


# ============================================================
# SIGNAL
# ============================================================


@dataclass(frozen=True)
class PredictionMetrics:
    """
    expected_return and max_drawdown are percentages;
    reward_to_risk is (confidence - risk_free_rate) / volatility.
    """
    expected_return: float
    max_drawdown: float
    reward_to_risk: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "expected_return": self.expected_return,
            "max_drawdown": self.max_drawdown,
            "reward_to_risk": self.reward_to_risk,
        }


@dataclass(frozen=True)
class TradeSignal:
    """Sized trade recommendation."""
    asset: AssetDescriptor
    action: TradeAction
    confidence: float
    price: float
    volume: float
    suggested_size: float
    risk_metrics: RiskMetrics
    prediction: PredictionMetrics
    price_impact_bps: float
    signal_id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal_id": self.signal_id,
            "asset": self.asset.to_dict(),
            "action": self.action.value,
            "confidence": self.confidence,
            "price": self.price,
            "volume": self.volume,
            "suggested_size": self.suggested_size,
            "risk_metrics": self.risk_metrics.to_dict(),
            "prediction": self.prediction.to_dict(),
            "price_impact_bps": self.price_impact_bps,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class SignalEvaluation:
    """
    Full result of evaluating one candidate.

    Exactly one of signal / no_signal_reason is set.
    """
    asset: AssetDescriptor
    signal: Optional[TradeSignal] = None
    no_signal_reason: Optional[NoSignalReason] = None
    confidence: Optional[float] = None
    risk_metrics: Optional[RiskMetrics] = None
    detail: str = ""

    @property
    def has_signal(self) -> bool:
        return self.signal is not None
