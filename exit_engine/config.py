"""
Exit Engine - Configuration.

============================================================
PURPOSE
============================================================
Thresholds for closing open positions.

- take_profit_threshold: fractional P&L at or above which a
  position is closed in profit
- stop_loss_threshold: fractional P&L at or below which a
  position is cut (negative)
- max_holding_seconds: age after which a position is closed
  regardless of P&L

============================================================
"""

from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(frozen=True)
class ExitConfig:
    """Configuration for ExitEvaluator."""

    take_profit_threshold: float = 0.15
    stop_loss_threshold: float = -0.10
    max_holding_seconds: float = 3600.0

    # Bounded fan-out for run_batch
    max_concurrent_evaluations: int = 10

    # Persist unrealized P&L for positions that stay open
    track_unrealized_pnl: bool = True

    def validate(self) -> List[str]:
        errors = []
        if self.take_profit_threshold <= 0:
            errors.append("take_profit_threshold must be positive")
        if self.stop_loss_threshold >= 0:
            errors.append("stop_loss_threshold must be negative")
        if self.max_holding_seconds <= 0:
            errors.append("max_holding_seconds must be positive")
        if self.max_concurrent_evaluations < 1:
            errors.append("max_concurrent_evaluations must be at least 1")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "take_profit_threshold": self.take_profit_threshold,
            "stop_loss_threshold": self.stop_loss_threshold,
            "max_holding_seconds": self.max_holding_seconds,
            "max_concurrent_evaluations": self.max_concurrent_evaluations,
            "track_unrealized_pnl": self.track_unrealized_pnl,
        }
