"""
Risk Management - Configuration.

Account-level limits checked before any entry is executed.
Loss limits are fractional sums of realized P&L for the
current UTC day.
"""

from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(frozen=True)
class TradeGuardConfig:
    """Limits for TradeGuard."""

    max_open_positions: int = 5
    max_daily_trades: int = 20
    max_consecutive_losses: int = 3

    # 0.05 = block new entries after losing 5% today
    daily_loss_limit: float = 0.05

    # 0.15 = halt entries for the rest of the day
    emergency_stop_threshold: float = 0.15

    max_position_size: float = 1.0

    # 0 disables spacing between entries
    min_seconds_between_trades: float = 0.0

    def validate(self) -> List[str]:
        errors = []
        if self.max_open_positions < 1:
            errors.append("max_open_positions must be at least 1")
        if self.max_daily_trades < 1:
            errors.append("max_daily_trades must be at least 1")
        if self.max_consecutive_losses < 1:
            errors.append("max_consecutive_losses must be at least 1")
        if self.daily_loss_limit <= 0:
            errors.append("daily_loss_limit must be positive")
        if self.emergency_stop_threshold < self.daily_loss_limit:
            errors.append("emergency_stop_threshold must be >= daily_loss_limit")
        if self.max_position_size <= 0:
            errors.append("max_position_size must be positive")
        if self.min_seconds_between_trades < 0:
            errors.append("min_seconds_between_trades must be non-negative")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_open_positions": self.max_open_positions,
            "max_daily_trades": self.max_daily_trades,
            "max_consecutive_losses": self.max_consecutive_losses,
            "daily_loss_limit": self.daily_loss_limit,
            "emergency_stop_threshold": self.emergency_stop_threshold,
            "max_position_size": self.max_position_size,
            "min_seconds_between_trades": self.min_seconds_between_trades,
        }
