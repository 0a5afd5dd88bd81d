"""
Risk Management Module.

Account-level entry gate: daily limits, loss streaks and the
emergency stop.
"""

from .config import TradeGuardConfig
from .trade_guard import TradeGuard
from .types import BlockReason, GuardDecision, TradeGuardResult


__all__ = [
    "TradeGuardConfig",
    "TradeGuard",
    "BlockReason",
    "GuardDecision",
    "TradeGuardResult",
]
