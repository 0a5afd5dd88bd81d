"""
Risk Management - Type Definitions.

============================================================
DESIGN PRINCIPLES
============================================================
1. Binary decisions only: EXECUTE or BLOCK
2. Every block carries a reason code
3. Exits are never blocked; the guard only gates entries

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class GuardDecision(str, Enum):
    EXECUTE = "EXECUTE"
    BLOCK = "BLOCK"


class BlockReason(str, Enum):
    """Reason codes for a blocked entry."""
    EMERGENCY_STOP = "EMERGENCY_STOP"
    MAX_OPEN_POSITIONS = "MAX_OPEN_POSITIONS"
    MAX_DAILY_TRADES = "MAX_DAILY_TRADES"
    DAILY_LOSS_LIMIT = "DAILY_LOSS_LIMIT"
    CONSECUTIVE_LOSSES = "CONSECUTIVE_LOSSES"
    POSITION_SIZE = "POSITION_SIZE"
    TRADE_SPACING = "TRADE_SPACING"
    DUPLICATE_POSITION = "DUPLICATE_POSITION"


@dataclass(frozen=True)
class TradeGuardResult:
    """Outcome of TradeGuard.check."""
    decision: GuardDecision
    reason: Optional[BlockReason] = None
    message: str = ""
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def allowed(self) -> bool:
        return self.decision == GuardDecision.EXECUTE

    @classmethod
    def execute(cls, checked_at: datetime) -> "TradeGuardResult":
        return cls(decision=GuardDecision.EXECUTE, checked_at=checked_at)

    @classmethod
    def block(cls, reason: BlockReason, message: str, checked_at: datetime) -> "TradeGuardResult":
        return cls(
            decision=GuardDecision.BLOCK,
            reason=reason,
            message=message,
            checked_at=checked_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision": self.decision.value,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
            "checked_at": self.checked_at.isoformat(),
        }
