"""
Exit Engine - Type Definitions.

ExitDecision is produced per position per cycle and never
persisted; ExitBatchResult summarises one run_batch pass.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from storage.types import Position, PositionState


class ExitTrigger(str, Enum):
    """Rule that produced an exit decision."""
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"
    MAX_HOLDING_TIME = "max_holding_time"
    NONE = "none"


@dataclass(frozen=True)
class ExitDecision:
    """
    Outcome of evaluating one position.

    current_pnl is fractional: 0.2 means +20%.
    """
    should_exit: bool
    reason: str
    current_pnl: float
    trigger: ExitTrigger = ExitTrigger.NONE
    current_price: Optional[float] = None
    position_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position_id": self.position_id,
            "should_exit": self.should_exit,
            "reason": self.reason,
            "current_pnl": self.current_pnl,
            "trigger": self.trigger.value,
            "current_price": self.current_price,
        }


@dataclass
class ExitBatchResult:
    """Summary of one pass over the open positions."""
    started_at: datetime
    evaluated: int = 0
    exits_requested: int = 0
    exits_executed: int = 0
    execution_failures: int = 0
    failures: Dict[str, str] = field(default_factory=dict)
    decisions: List[ExitDecision] = field(default_factory=list)
    closed: List[Position] = field(default_factory=list)
    finished_at: Optional[datetime] = None

    @property
    def failed(self) -> int:
        return len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "evaluated": self.evaluated,
            "exits_requested": self.exits_requested,
            "exits_executed": self.exits_executed,
            "execution_failures": self.execution_failures,
            "failures": dict(self.failures),
        }


__all__ = [
    "ExitTrigger",
    "ExitDecision",
    "ExitBatchResult",
    "PositionState",
]
