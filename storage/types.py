"""
Storage - Domain Records.

============================================================
PURPOSE
============================================================
Plain records exchanged with the position repository.

Position is frozen: evaluators derive new state with
dataclasses.replace and persist it through the repository.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4


class PositionState(str, Enum):
    """Lifecycle of a position. CLOSED is terminal."""
    OPEN = "open"
    EXIT_REQUESTED = "exit_requested"
    CLOSED = "closed"


@dataclass(frozen=True)
class Position:
    """An open or closed holding of one asset."""
    position_id: str
    asset_id: str
    symbol: str
    entry_price: float
    amount: float
    entry_time: datetime
    stop_loss_price: Optional[float] = None
    take_profit_price: Optional[float] = None
    status: PositionState = PositionState.OPEN
    realized_pnl: Optional[float] = None
    unrealized_pnl: Optional[float] = None
    exit_price: Optional[float] = None
    closed_at: Optional[datetime] = None

    @property
    def entry_value(self) -> float:
        return self.amount * self.entry_price

    @property
    def is_open(self) -> bool:
        return self.status != PositionState.CLOSED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position_id": self.position_id,
            "asset_id": self.asset_id,
            "symbol": self.symbol,
            "entry_price": self.entry_price,
            "amount": self.amount,
            "entry_time": self.entry_time.isoformat(),
            "stop_loss_price": self.stop_loss_price,
            "take_profit_price": self.take_profit_price,
            "status": self.status.value,
            "realized_pnl": self.realized_pnl,
            "unrealized_pnl": self.unrealized_pnl,
            "exit_price": self.exit_price,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
        }


@dataclass(frozen=True)
class TradeRecord:
    """Journal entry for an executed entry or exit."""
    position_id: str
    asset_id: str
    action: str
    amount: float
    price: float
    executed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tx_id: Optional[str] = None
    pnl: Optional[float] = None
    reason: str = ""
    trade_id: str = field(default_factory=lambda: str(uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "position_id": self.position_id,
            "asset_id": self.asset_id,
            "action": self.action,
            "amount": self.amount,
            "price": self.price,
            "executed_at": self.executed_at.isoformat(),
            "tx_id": self.tx_id,
            "pnl": self.pnl,
            "reason": self.reason,
        }
