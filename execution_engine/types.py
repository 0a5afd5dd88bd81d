"""
Execution Engine - Type Definitions.

============================================================
PURPOSE
============================================================
Result contract returned by trade executors.

Signing and broadcasting are outside this package; executors
report what happened in an ExecutionResult.

============================================================
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ExecutionResultCode(Enum):
    """Execution result codes."""

    SUCCESS = "SUCCESS"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"

    REJECTED_INSUFFICIENT_BALANCE = "REJECTED_INSUFFICIENT_BALANCE"
    REJECTED_INVALID_QUANTITY = "REJECTED_INVALID_QUANTITY"
    REJECTED_INVALID_PRICE = "REJECTED_INVALID_PRICE"
    REJECTED_SLIPPAGE = "REJECTED_SLIPPAGE"

    FAILED_TIMEOUT = "FAILED_TIMEOUT"
    FAILED_NETWORK = "FAILED_NETWORK"
    FAILED_INTERNAL = "FAILED_INTERNAL"

    @property
    def is_success(self) -> bool:
        return self in (ExecutionResultCode.SUCCESS, ExecutionResultCode.PARTIAL_SUCCESS)


@dataclass(frozen=True)
class ExecutionResult:
    """
    Outcome of one entry or exit.

    filled_amount / fill_price are meaningful only on success.
    """

    code: ExecutionResultCode
    asset_id: str
    side: str
    requested_amount: float
    filled_amount: float = 0.0
    fill_price: float = 0.0
    fees: float = 0.0
    tx_id: Optional[str] = None
    message: str = ""
    execution_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    executed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return self.code.is_success

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "code": self.code.value,
            "asset_id": self.asset_id,
            "side": self.side,
            "requested_amount": self.requested_amount,
            "filled_amount": self.filled_amount,
            "fill_price": self.fill_price,
            "fees": self.fees,
            "tx_id": self.tx_id,
            "message": self.message,
            "executed_at": self.executed_at.isoformat(),
        }
