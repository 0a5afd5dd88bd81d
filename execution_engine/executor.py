"""
Execution Engine - Trade Executors.

============================================================
PURPOSE
============================================================
Boundary between trade decisions and the venue.

- TradeExecutor: interface used by the orchestration loop
  and the exit evaluator
- PaperTradeExecutor: fills at the decision price, no chain
  access; default for dry runs and tests

============================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

from core.clock import ClockProtocol, SystemClock

from .types import ExecutionResult, ExecutionResultCode

if TYPE_CHECKING:
    from exit_engine.types import ExitDecision
    from storage.types import Position
    from strategy_engine.types import TradeSignal


logger = logging.getLogger(__name__)


class TradeExecutor(ABC):
    """
    Executes entries and exits.

    Implementations return a failed ExecutionResult for venue
    rejections and raise ExecutionError for unexpected faults.
    """

    @abstractmethod
    async def execute_entry(self, signal: "TradeSignal") -> ExecutionResult:
        """Open a position for a TradeSignal."""
        pass

    @abstractmethod
    async def execute_exit(self, position: "Position", decision: "ExitDecision") -> ExecutionResult:
        """Close a Position after an exit decision."""
        pass

    async def close(self) -> None:
        return None


class PaperTradeExecutor(TradeExecutor):
    """
    Simulated fills.

    Entry fills at signal.price, exit at decision.current_price.
    A flat fee in basis points of notional is charged.
    """

    def __init__(
        self,
        fee_bps: float = 30.0,
        clock: Optional[ClockProtocol] = None,
    ):
        self._fee_bps = fee_bps
        self._clock = clock or SystemClock()
        self._fills = 0

    @property
    def fill_count(self) -> int:
        return self._fills

    async def execute_entry(self, signal: "TradeSignal") -> ExecutionResult:
        amount = signal.suggested_size
        if amount <= 0:
            return ExecutionResult(
                code=ExecutionResultCode.REJECTED_INVALID_QUANTITY,
                asset_id=signal.asset.identifier,
                side=signal.action.value,
                requested_amount=amount,
                message=f"Invalid size {amount}",
                executed_at=self._clock.now(),
            )
        return self._fill(signal.asset.identifier, signal.action.value, amount, signal.price)

    async def execute_exit(self, position: "Position", decision: "ExitDecision") -> ExecutionResult:
        price = decision.current_price
        if price is None or price <= 0:
            return ExecutionResult(
                code=ExecutionResultCode.REJECTED_INVALID_PRICE,
                asset_id=position.asset_id,
                side="SELL",
                requested_amount=position.amount,
                message=f"Invalid exit price {price}",
                executed_at=self._clock.now(),
            )
        return self._fill(position.asset_id, "SELL", position.amount, price)

    def _fill(self, asset_id: str, side: str, amount: float, price: float) -> ExecutionResult:
        self._fills += 1
        fees = amount * price * self._fee_bps / 10_000
        result = ExecutionResult(
            code=ExecutionResultCode.SUCCESS,
            asset_id=asset_id,
            side=side,
            requested_amount=amount,
            filled_amount=amount,
            fill_price=price,
            fees=fees,
            tx_id=f"paper-{uuid4().hex[:16]}",
            executed_at=self._clock.now(),
        )
        logger.info(f"[paper] {side} {amount:.4f} {asset_id} @ {price:.8g} (tx={result.tx_id})")
        return result
