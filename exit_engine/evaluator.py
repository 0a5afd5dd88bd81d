"""
Exit Engine - Exit Evaluator.

============================================================
PURPOSE
============================================================
Decides, for each open position, whether to close it now.

RULES (fixed order, first match wins):
1. Take profit:  pnl >= take_profit_threshold
                 or price >= position.take_profit_price
2. Stop loss:    pnl <= stop_loss_threshold
                 or price <= position.stop_loss_price
3. Max holding:  now - entry_time >= max_holding_seconds
4. Otherwise:    no exit, P&L reported

pnl = (amount * price - fees - amount * entry_price) / (amount * entry_price)

Thresholds are inclusive within PNL_TOLERANCE, so a price of exactly
0.90 on a 1.00 entry hits a -10% stop despite float rounding.
fees are the exit fees reported by the executor (0 while evaluating).

============================================================
BATCH MODE
============================================================
- Open positions fetch failing aborts the batch (RepositoryError)
- Positions are evaluated concurrently, bounded by a semaphore
- One position failing is logged and never stops the others
- Exits go OPEN -> EXIT_REQUESTED -> executor -> CLOSED;
  a failed execution returns the position to OPEN
- Repository writes go through the RetryQueue

============================================================
"""

import asyncio
import logging
import math
from datetime import datetime
from typing import Optional, Tuple

from core.clock import ClockProtocol, SystemClock, ensure_utc
from core.exceptions import InvalidMetricError, RepositoryError
from data_sources.aggregator import PriceAggregator
from execution_engine.executor import TradeExecutor
from execution_engine.types import ExecutionResult
from resilience.retry import RetryQueue
from storage.repositories.base import PositionRepository
from storage.types import Position, PositionState, TradeRecord

from .config import ExitConfig
from .state_machine import PositionStateMachine
from .types import ExitBatchResult, ExitDecision, ExitTrigger


logger = logging.getLogger(__name__)

PNL_TOLERANCE = 1e-9


def fractional_pnl(
    entry_price: float,
    amount: float,
    current_price: float,
    fees: float = 0.0,
) -> float:
    """
    P&L as a fraction of entry value, net of fees.

    Raises:
        InvalidMetricError: entry value not positive, or a non-finite result
    """
    entry_value = amount * entry_price
    if not math.isfinite(entry_value) or entry_value <= 0:
        raise InvalidMetricError(
            f"Entry value must be positive, got {entry_value}",
            metric="entry_value",
            value=entry_value,
        )
    pnl = (amount * current_price - fees - entry_value) / entry_value
    if not math.isfinite(pnl):
        raise InvalidMetricError(f"Non-finite P&L {pnl}", metric="current_pnl", value=pnl)
    return pnl


def reaches(pnl: float, threshold: float, above: bool) -> bool:
    """Inclusive threshold test that absorbs float rounding at the boundary."""
    if math.isclose(pnl, threshold, rel_tol=0.0, abs_tol=PNL_TOLERANCE):
        return True
    return pnl > threshold if above else pnl < threshold


class ExitEvaluator:
    """
    Take-profit / stop-loss / holding-time exits for open positions.

    Usage:
        evaluator = ExitEvaluator(aggregator, repository, executor, retry_queue)
        decision = await evaluator.evaluate(position)
        batch = await evaluator.run_batch()
    """

    def __init__(
        self,
        aggregator: PriceAggregator,
        repository: PositionRepository,
        executor: TradeExecutor,
        retry_queue: Optional[RetryQueue] = None,
        config: Optional[ExitConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._aggregator = aggregator
        self._repository = repository
        self._executor = executor
        self._retry_queue = retry_queue or RetryQueue()
        self._config = config or ExitConfig()
        self._clock = clock or SystemClock()

    @property
    def config(self) -> ExitConfig:
        return self._config

    @property
    def retry_queue(self) -> RetryQueue:
        return self._retry_queue

    # =========================================================
    # SINGLE POSITION
    # =========================================================

    async def evaluate(self, position: Position, now: Optional[datetime] = None) -> ExitDecision:
        """
        Fetch a fresh price and apply the exit rules.

        Raises:
            AllProvidersFailedError: no price available
            InvalidMetricError: degenerate entry value
        """
        quote = await self._aggregator.get_price(position.asset_id)
        return self.decide(position, quote.price, now)

    def decide(
        self,
        position: Position,
        current_price: float,
        now: Optional[datetime] = None,
    ) -> ExitDecision:
        """Apply the exit rules to a known price. Pure."""
        now = ensure_utc(now) if now else self._clock.now()
        pnl = fractional_pnl(position.entry_price, position.amount, current_price)
        cfg = self._config

        if reaches(pnl, cfg.take_profit_threshold, above=True) or (
            position.take_profit_price is not None and current_price >= position.take_profit_price
        ):
            return self._decision(
                position, True, f"Take profit triggered at {pnl * 100:.2f}%",
                pnl, ExitTrigger.TAKE_PROFIT, current_price,
            )

        if reaches(pnl, cfg.stop_loss_threshold, above=False) or (
            position.stop_loss_price is not None and current_price <= position.stop_loss_price
        ):
            return self._decision(
                position, True, f"Stop loss triggered at {pnl * 100:.2f}%",
                pnl, ExitTrigger.STOP_LOSS, current_price,
            )

        held = (now - ensure_utc(position.entry_time)).total_seconds()
        if held >= cfg.max_holding_seconds:
            return self._decision(
                position, True, f"Maximum holding time reached ({held / 60:.0f} minutes)",
                pnl, ExitTrigger.MAX_HOLDING_TIME, current_price,
            )

        return self._decision(
            position, False, "No exit conditions met",
            pnl, ExitTrigger.NONE, current_price,
        )

    @staticmethod
    def _decision(
        position: Position,
        should_exit: bool,
        reason: str,
        pnl: float,
        trigger: ExitTrigger,
        price: float,
    ) -> ExitDecision:
        return ExitDecision(
            should_exit=should_exit,
            reason=reason,
            current_pnl=pnl,
            trigger=trigger,
            current_price=price,
            position_id=position.position_id,
        )

    # =========================================================
    # BATCH
    # =========================================================

    async def run_batch(self, now: Optional[datetime] = None) -> ExitBatchResult:
        """
        Evaluate every open position and execute the exits.

        Raises:
            RepositoryError: open positions could not be fetched
        """
        now = ensure_utc(now) if now else self._clock.now()
        result = ExitBatchResult(started_at=now)

        try:
            positions = await self._repository.get_open_positions()
        except RepositoryError:
            raise
        except Exception as e:
            raise RepositoryError(
                f"Failed to fetch open positions: {e}",
                operation="get_open_positions",
                cause=e,
            ) from e

        positions = [p for p in positions if p.status != PositionState.CLOSED]
        if not positions:
            result.finished_at = self._clock.now()
            return result

        semaphore = asyncio.Semaphore(self._config.max_concurrent_evaluations)

        async def guarded(position: Position):
            async with semaphore:
                return await self._process(position, now)

        outcomes = await asyncio.gather(
            *(guarded(p) for p in positions),
            return_exceptions=True,
        )

        for position, outcome in zip(positions, outcomes):
            if isinstance(outcome, BaseException):
                result.failures[position.position_id] = str(outcome) or type(outcome).__name__
                logger.warning(
                    f"Exit evaluation failed for position {position.position_id} "
                    f"({position.asset_id}): {outcome}"
                )
                continue

            decision, closed = outcome
            result.evaluated += 1
            result.decisions.append(decision)
            if decision.should_exit:
                result.exits_requested += 1
                if closed is not None:
                    result.exits_executed += 1
                    result.closed.append(closed)
                else:
                    result.execution_failures += 1

        result.finished_at = self._clock.now()
        logger.info(
            f"Exit batch: evaluated={result.evaluated} exits={result.exits_executed}/"
            f"{result.exits_requested} failed={result.failed}"
        )
        return result

    async def _process(self, position: Position, now: datetime) -> Tuple[ExitDecision, Optional[Position]]:
        decision = await self.evaluate(position, now)

        if not decision.should_exit:
            logger.debug(
                f"Position {position.position_id} held: pnl={decision.current_pnl:.4f}"
            )
            if self._config.track_unrealized_pnl:
                pnl = decision.current_pnl
                self._retry_queue.enqueue(
                    f"position:{position.position_id}:unrealized",
                    lambda: self._repository.update_position(
                        position.position_id, {"unrealized_pnl": pnl},
                    ),
                )
            return decision, None

        machine = PositionStateMachine(position)
        machine.request_exit(decision.reason)

        try:
            execution = await self._executor.execute_exit(machine.position, decision)
        except Exception as e:
            machine.revert_to_open(str(e))
            logger.error(f"Exit execution raised for position {position.position_id}: {e}")
            return decision, None

        if not execution.success:
            machine.revert_to_open(execution.message or execution.code.value)
            logger.warning(
                f"Exit execution rejected for position {position.position_id}: "
                f"{execution.code.value} {execution.message}"
            )
            return decision, None

        exit_price = execution.fill_price or decision.current_price
        realized = fractional_pnl(
            position.entry_price, position.amount, exit_price, fees=execution.fees,
        )
        machine.mark_closed(
            exit_price=exit_price,
            realized_pnl=realized,
            closed_at=ensure_utc(execution.executed_at),
            reason=decision.reason,
        )
        self._persist_close(machine.position, execution, decision)
        return decision, machine.position

    def _persist_close(
        self,
        closed: Position,
        execution: ExecutionResult,
        decision: ExitDecision,
    ) -> None:
        fields = {
            "status": PositionState.CLOSED,
            "realized_pnl": closed.realized_pnl,
            "exit_price": closed.exit_price,
            "closed_at": closed.closed_at,
            "unrealized_pnl": None,
        }
        self._retry_queue.enqueue(
            f"position:{closed.position_id}:close",
            lambda: self._repository.update_position(closed.position_id, fields),
        )

        trade = TradeRecord(
            position_id=closed.position_id,
            asset_id=closed.asset_id,
            action="SELL",
            amount=execution.filled_amount or closed.amount,
            price=closed.exit_price,
            executed_at=closed.closed_at,
            tx_id=execution.tx_id,
            pnl=closed.realized_pnl,
            reason=decision.reason,
        )
        self._retry_queue.enqueue(
            f"trade:{trade.trade_id}",
            lambda: self._repository.record_trade(trade),
        )
        logger.info(
            f"Position {closed.position_id} closed @ {closed.exit_price:.8g} "
            f"pnl={closed.realized_pnl * 100:.2f}% ({decision.reason})"
        )
