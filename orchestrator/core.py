"""
Orchestrator - Core.

============================================================
RESPONSIBILITY
============================================================
The orchestration loop.

Each cycle:
1. Fetch open positions (failure aborts the cycle)
2. Collect candidates; skip assets already held
3. Evaluate candidates concurrently (bounded); one failing
   candidate never affects the others
4. Pass signals through the trade guard, execute entries,
   record positions
5. Run the exit batch over open positions

run_forever() starts a cycle every cycle_interval_seconds.
A tick that arrives while the previous cycle is still running
is skipped, never cancelled.

============================================================
ARCHITECTURAL POSITION
============================================================
- No business logic: thresholds live in the engines
- Every collaborator is injected
- The loop never crashes on a cycle error

============================================================
"""

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
from uuid import uuid4

from core.clock import ClockProtocol, SystemClock
from core.exceptions import (
    AllProvidersFailedError,
    OracleUnavailableError,
    RepositoryError,
    TradingException,
)
from data_ingestion.candidates import CandidateSource
from data_sources.aggregator import PriceAggregator
from data_sources.models import AssetDescriptor
from execution_engine.executor import TradeExecutor
from exit_engine.evaluator import ExitEvaluator
from resilience.retry import RetryQueue
from risk_management.trade_guard import TradeGuard
from storage.repositories.base import PositionRepository
from storage.types import Position, TradeRecord
from strategy_engine.engine import SignalGenerator
from strategy_engine.types import SignalEvaluation, TradeSignal

from .models import (
    AssetEvaluation,
    CycleHistory,
    CycleResult,
    EvaluationOutcome,
    OrchestratorConfig,
)


# ============================================================
# LOGGING SETUP
# ============================================================

class JsonLogFormatter(logging.Formatter):
    """One JSON object per line."""

    def __init__(self, correlation_id: Optional[str] = None):
        super().__init__()
        self._correlation_id = correlation_id or ""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": self._correlation_id,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    correlation_id: Optional[str] = None,
) -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level
        log_format: Output format (json or text)
        correlation_id: Correlation ID for tracing

    Returns:
        Configured logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter: logging.Formatter = JsonLogFormatter(correlation_id)
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {correlation_id or ''} | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("orchestrator")


logger = logging.getLogger(__name__)

ShutdownHook = Callable[[], Awaitable[Any]]


# ============================================================
# ORCHESTRATOR
# ============================================================

class TradingOrchestrator:
    """
    Runs entry evaluation and exit evaluation on a fixed cadence.

    Usage:
        orchestrator = TradingOrchestrator(...)
        stop = asyncio.Event()
        await orchestrator.run_forever(stop)
        await orchestrator.close()
    """

    def __init__(
        self,
        candidates: CandidateSource,
        signal_generator: SignalGenerator,
        exit_evaluator: ExitEvaluator,
        repository: PositionRepository,
        executor: TradeExecutor,
        trade_guard: Optional[TradeGuard] = None,
        aggregator: Optional[PriceAggregator] = None,
        retry_queue: Optional[RetryQueue] = None,
        config: Optional[OrchestratorConfig] = None,
        clock: Optional[ClockProtocol] = None,
        shutdown_hooks: Sequence[ShutdownHook] = (),
    ):
        self._config = config or OrchestratorConfig()
        self._candidates = candidates
        self._signals = signal_generator
        self._exits = exit_evaluator
        self._repository = repository
        self._executor = executor
        self._guard = trade_guard or TradeGuard()
        self._aggregator = aggregator
        self._retry_queue = retry_queue or exit_evaluator.retry_queue
        self._clock = clock or SystemClock()
        self._shutdown_hooks = list(shutdown_hooks)

        self._history = CycleHistory(max_size=self._config.cycle_history_size)
        self._cycle_task: Optional[asyncio.Task] = None
        self._health_task: Optional[asyncio.Task] = None
        self._skipped_ticks = 0
        self._last_health: Optional[Dict[str, Any]] = None
        self._closed = False

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def cycle_history(self) -> CycleHistory:
        return self._history

    @property
    def trade_guard(self) -> TradeGuard:
        return self._guard

    @property
    def skipped_ticks(self) -> int:
        return self._skipped_ticks

    @property
    def is_cycle_running(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    # --------------------------------------------------------
    # Cycle
    # --------------------------------------------------------

    async def run_cycle(self) -> CycleResult:
        """
        Run one full cycle.

        Never raises for cycle-level failures; they are recorded on
        the returned CycleResult and logged.
        """
        started = self._clock.now()
        result = CycleResult(
            cycle_id=f"{self._config.correlation_id_prefix}_{uuid4().hex[:12]}",
            started_at=started,
        )

        try:
            await self._run_cycle_steps(result)
            result.success = True
        except RepositoryError as e:
            result.error = e.message
            logger.error(f"Cycle {result.cycle_id} aborted: {e.to_log_format()}")
        except Exception as e:
            result.error = str(e) or type(e).__name__
            logger.error(f"Cycle {result.cycle_id} failed: {e}", exc_info=True)
        finally:
            result.completed_at = self._clock.now()
            await self._history.add(result)

        logger.info(
            f"Cycle {result.cycle_id} {'completed' if result.success else 'failed'} in "
            f"{result.duration_seconds:.2f}s | candidates={result.candidates} "
            f"signals={result.count(EvaluationOutcome.SIGNAL)} "
            f"entries={result.entries_executed} blocked={result.entries_blocked} "
            f"exits={result.exit_batch.exits_executed if result.exit_batch else 0}"
        )
        return result

    async def _run_cycle_steps(self, result: CycleResult) -> None:
        # ----------------------------------------------------
        # 1. Open positions
        # ----------------------------------------------------
        try:
            open_positions = list(await self._repository.get_open_positions())
        except RepositoryError:
            raise
        except Exception as e:
            raise RepositoryError(
                f"Failed to fetch open positions: {e}",
                operation="get_open_positions",
                cause=e,
            ) from e
        result.open_positions = len(open_positions)

        # ----------------------------------------------------
        # 2. Candidates
        # ----------------------------------------------------
        try:
            candidates = await self._candidates.get_candidates()
        except Exception as e:
            logger.warning(f"Candidate source failed, evaluating exits only: {e}")
            candidates = []
        held = {p.asset_id for p in open_positions}

        to_evaluate: List[AssetDescriptor] = []
        for asset in candidates:
            if asset.identifier in held:
                result.evaluations.append(AssetEvaluation(
                    asset_id=asset.identifier,
                    outcome=EvaluationOutcome.SKIPPED,
                    reason="position already open",
                ))
            else:
                to_evaluate.append(asset)

        # ----------------------------------------------------
        # 3. Evaluation
        # ----------------------------------------------------
        evaluations = await self._evaluate_all(to_evaluate)

        signals: List[TradeSignal] = []
        for asset, outcome in zip(to_evaluate, evaluations):
            record = self._classify(asset, outcome)
            result.evaluations.append(record)
            if isinstance(outcome, SignalEvaluation) and outcome.signal is not None:
                signals.append(outcome.signal)

        # ----------------------------------------------------
        # 4. Entries
        # ----------------------------------------------------
        signals.sort(key=lambda s: s.confidence, reverse=True)
        for signal in signals:
            await self._enter(signal, open_positions, result)

        # ----------------------------------------------------
        # 5. Exits
        # ----------------------------------------------------
        batch = await self._exits.run_batch()
        result.exit_batch = batch
        for closed in batch.closed:
            if closed.realized_pnl is not None:
                self._guard.record_exit(closed.realized_pnl)

    async def _evaluate_all(self, assets: List[AssetDescriptor]) -> List[Any]:
        if not assets:
            return []
        semaphore = asyncio.Semaphore(self._config.max_concurrent_evaluations)

        async def guarded(asset: AssetDescriptor) -> SignalEvaluation:
            async with semaphore:
                return await self._signals.evaluate_detailed(asset)

        return await asyncio.gather(*(guarded(a) for a in assets), return_exceptions=True)

    def _classify(self, asset: AssetDescriptor, outcome: Any) -> AssetEvaluation:
        asset_id = asset.identifier

        if isinstance(outcome, BaseException):
            if isinstance(outcome, OracleUnavailableError):
                logger.warning(f"Skipped {asset.symbol} ({asset_id}): oracle unavailable: {outcome}")
            elif isinstance(outcome, AllProvidersFailedError):
                logger.warning(f"Skipped {asset.symbol} ({asset_id}): {outcome}")
            elif isinstance(outcome, TradingException):
                logger.warning(f"Evaluation failed for {asset.symbol}: {outcome.to_log_format()}")
            else:
                logger.error(
                    f"Unexpected error evaluating {asset.symbol} ({asset_id}): {outcome!r}",
                    exc_info=outcome,
                )
            return AssetEvaluation(
                asset_id=asset_id,
                outcome=EvaluationOutcome.FAILED,
                reason=f"{type(outcome).__name__}: {outcome}",
            )

        if outcome.signal is None:
            reason = outcome.no_signal_reason.value if outcome.no_signal_reason else ""
            return AssetEvaluation(
                asset_id=asset_id,
                outcome=EvaluationOutcome.NO_SIGNAL,
                reason=f"{reason}: {outcome.detail}" if outcome.detail else reason,
                confidence=outcome.confidence,
            )

        return AssetEvaluation(
            asset_id=asset_id,
            outcome=EvaluationOutcome.SIGNAL,
            signal_id=outcome.signal.signal_id,
            confidence=outcome.confidence,
        )

    async def _enter(
        self,
        signal: TradeSignal,
        open_positions: List[Position],
        result: CycleResult,
    ) -> None:
        asset = signal.asset
        guard_result = self._guard.check(signal, open_positions)
        if not guard_result.allowed:
            result.entries_blocked += 1
            return

        if self._config.dry_run:
            logger.info(
                f"[dry-run] would {signal.action.value} {signal.suggested_size:.4f} "
                f"{asset.symbol} @ {signal.price:.8g}"
            )
            return

        try:
            execution = await self._executor.execute_entry(signal)
        except Exception as e:
            result.entries_failed += 1
            logger.error(f"Entry execution raised for {asset.symbol}: {e}")
            return

        if not execution.success:
            result.entries_failed += 1
            logger.warning(
                f"Entry rejected for {asset.symbol}: {execution.code.value} {execution.message}"
            )
            return

        exit_cfg = self._exits.config
        entry_price = execution.fill_price or signal.price
        position = Position(
            position_id=str(uuid4()),
            asset_id=asset.identifier,
            symbol=asset.symbol,
            entry_price=entry_price,
            amount=execution.filled_amount,
            entry_time=execution.executed_at,
            stop_loss_price=entry_price * (1 + exit_cfg.stop_loss_threshold),
            take_profit_price=entry_price * (1 + exit_cfg.take_profit_threshold),
        )

        try:
            await self._repository.create_position(position)
        except RepositoryError as e:
            logger.error(f"Failed to record position {position.position_id}, retrying: {e}")
            self._retry_queue.enqueue(
                f"position:{position.position_id}:create",
                lambda: self._repository.create_position(position),
            )

        trade = TradeRecord(
            position_id=position.position_id,
            asset_id=asset.identifier,
            action=signal.action.value,
            amount=execution.filled_amount,
            price=entry_price,
            executed_at=execution.executed_at,
            tx_id=execution.tx_id,
            reason=f"signal {signal.signal_id} confidence={signal.confidence:.3f}",
        )
        self._retry_queue.enqueue(
            f"trade:{trade.trade_id}",
            lambda: self._repository.record_trade(trade),
        )

        self._guard.record_entry()
        open_positions.append(position)
        result.entries_executed += 1
        logger.info(
            f"Opened position {position.position_id}: {execution.filled_amount:.4f} "
            f"{asset.symbol} @ {entry_price:.8g}"
        )

    # --------------------------------------------------------
    # Main Loop
    # --------------------------------------------------------

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Run cycles on a fixed cadence until stop_event is set.

        The cycle in flight when stop is requested is allowed to finish.
        """
        stop_event = stop_event or asyncio.Event()
        interval = self._config.cycle_interval_seconds
        next_health = self._clock.monotonic()

        logger.info(
            f"Starting main loop | interval={interval}s "
            f"health_interval={self._config.health_check_interval_seconds}s"
        )

        while not stop_event.is_set():
            if self.is_cycle_running:
                self._skipped_ticks += 1
                logger.warning("Previous cycle still running, skipping tick")
            else:
                self._cycle_task = asyncio.create_task(self._guarded_cycle())

            if self._clock.monotonic() >= next_health and not self._health_running():
                self._health_task = asyncio.create_task(self._guarded_health_check())
                next_health = self._clock.monotonic() + self._config.health_check_interval_seconds

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Stop requested, waiting for in-flight work")
        for task in (self._cycle_task, self._health_task):
            if task is not None and not task.done():
                await task

    def _health_running(self) -> bool:
        return self._health_task is not None and not self._health_task.done()

    async def _guarded_cycle(self) -> None:
        try:
            await self.run_cycle()
        except Exception as e:
            logger.error(f"Cycle error: {e}", exc_info=True)

    async def _guarded_health_check(self) -> None:
        try:
            await self.health_check()
        except Exception as e:
            logger.error(f"Health check error: {e}", exc_info=True)

    # --------------------------------------------------------
    # Health & Status
    # --------------------------------------------------------

    async def health_check(self) -> Dict[str, Any]:
        """Probe price providers and the repository."""
        checks: Dict[str, Any] = {}

        asset = self._config.health_check_asset
        if self._aggregator is not None and asset:
            try:
                quote = await self._aggregator.get_price(asset)
                checks["price"] = {"healthy": True, "source": quote.source.value, "price": quote.price}
            except Exception as e:
                checks["price"] = {"healthy": False, "error": str(e)}
            checks["providers"] = self._aggregator.health()

        try:
            repo_ok = await self._repository.health_check()
            checks["repository"] = {"healthy": bool(repo_ok)}
        except Exception as e:
            checks["repository"] = {"healthy": False, "error": str(e)}

        checks["trade_guard"] = self._guard.snapshot()
        checks["retry_queue"] = {
            "pending": self._retry_queue.pending_count,
            "dead_letters": len(self._retry_queue.dead_letters),
        }

        healthy = all(
            section.get("healthy", True)
            for key, section in checks.items()
            if key in ("price", "repository")
        )
        report = {
            "healthy": healthy,
            "checked_at": self._clock.now().isoformat(),
            "checks": checks,
            "cycle_success_rate": self._history.get_success_rate(),
        }
        self._last_health = report

        if healthy:
            logger.info("Health check passed")
        else:
            logger.warning(f"Health check failed: {json.dumps(checks, default=str)}")
        return report

    def get_status(self) -> Dict[str, Any]:
        last = self._history.get_last()
        return {
            "cycle_running": self.is_cycle_running,
            "skipped_ticks": self._skipped_ticks,
            "cycle_stats": self._history.get_statistics(),
            "last_cycle": last.to_dict() if last else None,
            "last_health": self._last_health,
            "trade_guard": self._guard.snapshot(),
        }

    # --------------------------------------------------------
    # Shutdown
    # --------------------------------------------------------

    async def close(self) -> None:
        """Flush pending writes and release collaborators. Idempotent."""
        if self._closed:
            return
        self._closed = True

        await self._retry_queue.drain(timeout=self._config.drain_timeout_seconds)
        await self._retry_queue.close()

        for hook in self._shutdown_hooks:
            try:
                await hook()
            except Exception as e:
                logger.error(f"Shutdown hook failed: {e}")
        logger.info("Orchestrator closed")


__all__ = [
    "JsonLogFormatter",
    "TradingOrchestrator",
    "setup_logging",
]
