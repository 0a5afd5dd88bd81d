"""
Tests for the orchestration loop.

============================================================
PURPOSE
============================================================
- A cycle evaluates candidates, enters, then runs exits
- Held assets are skipped, failing candidates isolated
- Guard blocks and dry runs never reach the executor
- Storage failures are recorded on the cycle, never raised
- Overlapping ticks are skipped, not cancelled

============================================================
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from core.clock import MockClock
from core.exceptions import OracleUnavailableError, RepositoryError
from data_ingestion.candidates import CandidateSource, StaticCandidateSource
from execution_engine.executor import PaperTradeExecutor
from exit_engine.evaluator import ExitEvaluator
from orchestrator.core import TradingOrchestrator
from orchestrator.models import EvaluationOutcome, OrchestratorConfig
from resilience.retry import RetryPolicy, RetryQueue
from risk_management.config import TradeGuardConfig
from risk_management.trade_guard import TradeGuard
from storage.repositories.memory import InMemoryPositionRepository
from strategy_engine.types import NoSignalReason, SignalEvaluation
from tests.factories import (
    BONK_MINT,
    SOL_MINT,
    T0,
    StaticPrices,
    make_asset,
    make_position,
    make_signal,
    no_sleep,
)


# ============================================================
# FIXTURES
# ============================================================

BONK = make_asset(BONK_MINT, symbol="BONK")
SOL = make_asset(SOL_MINT, symbol="SOL")


class ScriptedSignals:
    """Signal generator stand-in keyed by asset identifier."""

    def __init__(self, outcomes, blocker=None):
        self.outcomes = outcomes
        self.blocker = blocker
        self.calls = []

    async def evaluate_detailed(self, asset):
        self.calls.append(asset.identifier)
        if self.blocker is not None:
            await self.blocker.wait()
        outcome = self.outcomes[asset.identifier]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FailingCandidates(CandidateSource):
    async def get_candidates(self):
        raise ConnectionError("channel gone")


class FlakyCreateRepository(InMemoryPositionRepository):
    """Rejects the first create_position call."""

    def __init__(self):
        super().__init__()
        self.create_calls = 0

    async def create_position(self, position):
        self.create_calls += 1
        if self.create_calls == 1:
            raise RepositoryError("connection reset", operation="create_position")
        await super().create_position(position)


def _signal(asset, confidence=0.8):
    return SignalEvaluation(
        asset=asset,
        signal=make_signal(asset=asset, confidence=confidence),
        confidence=confidence,
    )


def _no_signal(asset):
    return SignalEvaluation(
        asset=asset,
        no_signal_reason=NoSignalReason.LOW_CONFIDENCE,
        confidence=0.5,
        detail="confidence 0.500 < 0.67",
    )


@pytest.fixture
def clock():
    return MockClock(T0)


@pytest.fixture
def repository():
    return InMemoryPositionRepository()


def _orchestrator(
    clock,
    repository,
    signals,
    candidates=(),
    prices=None,
    guard_config=None,
    config=None,
    aggregator=None,
    shutdown_hooks=(),
):
    retry_queue = RetryQueue(RetryPolicy(max_attempts=2), sleep=no_sleep)
    executor = PaperTradeExecutor(fee_bps=0, clock=clock)
    exits = ExitEvaluator(
        StaticPrices(prices or {}),
        repository,
        executor,
        retry_queue=retry_queue,
        clock=clock,
    )
    if not isinstance(candidates, CandidateSource):
        candidates = StaticCandidateSource(candidates)
    return TradingOrchestrator(
        candidates=candidates,
        signal_generator=signals,
        exit_evaluator=exits,
        repository=repository,
        executor=executor,
        trade_guard=TradeGuard(guard_config or TradeGuardConfig(), clock=clock),
        aggregator=aggregator,
        retry_queue=retry_queue,
        config=config or OrchestratorConfig(),
        clock=clock,
        shutdown_hooks=shutdown_hooks,
    )


# ============================================================
# CYCLE
# ============================================================

class TestRunCycle:
    """Tests for a single cycle."""

    @pytest.mark.asyncio
    async def test_signal_opens_position(self, clock, repository):
        """Test that a signal passes the guard, executes and records a position."""
        orchestrator = _orchestrator(
            clock, repository, ScriptedSignals({BONK_MINT: _signal(BONK)}),
            candidates=[BONK], prices={BONK_MINT: 2.0},
        )

        result = await orchestrator.run_cycle()
        await orchestrator.close()

        assert result.success
        assert result.entries_executed == 1
        assert result.count(EvaluationOutcome.SIGNAL) == 1

        [position] = await repository.get_open_positions()
        assert position.asset_id == BONK_MINT
        assert position.entry_price == 2.0
        assert position.amount == 0.5
        assert position.stop_loss_price == pytest.approx(1.8)
        assert position.take_profit_price == pytest.approx(2.3)

        trades = await repository.get_trades(position.position_id)
        assert [t.action for t in trades] == ["BUY"]
        assert orchestrator.trade_guard.daily_trades == 1
        assert result.exit_batch.evaluated == 1

    @pytest.mark.asyncio
    async def test_held_asset_skipped(self, clock, repository):
        """Test that a candidate with an open position is not evaluated."""
        await repository.create_position(make_position(asset_id=BONK_MINT))
        signals = ScriptedSignals({})
        orchestrator = _orchestrator(
            clock, repository, signals, candidates=[BONK], prices={BONK_MINT: 1.0},
        )

        result = await orchestrator.run_cycle()

        assert signals.calls == []
        assert result.evaluations[0].outcome == EvaluationOutcome.SKIPPED
        assert result.open_positions == 1

    @pytest.mark.asyncio
    async def test_failed_candidate_isolated(self, clock, repository):
        """Test that one failing evaluation does not affect the others."""
        signals = ScriptedSignals({
            SOL_MINT: OracleUnavailableError("oracle timed out"),
            BONK_MINT: _signal(BONK),
        })
        orchestrator = _orchestrator(
            clock, repository, signals, candidates=[SOL, BONK], prices={BONK_MINT: 2.0},
        )

        result = await orchestrator.run_cycle()
        await orchestrator.close()

        outcomes = {e.asset_id: e.outcome for e in result.evaluations}
        assert outcomes == {SOL_MINT: EvaluationOutcome.FAILED, BONK_MINT: EvaluationOutcome.SIGNAL}
        assert result.success
        assert result.entries_executed == 1

    @pytest.mark.asyncio
    async def test_no_signal_recorded(self, clock, repository):
        """Test that a no-signal outcome carries its reason."""
        orchestrator = _orchestrator(
            clock, repository, ScriptedSignals({BONK_MINT: _no_signal(BONK)}), candidates=[BONK],
        )

        result = await orchestrator.run_cycle()

        [evaluation] = result.evaluations
        assert evaluation.outcome == EvaluationOutcome.NO_SIGNAL
        assert evaluation.reason.startswith("low_confidence")
        assert result.entries_executed == 0

    @pytest.mark.asyncio
    async def test_guard_blocks_entry(self, clock, repository):
        """Test that a guard block prevents execution."""
        await repository.create_position(make_position(asset_id=SOL_MINT))
        orchestrator = _orchestrator(
            clock, repository, ScriptedSignals({BONK_MINT: _signal(BONK)}),
            candidates=[BONK], prices={SOL_MINT: 1.0},
            guard_config=TradeGuardConfig(max_open_positions=1),
        )

        result = await orchestrator.run_cycle()

        assert result.entries_blocked == 1
        assert result.entries_executed == 0
        assert len(await repository.get_open_positions()) == 1

    @pytest.mark.asyncio
    async def test_entries_ordered_by_confidence(self, clock, repository):
        """Test that the most confident signal takes the last open slot."""
        signals = ScriptedSignals({
            BONK_MINT: _signal(BONK, confidence=0.7),
            SOL_MINT: _signal(SOL, confidence=0.9),
        })
        orchestrator = _orchestrator(
            clock, repository, signals, candidates=[BONK, SOL],
            prices={BONK_MINT: 2.0, SOL_MINT: 2.0},
            guard_config=TradeGuardConfig(max_open_positions=1),
        )

        result = await orchestrator.run_cycle()
        await orchestrator.close()

        [position] = await repository.get_open_positions()
        assert position.asset_id == SOL_MINT
        assert result.entries_blocked == 1

    @pytest.mark.asyncio
    async def test_dry_run_skips_execution(self, clock, repository):
        """Test that dry runs log signals without entering."""
        orchestrator = _orchestrator(
            clock, repository, ScriptedSignals({BONK_MINT: _signal(BONK)}),
            candidates=[BONK], config=OrchestratorConfig(dry_run=True),
        )

        result = await orchestrator.run_cycle()

        assert result.success
        assert result.entries_executed == 0
        assert await repository.get_open_positions() == []

    @pytest.mark.asyncio
    async def test_repository_failure_recorded(self, clock):
        """Test that a failing position fetch aborts the cycle without raising."""
        repository = AsyncMock()
        repository.get_open_positions = AsyncMock(side_effect=OSError("db down"))
        orchestrator = _orchestrator(clock, repository, ScriptedSignals({}))

        result = await orchestrator.run_cycle()

        assert not result.success
        assert "db down" in result.error
        assert orchestrator.cycle_history.get_last() is result

    @pytest.mark.asyncio
    async def test_candidate_source_failure_still_runs_exits(self, clock, repository):
        """Test that exits run when the candidate source fails."""
        await repository.create_position(make_position(asset_id=BONK_MINT, entry_price=1.0))
        orchestrator = _orchestrator(
            clock, repository, ScriptedSignals({}),
            candidates=FailingCandidates(), prices={BONK_MINT: 2.0},
        )

        result = await orchestrator.run_cycle()
        await orchestrator.close()

        assert result.success
        assert result.candidates == 0
        assert result.exit_batch.exits_executed == 1

    @pytest.mark.asyncio
    async def test_losing_exit_feeds_guard(self, clock, repository):
        """Test that realized losses reach the trade guard."""
        await repository.create_position(make_position(asset_id=BONK_MINT, entry_price=1.0))
        orchestrator = _orchestrator(
            clock, repository, ScriptedSignals({}), prices={BONK_MINT: 0.5},
        )

        await orchestrator.run_cycle()
        await orchestrator.close()

        assert orchestrator.trade_guard.consecutive_losses == 1
        assert orchestrator.trade_guard.daily_pnl == pytest.approx(-0.5)

    @pytest.mark.asyncio
    async def test_failed_position_write_is_retried(self, clock):
        """Test that a failed create_position goes to the retry queue."""
        repository = FlakyCreateRepository()
        orchestrator = _orchestrator(
            clock, repository, ScriptedSignals({BONK_MINT: _signal(BONK)}),
            candidates=[BONK], prices={BONK_MINT: 2.0},
        )

        result = await orchestrator.run_cycle()
        await orchestrator.close()

        assert result.entries_executed == 1
        assert repository.create_calls == 2
        assert len(await repository.get_open_positions()) == 1


# ============================================================
# LOOP
# ============================================================

class TestRunForever:
    """Tests for the fixed-cadence loop."""

    @pytest.mark.asyncio
    async def test_overlapping_tick_skipped(self, clock, repository):
        """Test that a tick during a running cycle is skipped, not cancelled."""
        blocker = asyncio.Event()
        signals = ScriptedSignals({BONK_MINT: _no_signal(BONK)}, blocker=blocker)
        orchestrator = _orchestrator(
            clock, repository, signals, candidates=[BONK],
            config=OrchestratorConfig(cycle_interval_seconds=0.01, health_check_asset=None),
        )
        stop = asyncio.Event()

        loop_task = asyncio.create_task(orchestrator.run_forever(stop))
        await asyncio.sleep(0.05)
        stop.set()
        blocker.set()
        await asyncio.wait_for(loop_task, timeout=1.0)

        assert orchestrator.skipped_ticks >= 1
        assert len(orchestrator.cycle_history) == 1
        assert orchestrator.cycle_history.get_last().success

    @pytest.mark.asyncio
    async def test_stops_when_event_set(self, clock, repository):
        """Test that the loop exits once stop is requested."""
        orchestrator = _orchestrator(
            clock, repository, ScriptedSignals({}),
            config=OrchestratorConfig(cycle_interval_seconds=10, health_check_asset=None),
        )
        stop = asyncio.Event()

        loop_task = asyncio.create_task(orchestrator.run_forever(stop))
        await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(loop_task, timeout=1.0)

        assert len(orchestrator.cycle_history) == 1


# ============================================================
# HEALTH & SHUTDOWN
# ============================================================

class TestHealthAndShutdown:
    """Tests for health reporting and close()."""

    @pytest.mark.asyncio
    async def test_health_check_reports_price_and_repository(self, clock, repository):
        """Test that the health report covers price, repository and guard."""
        aggregator = StaticPrices({SOL_MINT: 142.5})
        orchestrator = _orchestrator(clock, repository, ScriptedSignals({}), aggregator=aggregator)

        report = await orchestrator.health_check()

        assert report["healthy"]
        assert report["checks"]["price"]["price"] == 142.5
        assert report["checks"]["repository"] == {"healthy": True}
        assert "trade_guard" in report["checks"]
        assert orchestrator.get_status()["last_health"] is report

    @pytest.mark.asyncio
    async def test_health_check_reports_price_failure(self, clock, repository):
        """Test that a failing price probe marks the report unhealthy."""
        aggregator = StaticPrices({SOL_MINT: RuntimeError("all providers down")})
        orchestrator = _orchestrator(clock, repository, ScriptedSignals({}), aggregator=aggregator)

        report = await orchestrator.health_check()

        assert not report["healthy"]
        assert report["checks"]["price"]["error"] == "all providers down"

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, clock, repository):
        """Test that shutdown hooks run once even if close() is repeated."""
        hook = AsyncMock()
        failing = AsyncMock(side_effect=RuntimeError("already closed"))
        orchestrator = _orchestrator(
            clock, repository, ScriptedSignals({}), shutdown_hooks=[failing, hook],
        )

        await orchestrator.close()
        await orchestrator.close()

        failing.assert_awaited_once()
        hook.assert_awaited_once()
