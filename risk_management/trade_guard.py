"""
Risk Management - Trade Guard.

============================================================
PURPOSE
============================================================
Account-level gate between a TradeSignal and the executor.

BLOCKING CONDITIONS (checked in order):
1. Consecutive losses at max_consecutive_losses
2. Emergency stop: daily loss beyond emergency_stop_threshold
3. Open position already held for the asset
4. Open position count at max_open_positions
5. Entries today at max_daily_trades
6. Realized loss today beyond daily_loss_limit
7. Suggested size above max_position_size
8. Last entry too recent

Counters reset when the UTC date changes.

============================================================
"""

import logging
import threading
from datetime import date
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence

from core.clock import ClockProtocol, SystemClock

from .config import TradeGuardConfig
from .types import BlockReason, TradeGuardResult

if TYPE_CHECKING:
    from storage.types import Position
    from strategy_engine.types import TradeSignal


logger = logging.getLogger(__name__)


class TradeGuard:
    """
    Daily limits and emergency stop for new entries.

    Usage:
        guard = TradeGuard(TradeGuardConfig())
        result = guard.check(signal, open_positions)
        if result.allowed:
            ...execute...
            guard.record_entry()
        ...
        guard.record_exit(realized_pnl)
    """

    def __init__(
        self,
        config: Optional[TradeGuardConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._config = config or TradeGuardConfig()
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()

        self._day: date = self._clock.today()
        self._daily_trades = 0
        self._daily_pnl = 0.0
        self._consecutive_losses = 0
        self._last_entry_monotonic: Optional[float] = None

    @property
    def config(self) -> TradeGuardConfig:
        return self._config

    @property
    def daily_trades(self) -> int:
        with self._lock:
            self._roll_day()
            return self._daily_trades

    @property
    def daily_pnl(self) -> float:
        with self._lock:
            self._roll_day()
            return self._daily_pnl

    @property
    def consecutive_losses(self) -> int:
        with self._lock:
            self._roll_day()
            return self._consecutive_losses

    @property
    def emergency_stop_active(self) -> bool:
        with self._lock:
            self._roll_day()
            return self._emergency_stop()

    # =========================================================
    # CHECK
    # =========================================================

    def check(self, signal: "TradeSignal", open_positions: Sequence["Position"]) -> TradeGuardResult:
        """Decide whether an entry for signal may be executed."""
        now = self._clock.now()
        cfg = self._config

        with self._lock:
            self._roll_day()

            if self._consecutive_losses >= cfg.max_consecutive_losses:
                return self._blocked(
                    BlockReason.CONSECUTIVE_LOSSES,
                    f"{self._consecutive_losses} consecutive losses "
                    f"(max {cfg.max_consecutive_losses})",
                    now,
                )

            if self._emergency_stop():
                return self._blocked(
                    BlockReason.EMERGENCY_STOP,
                    f"Emergency stop active (losses={self._consecutive_losses}, "
                    f"daily_pnl={self._daily_pnl:.4f})",
                    now,
                )

            asset_id = signal.asset.identifier
            if any(p.asset_id == asset_id for p in open_positions):
                return self._blocked(
                    BlockReason.DUPLICATE_POSITION,
                    f"Position already open for {asset_id}",
                    now,
                )

            if len(open_positions) >= cfg.max_open_positions:
                return self._blocked(
                    BlockReason.MAX_OPEN_POSITIONS,
                    f"{len(open_positions)} open positions (max {cfg.max_open_positions})",
                    now,
                )

            if self._daily_trades >= cfg.max_daily_trades:
                return self._blocked(
                    BlockReason.MAX_DAILY_TRADES,
                    f"{self._daily_trades} trades today (max {cfg.max_daily_trades})",
                    now,
                )

            if self._daily_pnl <= -cfg.daily_loss_limit:
                return self._blocked(
                    BlockReason.DAILY_LOSS_LIMIT,
                    f"Daily P&L {self._daily_pnl:.4f} beyond limit -{cfg.daily_loss_limit}",
                    now,
                )

            if signal.suggested_size > cfg.max_position_size:
                return self._blocked(
                    BlockReason.POSITION_SIZE,
                    f"Size {signal.suggested_size} above max {cfg.max_position_size}",
                    now,
                )

            if cfg.min_seconds_between_trades > 0 and self._last_entry_monotonic is not None:
                elapsed = self._clock.monotonic() - self._last_entry_monotonic
                if elapsed < cfg.min_seconds_between_trades:
                    return self._blocked(
                        BlockReason.TRADE_SPACING,
                        f"Last entry {elapsed:.0f}s ago (min {cfg.min_seconds_between_trades:.0f}s)",
                        now,
                    )

        return TradeGuardResult.execute(now)

    # =========================================================
    # RECORDING
    # =========================================================

    def record_entry(self) -> None:
        with self._lock:
            self._roll_day()
            self._daily_trades += 1
            self._last_entry_monotonic = self._clock.monotonic()

    def record_exit(self, pnl: float) -> None:
        """Record realized fractional P&L of a closed position."""
        with self._lock:
            self._roll_day()
            was_stopped = self._emergency_stop()
            self._daily_pnl += pnl
            if pnl < 0:
                self._consecutive_losses += 1
            else:
                self._consecutive_losses = 0
            if not was_stopped and self._emergency_stop():
                logger.error(
                    f"Emergency stop triggered: consecutive_losses={self._consecutive_losses} "
                    f"daily_pnl={self._daily_pnl:.4f}"
                )

    def reset_daily(self) -> None:
        with self._lock:
            self._reset(self._clock.today())

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            self._roll_day()
            return {
                "day": self._day.isoformat(),
                "daily_trades": self._daily_trades,
                "daily_pnl": self._daily_pnl,
                "consecutive_losses": self._consecutive_losses,
                "emergency_stop_active": self._emergency_stop(),
            }

    # =========================================================
    # INTERNALS (lock held)
    # =========================================================

    def _emergency_stop(self) -> bool:
        return (
            self._consecutive_losses >= self._config.max_consecutive_losses
            or self._daily_pnl <= -self._config.emergency_stop_threshold
        )

    def _roll_day(self) -> None:
        today = self._clock.today()
        if today != self._day:
            logger.info(f"Trade guard daily reset ({self._day} -> {today})")
            self._reset(today)

    def _reset(self, day: date) -> None:
        self._day = day
        self._daily_trades = 0
        self._daily_pnl = 0.0
        self._consecutive_losses = 0

    def _blocked(self, reason: BlockReason, message: str, now) -> TradeGuardResult:
        logger.info(f"Entry blocked [{reason.value}]: {message}")
        return TradeGuardResult.block(reason, message, now)
