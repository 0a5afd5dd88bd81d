"""
Orchestrator - Models.

============================================================
RESPONSIBILITY
============================================================
Data models for the orchestration loop.

- Loop configuration
- Per-asset evaluation outcomes
- Cycle results and bounded cycle history

============================================================
"""

import asyncio
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from exit_engine.types import ExitBatchResult


# ============================================================
# ORCHESTRATOR CONFIGURATION
# ============================================================

# Wrapped SOL; always quoted by every provider
DEFAULT_HEALTH_CHECK_ASSET = "So11111111111111111111111111111111111111112"


@dataclass
class OrchestratorConfig:
    """Configuration for the orchestration loop."""

    cycle_interval_seconds: float = 300.0
    """Fixed cadence between cycle starts."""

    max_concurrent_evaluations: int = 10
    """Candidates evaluated in parallel."""

    health_check_interval_seconds: float = 3600.0
    health_check_asset: Optional[str] = DEFAULT_HEALTH_CHECK_ASSET

    cycle_history_size: int = 100

    drain_timeout_seconds: float = 10.0
    """Time allowed for pending repository writes on close."""

    log_level: str = "INFO"
    log_format: str = "text"
    correlation_id_prefix: str = "cycle"

    dry_run: bool = False
    """Evaluate and log signals without executing entries."""

    @classmethod
    def from_env(cls) -> "OrchestratorConfig":
        """Load configuration from environment variables."""
        load_dotenv()
        return cls(
            cycle_interval_seconds=float(os.getenv("CYCLE_INTERVAL_SECONDS", "300")),
            max_concurrent_evaluations=int(os.getenv("MAX_CONCURRENT_EVALUATIONS", "10")),
            health_check_interval_seconds=float(os.getenv("HEALTH_CHECK_INTERVAL_SECONDS", "3600")),
            health_check_asset=os.getenv("HEALTH_CHECK_ASSET", DEFAULT_HEALTH_CHECK_ASSET) or None,
            cycle_history_size=int(os.getenv("CYCLE_HISTORY_SIZE", "100")),
            drain_timeout_seconds=float(os.getenv("DRAIN_TIMEOUT_SECONDS", "10")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
            dry_run=os.getenv("DRY_RUN", "false").lower() == "true",
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.cycle_interval_seconds <= 0:
            errors.append("cycle_interval_seconds must be positive")

        if self.max_concurrent_evaluations < 1:
            errors.append("max_concurrent_evaluations must be at least 1")

        if self.health_check_interval_seconds <= 0:
            errors.append("health_check_interval_seconds must be positive")

        if self.cycle_history_size < 1:
            errors.append("cycle_history_size must be at least 1")

        if self.log_format not in ("json", "text"):
            errors.append("log_format must be 'json' or 'text'")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle_interval_seconds": self.cycle_interval_seconds,
            "max_concurrent_evaluations": self.max_concurrent_evaluations,
            "health_check_interval_seconds": self.health_check_interval_seconds,
            "health_check_asset": self.health_check_asset,
            "cycle_history_size": self.cycle_history_size,
            "drain_timeout_seconds": self.drain_timeout_seconds,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "correlation_id_prefix": self.correlation_id_prefix,
            "dry_run": self.dry_run,
        }


# ============================================================
# EVALUATION OUTCOMES
# ============================================================

class EvaluationOutcome(str, Enum):
    """What happened to one candidate in a cycle."""

    SIGNAL = "signal"
    NO_SIGNAL = "no_signal"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class AssetEvaluation:
    """Outcome for one candidate asset."""

    asset_id: str
    outcome: EvaluationOutcome
    reason: str = ""
    signal_id: Optional[str] = None
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "signal_id": self.signal_id,
            "confidence": self.confidence,
        }


# ============================================================
# CYCLE RESULT
# ============================================================

@dataclass
class CycleResult:
    """Result of one orchestration cycle."""

    cycle_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    success: bool = False
    error: Optional[str] = None

    open_positions: int = 0
    evaluations: List[AssetEvaluation] = field(default_factory=list)
    entries_executed: int = 0
    entries_blocked: int = 0
    entries_failed: int = 0
    exit_batch: Optional[ExitBatchResult] = None

    @property
    def duration_seconds(self) -> float:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return 0.0

    @property
    def candidates(self) -> int:
        return len(self.evaluations)

    def count(self, outcome: EvaluationOutcome) -> int:
        return sum(1 for e in self.evaluations if e.outcome == outcome)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "success": self.success,
            "error": self.error,
            "duration_seconds": self.duration_seconds,
            "open_positions": self.open_positions,
            "candidates": self.candidates,
            "signals": self.count(EvaluationOutcome.SIGNAL),
            "no_signal": self.count(EvaluationOutcome.NO_SIGNAL),
            "skipped": self.count(EvaluationOutcome.SKIPPED),
            "failed": self.count(EvaluationOutcome.FAILED),
            "entries_executed": self.entries_executed,
            "entries_blocked": self.entries_blocked,
            "entries_failed": self.entries_failed,
            "exit_batch": self.exit_batch.to_dict() if self.exit_batch else None,
        }


# ============================================================
# CYCLE HISTORY
# ============================================================

class CycleHistory:
    """
    Tracks execution cycle history.
    """

    def __init__(self, max_size: int = 100):
        self._max_size = max_size
        self._cycles: List[CycleResult] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._cycles)

    async def add(self, result: CycleResult) -> None:
        async with self._lock:
            self._cycles.append(result)
            if len(self._cycles) > self._max_size:
                self._cycles = self._cycles[-self._max_size:]

    def get_recent(self, limit: int = 10) -> List[CycleResult]:
        return self._cycles[-limit:]

    def get_last(self) -> Optional[CycleResult]:
        return self._cycles[-1] if self._cycles else None

    def get_success_rate(self, last_n: int = 10) -> float:
        """Get success rate of last N cycles."""
        recent = self._cycles[-last_n:]
        if not recent:
            return 0.0
        successes = sum(1 for c in recent if c.success)
        return successes / len(recent)

    def get_statistics(self) -> Dict[str, Any]:
        if not self._cycles:
            return {
                "total_cycles": 0,
                "success_rate": 0.0,
                "average_duration_seconds": 0.0,
            }

        successes = sum(1 for c in self._cycles if c.success)
        durations = [c.duration_seconds for c in self._cycles if c.completed_at]

        return {
            "total_cycles": len(self._cycles),
            "successful_cycles": successes,
            "failed_cycles": len(self._cycles) - successes,
            "success_rate": successes / len(self._cycles),
            "average_duration_seconds": sum(durations) / len(durations) if durations else 0.0,
            "entries_executed": sum(c.entries_executed for c in self._cycles),
            "last_cycle_time": self._cycles[-1].started_at.isoformat(),
            "last_success": self._cycles[-1].success,
        }


__all__ = [
    "DEFAULT_HEALTH_CHECK_ASSET",
    "OrchestratorConfig",
    "EvaluationOutcome",
    "AssetEvaluation",
    "CycleResult",
    "CycleHistory",
]
