"""
Orchestrator Package - Orchestration Loop.

============================================================
PACKAGE OVERVIEW
============================================================
Runs the trade decision engine on a fixed cadence.

============================================================
CORE PRINCIPLES
============================================================
1. The orchestrator has NO business logic
2. It does NOT modify trading decisions
3. Every collaborator is injected
4. One failing asset or position never stops a cycle
5. The loop never crashes on a cycle error

============================================================
CYCLE
============================================================
 1. Fetch open positions
 2. Collect candidates (channel, watch list)
 3. Evaluate candidates (Signal Generator)
 4. Trade guard, entry execution, position recording
 5. Exit batch (Exit Evaluator)

============================================================
USAGE
============================================================
    from orchestrator.factory import build_orchestrator

    orchestrator = await build_orchestrator(BotConfig.from_env())
    await orchestrator.run_forever(stop_event)

    python -m orchestrator.cli --config bot.yaml

============================================================
"""

from .core import JsonLogFormatter, TradingOrchestrator, setup_logging
from .models import (
    AssetEvaluation,
    CycleHistory,
    CycleResult,
    EvaluationOutcome,
    OrchestratorConfig,
)


__all__ = [
    "JsonLogFormatter",
    "TradingOrchestrator",
    "setup_logging",
    "AssetEvaluation",
    "CycleHistory",
    "CycleResult",
    "EvaluationOutcome",
    "OrchestratorConfig",
]
