"""
Exit Engine Module.

Take-profit, stop-loss and holding-time exits for open
positions, with the OPEN -> EXIT_REQUESTED -> CLOSED state
machine.
"""

from .config import ExitConfig
from .evaluator import ExitEvaluator, fractional_pnl
from .state_machine import (
    VALID_TRANSITIONS,
    PositionStateMachine,
    StateTransitionEvent,
    TransitionGuard,
)
from .types import ExitBatchResult, ExitDecision, ExitTrigger, PositionState


__all__ = [
    "ExitConfig",
    "ExitEvaluator",
    "fractional_pnl",
    "VALID_TRANSITIONS",
    "PositionStateMachine",
    "StateTransitionEvent",
    "TransitionGuard",
    "ExitBatchResult",
    "ExitDecision",
    "ExitTrigger",
    "PositionState",
]
