"""
Exit Engine - Position State Machine.

============================================================
PURPOSE
============================================================
Position lifecycle with strict state transitions.

STATE MACHINE:

        OPEN ◄──────────────┐
          │                 │ execution failed
          ▼                 │
    EXIT_REQUESTED ─────────┘
          │
          ▼
       CLOSED (terminal)

INVARIANTS:
- CLOSED is final
- Each transition has a guard
- All transitions are logged
- The managed Position is never mutated; every transition
  derives a new snapshot

============================================================
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from storage.types import Position, PositionState


logger = logging.getLogger(__name__)


# ============================================================
# STATE TRANSITION RULES
# ============================================================

VALID_TRANSITIONS: Dict[PositionState, Set[PositionState]] = {
    PositionState.OPEN: {
        PositionState.EXIT_REQUESTED,
    },
    PositionState.EXIT_REQUESTED: {
        PositionState.CLOSED,
        PositionState.OPEN,
    },
    PositionState.CLOSED: set(),
}


# ============================================================
# STATE TRANSITION EVENT
# ============================================================

@dataclass
class StateTransitionEvent:
    """Event representing a state transition."""

    position_id: str
    from_state: PositionState
    to_state: PositionState
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    reason: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position_id": self.position_id,
            "from_state": self.from_state.value,
            "to_state": self.to_state.value,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
            "details": dict(self.details),
        }


# ============================================================
# STATE TRANSITION GUARD
# ============================================================

class TransitionGuard:
    """Ensures transitions are valid and provides reason for denial."""

    @staticmethod
    def can_transition(
        from_state: PositionState,
        to_state: PositionState,
    ) -> Tuple[bool, str]:
        if from_state == to_state:
            return True, "Same state"

        if to_state in VALID_TRANSITIONS.get(from_state, set()):
            return True, "Valid transition"

        if from_state == PositionState.CLOSED:
            return False, f"Cannot transition from terminal state {from_state.value}"

        return False, f"Invalid transition: {from_state.value} -> {to_state.value}"

    @staticmethod
    def validate_position_for_state(
        position: Position,
        target_state: PositionState,
    ) -> Tuple[bool, str]:
        """Check the snapshot carries what the target state requires."""
        if target_state == PositionState.CLOSED:
            if position.exit_price is None or position.exit_price <= 0:
                return False, "exit_price must be positive for CLOSED state"
            if position.closed_at is None:
                return False, "Missing closed_at for CLOSED state"
            if position.realized_pnl is None:
                return False, "Missing realized_pnl for CLOSED state"
        return True, "Position valid for state"


# ============================================================
# POSITION STATE MACHINE
# ============================================================

class PositionStateMachine:
    """
    State machine for one position's exit lifecycle.

    Works on a snapshot: `position` always returns the latest
    derived Position, the caller's original is left untouched.
    """

    def __init__(self, position: Position):
        self._position = position
        self._history: List[StateTransitionEvent] = []
        self._listeners: List[Callable[[StateTransitionEvent], None]] = []

    @property
    def current_state(self) -> PositionState:
        return self._position.status

    @property
    def position(self) -> Position:
        return self._position

    @property
    def history(self) -> List[StateTransitionEvent]:
        return list(self._history)

    def add_listener(self, listener: Callable[[StateTransitionEvent], None]) -> None:
        self._listeners.append(listener)

    def can_transition_to(
        self,
        target_state: PositionState,
        candidate: Optional[Position] = None,
    ) -> Tuple[bool, str]:
        allowed, reason = TransitionGuard.can_transition(self.current_state, target_state)
        if not allowed:
            return False, reason
        return TransitionGuard.validate_position_for_state(
            candidate or self._position,
            target_state,
        )

    def transition_to(
        self,
        target_state: PositionState,
        reason: str = "",
        details: Optional[Dict[str, Any]] = None,
        **changes: Any,
    ) -> StateTransitionEvent:
        """
        Move to target_state, applying field changes to the snapshot.

        Raises:
            ValueError: If transition is not allowed
        """
        candidate = replace(self._position, status=target_state, **changes)
        allowed, validation_reason = self.can_transition_to(target_state, candidate)
        if not allowed:
            raise ValueError(
                f"Cannot transition {self._position.position_id} from "
                f"{self.current_state.value} to {target_state.value}: "
                f"{validation_reason}"
            )

        event = StateTransitionEvent(
            position_id=self._position.position_id,
            from_state=self.current_state,
            to_state=target_state,
            reason=reason if self.current_state != target_state else "No change",
            details=details or {},
        )
        self._position = candidate

        if event.from_state == event.to_state:
            return event

        self._history.append(event)
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"State listener error: {e}")

        logger.info(
            f"Position {event.position_id}: "
            f"{event.from_state.value} -> {event.to_state.value} ({reason})"
        )
        return event

    # --------------------------------------------------------
    # CONVENIENCE METHODS
    # --------------------------------------------------------

    def request_exit(self, reason: str) -> StateTransitionEvent:
        return self.transition_to(PositionState.EXIT_REQUESTED, reason)

    def mark_closed(
        self,
        exit_price: float,
        realized_pnl: float,
        closed_at: datetime,
        reason: str = "Exit executed",
    ) -> StateTransitionEvent:
        return self.transition_to(
            PositionState.CLOSED,
            reason,
            exit_price=exit_price,
            realized_pnl=realized_pnl,
            closed_at=closed_at,
            unrealized_pnl=None,
        )

    def revert_to_open(self, error: str) -> StateTransitionEvent:
        """Exit execution failed; the next cycle re-evaluates."""
        return self.transition_to(
            PositionState.OPEN,
            "Exit execution failed",
            details={"error": error},
        )

    def is_terminal(self) -> bool:
        return self.current_state == PositionState.CLOSED
