"""
Position Repository Interface.

============================================================
PURPOSE
============================================================
Storage contract used by the exit evaluator and the
orchestration loop. Implementations raise RepositoryError on
any storage failure; callers decide whether that aborts a
cycle (reads) or goes to the retry queue (writes).

============================================================
"""

from abc import ABC, abstractmethod
from typing import Any, List, Mapping

from storage.types import Position, TradeRecord


UPDATABLE_FIELDS = frozenset({
    "status",
    "realized_pnl",
    "unrealized_pnl",
    "exit_price",
    "closed_at",
    "stop_loss_price",
    "take_profit_price",
})


class PositionRepository(ABC):
    """Persistent store of positions and the trade journal."""

    @abstractmethod
    async def get_open_positions(self) -> List[Position]:
        """Positions whose status is not CLOSED."""
        pass

    @abstractmethod
    async def update_position(self, position_id: str, fields: Mapping[str, Any]) -> None:
        """
        Update selected fields (see UPDATABLE_FIELDS).

        Raises:
            RepositoryError: unknown position, unknown field or storage failure
        """
        pass

    @abstractmethod
    async def record_trade(self, trade: TradeRecord) -> None:
        pass

    @abstractmethod
    async def create_position(self, position: Position) -> None:
        pass

    async def health_check(self) -> bool:
        return True


def check_update_fields(fields: Mapping[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not updatable: {sorted(unknown)}")
