"""
In-memory Position Repository.

Used for paper trading and tests. Same contract as the SQL
repository, including RepositoryError for unknown positions.
"""

import asyncio
from dataclasses import replace
from typing import Any, Dict, List, Mapping

from core.exceptions import RepositoryError
from storage.repositories.base import PositionRepository, check_update_fields
from storage.types import Position, PositionState, TradeRecord


class InMemoryPositionRepository(PositionRepository):

    def __init__(self) -> None:
        self._positions: Dict[str, Position] = {}
        self._trades: Dict[str, TradeRecord] = {}
        self._lock = asyncio.Lock()

    async def get_open_positions(self) -> List[Position]:
        async with self._lock:
            return sorted(
                (p for p in self._positions.values() if p.status != PositionState.CLOSED),
                key=lambda p: p.entry_time,
            )

    async def create_position(self, position: Position) -> None:
        async with self._lock:
            if position.position_id in self._positions:
                raise RepositoryError(
                    f"Position {position.position_id} already exists",
                    operation="create_position",
                )
            self._positions[position.position_id] = position

    async def update_position(self, position_id: str, fields: Mapping[str, Any]) -> None:
        try:
            check_update_fields(fields)
        except ValueError as e:
            raise RepositoryError(str(e), operation="update_position") from e
        async with self._lock:
            current = self._positions.get(position_id)
            if current is None:
                raise RepositoryError(f"Position {position_id} not found", operation="update_position")
            values = dict(fields)
            if "status" in values:
                values["status"] = PositionState(values["status"])
            self._positions[position_id] = replace(current, **values)

    async def record_trade(self, trade: TradeRecord) -> None:
        async with self._lock:
            self._trades.setdefault(trade.trade_id, trade)

    async def get_position(self, position_id: str) -> Position:
        async with self._lock:
            if position_id not in self._positions:
                raise RepositoryError(f"Position {position_id} not found", operation="get_position")
            return self._positions[position_id]

    async def get_trades(self, position_id: str) -> List[TradeRecord]:
        async with self._lock:
            return sorted(
                (t for t in self._trades.values() if t.position_id == position_id),
                key=lambda t: t.executed_at,
            )
