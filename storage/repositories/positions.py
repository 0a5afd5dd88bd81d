"""
SQL Position Repository.

============================================================
PURPOSE
============================================================
PositionRepository on SQLAlchemy async sessions.

Each operation runs in its own session and transaction, so
concurrent evaluations never share a session.

All SQLAlchemy errors are wrapped in RepositoryError.

============================================================
"""

import logging
from typing import Any, List, Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import ensure_utc
from core.exceptions import RepositoryError
from storage.models.positions import PositionModel, TradeModel
from storage.repositories.base import PositionRepository, check_update_fields
from storage.types import Position, PositionState, TradeRecord


logger = logging.getLogger(__name__)


class SqlPositionRepository(PositionRepository):
    """
    Repository for positions and the trade journal.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Args:
            session_factory: async_sessionmaker bound to the engine
        """
        self._session_factory = session_factory

    # --------------------------------------------------------
    # POSITION OPERATIONS
    # --------------------------------------------------------

    async def get_open_positions(self) -> List[Position]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(PositionModel)
                    .where(PositionModel.status != PositionState.CLOSED.value)
                    .order_by(PositionModel.entry_time)
                )
                return [self._to_position(m) for m in result.scalars().all()]
        except SQLAlchemyError as e:
            raise RepositoryError(
                f"Failed to load open positions: {e}",
                operation="get_open_positions",
                cause=e,
            ) from e

    async def create_position(self, position: Position) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(self._to_model(position))
        except SQLAlchemyError as e:
            raise RepositoryError(
                f"Failed to create position {position.position_id}: {e}",
                operation="create_position",
                cause=e,
            ) from e
        logger.info(f"Position created: {position.position_id} ({position.symbol})")

    async def update_position(self, position_id: str, fields: Mapping[str, Any]) -> None:
        try:
            check_update_fields(fields)
        except ValueError as e:
            raise RepositoryError(str(e), operation="update_position") from e

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    model = await session.get(PositionModel, position_id)
                    if model is None:
                        raise RepositoryError(
                            f"Position {position_id} not found",
                            operation="update_position",
                        )
                    for name, value in fields.items():
                        if isinstance(value, PositionState):
                            value = value.value
                        setattr(model, name, value)
        except SQLAlchemyError as e:
            raise RepositoryError(
                f"Failed to update position {position_id}: {e}",
                operation="update_position",
                cause=e,
            ) from e
        logger.debug(f"Position {position_id} updated: {sorted(fields)}")

    async def get_position(self, position_id: str) -> Position:
        try:
            async with self._session_factory() as session:
                model = await session.get(PositionModel, position_id)
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to load position {position_id}: {e}", operation="get_position", cause=e) from e
        if model is None:
            raise RepositoryError(f"Position {position_id} not found", operation="get_position")
        return self._to_position(model)

    # --------------------------------------------------------
    # TRADE OPERATIONS
    # --------------------------------------------------------

    async def record_trade(self, trade: TradeRecord) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    existing = await session.get(TradeModel, trade.trade_id)
                    if existing is None:
                        session.add(
                            TradeModel(
                                id=trade.trade_id,
                                position_id=trade.position_id,
                                asset_id=trade.asset_id,
                                action=trade.action,
                                amount=trade.amount,
                                price=trade.price,
                                executed_at=trade.executed_at,
                                tx_id=trade.tx_id,
                                pnl=trade.pnl,
                                reason=trade.reason,
                            )
                        )
        except SQLAlchemyError as e:
            raise RepositoryError(
                f"Failed to record trade {trade.trade_id}: {e}",
                operation="record_trade",
                cause=e,
            ) from e

    async def get_trades(self, position_id: str) -> List[TradeRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(TradeModel)
                    .where(TradeModel.position_id == position_id)
                    .order_by(TradeModel.executed_at)
                )
                models = result.scalars().all()
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to load trades: {e}", operation="get_trades", cause=e) from e
        return [
            TradeRecord(
                trade_id=m.id,
                position_id=m.position_id,
                asset_id=m.asset_id,
                action=m.action,
                amount=m.amount,
                price=m.price,
                executed_at=ensure_utc(m.executed_at),
                tx_id=m.tx_id,
                pnl=m.pnl,
                reason=m.reason,
            )
            for m in models
        ]

    async def health_check(self) -> bool:
        try:
            async with self._session_factory() as session:
                await session.execute(select(PositionModel.id).limit(1))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Position repository health check failed: {e}")
            return False

    # --------------------------------------------------------
    # MAPPING
    # --------------------------------------------------------

    @staticmethod
    def _to_model(position: Position) -> PositionModel:
        return PositionModel(
            id=position.position_id,
            asset_id=position.asset_id,
            symbol=position.symbol,
            entry_price=position.entry_price,
            amount=position.amount,
            entry_time=position.entry_time,
            stop_loss_price=position.stop_loss_price,
            take_profit_price=position.take_profit_price,
            status=position.status.value,
            realized_pnl=position.realized_pnl,
            unrealized_pnl=position.unrealized_pnl,
            exit_price=position.exit_price,
            closed_at=position.closed_at,
        )

    @staticmethod
    def _to_position(model: PositionModel) -> Position:
        # SQLite drops tzinfo; every stored time is UTC.
        return Position(
            position_id=model.id,
            asset_id=model.asset_id,
            symbol=model.symbol,
            entry_price=model.entry_price,
            amount=model.amount,
            entry_time=ensure_utc(model.entry_time),
            stop_loss_price=model.stop_loss_price,
            take_profit_price=model.take_profit_price,
            status=PositionState(model.status),
            realized_pnl=model.realized_pnl,
            unrealized_pnl=model.unrealized_pnl,
            exit_price=model.exit_price,
            closed_at=ensure_utc(model.closed_at) if model.closed_at else None,
        )
