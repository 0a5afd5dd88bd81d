"""
Position and Trade ORM Models.

============================================================
TABLES
============================================================
- positions: one row per position, status open/exit_requested/closed
- trades: append-only journal of executed entries and exits

============================================================
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Float, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, TimestampMixin


class PositionModel(Base, TimestampMixin):
    """Persistent position state."""

    __tablename__ = "positions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    asset_id: Mapped[str] = mapped_column(String(64), nullable=False)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    entry_price: Mapped[float] = mapped_column(Float, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    entry_time: Mapped[datetime] = mapped_column(nullable=False)
    stop_loss_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    take_profit_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    realized_pnl: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    unrealized_pnl: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    exit_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    __table_args__ = (
        Index("ix_positions_status", "status"),
        Index("ix_positions_asset_id", "asset_id"),
    )

    def __repr__(self) -> str:
        return f"<PositionModel(id={self.id}, symbol={self.symbol}, status={self.status})>"


class TradeModel(Base):
    """Trade journal row."""

    __tablename__ = "trades"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    position_id: Mapped[str] = mapped_column(String(64), nullable=False)
    asset_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    executed_at: Mapped[datetime] = mapped_column(nullable=False)
    tx_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    pnl: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        Index("ix_trades_position_id", "position_id"),
        Index("ix_trades_executed_at", "executed_at"),
    )

    def __repr__(self) -> str:
        return f"<TradeModel(id={self.id}, action={self.action}, position_id={self.position_id})>"
