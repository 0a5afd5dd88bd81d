"""
ORM models.
"""

from storage.models.base import Base, TimestampMixin
from storage.models.positions import PositionModel, TradeModel


__all__ = [
    "Base",
    "TimestampMixin",
    "PositionModel",
    "TradeModel",
]
