"""
Storage Package.

Positions and the trade journal.

Modules:
- types: Position, TradeRecord, PositionState
- database: engine and session factory
- models/: ORM tables
- repositories/: PositionRepository and implementations
"""

from storage.types import Position, PositionState, TradeRecord


__all__ = [
    "Position",
    "PositionState",
    "TradeRecord",
]
