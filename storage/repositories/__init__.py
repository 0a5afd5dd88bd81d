"""
Repositories - data access layer.
"""

from storage.repositories.base import UPDATABLE_FIELDS, PositionRepository
from storage.repositories.memory import InMemoryPositionRepository
from storage.repositories.positions import SqlPositionRepository


__all__ = [
    "UPDATABLE_FIELDS",
    "PositionRepository",
    "InMemoryPositionRepository",
    "SqlPositionRepository",
]
