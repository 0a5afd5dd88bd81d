"""
Base ORM Model and Mixins.

============================================================
PURPOSE
============================================================
Declarative base shared by the position and trade tables.
Database.create_schema() creates every table registered on
Base.metadata, so a model module must be imported (see
storage.models) before the schema is created.

============================================================
COMPONENTS
============================================================
- Base: declarative base; datetimes map to timezone-aware
  columns so entry, exit and trade times round-trip as UTC
- TimestampMixin: row bookkeeping (created_at / updated_at),
  set by the database, separate from the trading times a
  position carries itself

============================================================
"""

from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Declarative base for the engine's tables.

    Any Mapped[datetime] column without an explicit type becomes
    DateTime(timezone=True). SQLite drops the offset on read;
    repositories pass loaded values through ensure_utc().
    """

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class TimestampMixin:
    """
    Row creation and last-write timestamps.

    Both default on the server; updated_at also refreshes on
    every UPDATE issued through the ORM (status changes, P&L
    writes from the exit batch).

    Usage:
        class PositionModel(Base, TimestampMixin):
            __tablename__ = "positions"
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Row creation time (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Last row write (UTC)"
    )
