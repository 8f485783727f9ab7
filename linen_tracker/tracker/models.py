"""
SQLAlchemy models for rooms, their linen schedules and the change log.

The table layout is created by :mod:`linen_tracker.tracker.migrations`;
these classes only map it.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class Room(Base):
    """A trackable room, identified by its room number."""

    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_number = Column(String, unique=True, nullable=False)
    resident_name = Column(String, nullable=True)
    note = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Room(id={self.id}, room_number='{self.room_number}')>"


class LinenSchedule(Base):
    """Due-date tracking state of a room. Exactly one per room."""

    __tablename__ = "linens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), unique=True, nullable=False)
    last_changed = Column(Date, nullable=False)
    interval_days = Column(Integer, nullable=False)
    paused = Column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<LinenSchedule(room_id={self.room_id}, last_changed={self.last_changed}, "
            f"interval_days={self.interval_days}, paused={self.paused})>"
        )


class ChangeLogEntry(Base):
    """Append-only record of a schedule-affecting action."""

    __tablename__ = "changes_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(Integer, nullable=False, index=True)
    changed_at = Column(DateTime, nullable=False)
    note = Column(Text, nullable=True)
