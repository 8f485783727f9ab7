"""
Room tracker — persistent storage, schema migrations, due-date calculation
and the room list query.
"""

from linen_tracker.tracker.models import (
    Base,
    ChangeLogEntry,
    LinenSchedule,
    Room,
)
from linen_tracker.tracker.schedule import (
    DueStatus,
    RoomFilter,
    ScheduleStatus,
    compute_status,
    parse_interval,
)
from linen_tracker.tracker.query import RoomQuery, RoomRow
from linen_tracker.tracker.tracker import ChangeRecord, StoreSummary, TrackerDB

__all__ = [
    "Base",
    "ChangeLogEntry",
    "LinenSchedule",
    "Room",
    "DueStatus",
    "RoomFilter",
    "ScheduleStatus",
    "compute_status",
    "parse_interval",
    "RoomQuery",
    "RoomRow",
    "ChangeRecord",
    "StoreSummary",
    "TrackerDB",
]
