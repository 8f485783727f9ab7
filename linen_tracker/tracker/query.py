"""
Room list query: filter and search predicates, ordering and row mapping.

Predicates are SQLAlchemy expressions with bound parameters, so the
search term never becomes part of the SQL text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import Select, String, cast, func, or_, select
from sqlalchemy.sql.elements import ColumnElement

from linen_tracker.tracker.models import LinenSchedule, Room
from linen_tracker.tracker.schedule import (
    DueStatus,
    RoomFilter,
    compute_status,
    week_end,
)


LIKE_ESCAPE = "\\"
CASEFOLD_FUNCTION = "casefold"


@dataclass
class RoomRow:
    """One line of the room list, detached from any database session."""

    id: int
    room_number: str
    resident_name: str
    note: str
    last_changed: date
    interval_days: int
    next_due: date
    paused: bool
    status: DueStatus
    days_until_due: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "room_number": self.room_number,
            "resident_name": self.resident_name,
            "note": self.note,
            "last_changed": self.last_changed.isoformat(),
            "interval_days": self.interval_days,
            "next_due": self.next_due.isoformat(),
            "paused": self.paused,
            "status": self.status.value,
            "days_until_due": self.days_until_due,
        }


def row_from(room: Room, schedule: LinenSchedule, today: date) -> RoomRow:
    status = compute_status(
        schedule.last_changed, schedule.interval_days, bool(schedule.paused), today
    )
    return RoomRow(
        id=room.id,
        room_number=room.room_number,
        resident_name=room.resident_name or "",
        note=room.note or "",
        last_changed=schedule.last_changed,
        interval_days=schedule.interval_days,
        next_due=status.next_due,
        paused=bool(schedule.paused),
        status=status.status,
        days_until_due=status.days_until_due,
    )


def next_due_expr() -> ColumnElement:
    """SQL expression for last_changed + interval_days as an ISO date string."""
    offset = "+" + cast(LinenSchedule.interval_days, String) + " days"
    return func.date(LinenSchedule.last_changed, offset, type_=String)


def escape_like(term: str) -> str:
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def filter_predicate(room_filter: RoomFilter, today: date) -> Optional[ColumnElement]:
    if room_filter == RoomFilter.ALL:
        return None
    due = next_due_expr()
    iso_today = today.isoformat()
    active = LinenSchedule.paused.is_(False)
    if room_filter == RoomFilter.DUE_TODAY:
        return active & (due == iso_today)
    if room_filter == RoomFilter.OVERDUE:
        return active & (due < iso_today)
    if room_filter == RoomFilter.DUE_THIS_WEEK:
        return active & due.between(iso_today, week_end(today).isoformat())
    raise ValueError(f"Unknown room filter: {room_filter!r}")


def search_predicate(term: str) -> Optional[ColumnElement]:
    """Case-insensitive substring match on room number, resident and note.

    Both sides go through the ``casefold`` SQL function registered on every
    connection, so non-ASCII letters fold the same way as in Python.
    """
    term = (term or "").strip()
    if not term:
        return None
    pattern = f"%{escape_like(term.casefold())}%"
    folded = getattr(func, CASEFOLD_FUNCTION)
    return or_(
        *(
            folded(column).like(pattern, escape=LIKE_ESCAPE)
            for column in (Room.room_number, Room.resident_name, Room.note)
        )
    )


@dataclass
class RoomQuery:
    """
    Composable room list criteria.

    Usage:
        query = RoomQuery(today=date(2024, 3, 1)).with_filter(RoomFilter.OVERDUE)
        rows = session.execute(query.statement()).all()
    """

    room_filter: RoomFilter = RoomFilter.ALL
    search: str = ""
    today: date = field(default_factory=date.today)

    def with_filter(self, room_filter: RoomFilter) -> RoomQuery:
        return RoomQuery(room_filter=room_filter, search=self.search, today=self.today)

    def with_search(self, search: str) -> RoomQuery:
        return RoomQuery(room_filter=self.room_filter, search=search, today=self.today)

    def predicates(self) -> list[ColumnElement]:
        candidates = [
            filter_predicate(self.room_filter, self.today),
            search_predicate(self.search),
        ]
        return [p for p in candidates if p is not None]

    def statement(self) -> Select:
        due = next_due_expr()
        return (
            select(Room, LinenSchedule)
            .join(LinenSchedule, LinenSchedule.room_id == Room.id)
            .where(*self.predicates())
            .order_by(
                (due < self.today.isoformat()).desc(),
                due.asc(),
                Room.room_number.asc(),
            )
        )
