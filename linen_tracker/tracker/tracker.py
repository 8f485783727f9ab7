"""
CRUD operations for rooms and their linen schedules.

Every mutation runs in a single transaction and appends a change-log
entry. Reads always go to the database, so a mutation is visible to the
next ``list_rooms`` call.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator, Optional

from sqlalchemy import create_engine, delete, event, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from linen_tracker.errors import StoreError, ValidationError
from linen_tracker.tracker.migrations import run_migrations
from linen_tracker.tracker.models import ChangeLogEntry, LinenSchedule, Room
from linen_tracker.tracker.query import CASEFOLD_FUNCTION, RoomQuery, RoomRow, row_from
from linen_tracker.tracker.schedule import (
    DEFAULT_INTERVAL_DAYS,
    DueStatus,
    RoomFilter,
    parse_interval,
)


logger = logging.getLogger(__name__)


@dataclass
class ChangeRecord:
    """A change-log entry as shown to the user."""

    changed_at: datetime
    note: str


@dataclass
class StoreSummary:
    total: int = 0
    paused: int = 0
    overdue: int = 0
    due_today: int = 0
    due_this_week: int = 0

    def format_text(self) -> str:
        return (
            f"{self.total} room(s): {self.overdue} overdue, "
            f"{self.due_today} due today, {self.due_this_week} due this week, "
            f"{self.paused} paused"
        )


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value is not None else None


def _configure_sqlite_connection(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
    # SQLite's own lower() folds ASCII letters only.
    dbapi_connection.create_function(
        CASEFOLD_FUNCTION, 1, _casefold, deterministic=True
    )


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


class TrackerDB:
    """
    CRUD interface for the linen tracker database.

    Usage:
        db = TrackerDB("sqlite:///data.db")
        row = db.add_or_update_room("101", interval_days=14)
        db.mark_changed_today(row.id)
        due = db.list_rooms(RoomFilter.DUE_TODAY)
    """

    def __init__(
        self,
        db_url: str = "sqlite:///linen_tracker.db",
        default_interval_days: int = DEFAULT_INTERVAL_DAYS,
    ) -> None:
        self.engine = create_engine(db_url, echo=False)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _configure_sqlite_connection)
        run_migrations(self.engine)
        self.SessionFactory = sessionmaker(bind=self.engine)
        self.default_interval_days = default_interval_days

    def _session(self) -> Session:
        return self.SessionFactory()

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Session]:
        with self._session() as session:
            try:
                with session.begin():
                    yield session
            except SQLAlchemyError as exc:
                logger.error("%s failed: %s", action, exc)
                raise StoreError(f"{action} failed: {exc}") from exc

    @staticmethod
    def _load(session: Session, room_id: int) -> Optional[tuple[Room, LinenSchedule]]:
        found = session.execute(
            select(Room, LinenSchedule)
            .join(LinenSchedule, LinenSchedule.room_id == Room.id)
            .where(Room.id == room_id)
        ).first()
        if found is None:
            return None
        return found[0], found[1]

    @staticmethod
    def _log(session: Session, room_id: int, note: str) -> None:
        session.add(ChangeLogEntry(room_id=room_id, changed_at=_now(), note=note))

    # ---- Read ----

    def list_rooms(
        self,
        room_filter: RoomFilter = RoomFilter.ALL,
        search: str = "",
        today: Optional[date] = None,
    ) -> list[RoomRow]:
        today = today or date.today()
        query = RoomQuery(room_filter=room_filter, search=search, today=today)
        with self._session() as session:
            return [
                row_from(room, schedule, today)
                for room, schedule in session.execute(query.statement()).all()
            ]

    def get_room(self, room_id: int, today: Optional[date] = None) -> Optional[RoomRow]:
        today = today or date.today()
        with self._session() as session:
            found = self._load(session, room_id)
            if found is None:
                return None
            return row_from(found[0], found[1], today)

    def get_room_by_number(
        self, room_number: str, today: Optional[date] = None
    ) -> Optional[RoomRow]:
        with self._session() as session:
            room_id = session.execute(
                select(Room.id).where(Room.room_number == room_number.strip())
            ).scalar_one_or_none()
        if room_id is None:
            return None
        return self.get_room(room_id, today=today)

    def list_changes(self, room_id: int) -> list[ChangeRecord]:
        """Change log for a room, newest first."""
        with self._session() as session:
            entries = session.execute(
                select(ChangeLogEntry)
                .where(ChangeLogEntry.room_id == room_id)
                .order_by(ChangeLogEntry.changed_at.desc(), ChangeLogEntry.id.desc())
            ).scalars()
            return [ChangeRecord(changed_at=e.changed_at, note=e.note or "") for e in entries]

    def get_summary(self, today: Optional[date] = None) -> StoreSummary:
        summary = StoreSummary()
        for row in self.list_rooms(today=today):
            summary.total += 1
            if row.paused:
                summary.paused += 1
            elif row.status == DueStatus.OVERDUE:
                summary.overdue += 1
            elif row.status == DueStatus.DUE_TODAY:
                summary.due_today += 1
            elif row.status == DueStatus.DUE_THIS_WEEK:
                summary.due_this_week += 1
        return summary

    # ---- Create / Update ----

    def add_or_update_room(
        self,
        room_number: str,
        resident_name: Optional[str] = None,
        note: Optional[str] = None,
        last_changed: Optional[date] = None,
        interval_days: Optional[int | str] = None,
        today: Optional[date] = None,
    ) -> RoomRow:
        """Create a room with its schedule, or update the existing one.

        ``resident_name`` and ``note`` left as None keep their stored value
        on update; an empty string clears them. The paused flag is never
        touched here.
        """
        number = (room_number or "").strip()
        if not number:
            raise ValidationError("Room number is required.")
        interval = parse_interval(interval_days, self.default_interval_days)
        today = today or date.today()
        last = last_changed or today

        with self._transaction(f"Saving room {number}") as session:
            room = session.execute(
                select(Room).where(Room.room_number == number)
            ).scalar_one_or_none()
            created = room is None
            if created:
                room = Room(room_number=number)
                session.add(room)
            if resident_name is not None:
                room.resident_name = _clean(resident_name)
            if note is not None:
                room.note = _clean(note)
            session.flush()

            schedule = session.execute(
                select(LinenSchedule).where(LinenSchedule.room_id == room.id)
            ).scalar_one_or_none()
            if schedule is None:
                schedule = LinenSchedule(room_id=room.id, paused=False)
                session.add(schedule)
            schedule.last_changed = last
            schedule.interval_days = interval

            self._log(session, room.id, "Room created" if created else "Room updated")
            session.flush()
            row = row_from(room, schedule, today)

        logger.info("%s room %s", "Created" if created else "Updated", number)
        return row

    def mark_changed_today(
        self, room_id: int, today: Optional[date] = None
    ) -> Optional[RoomRow]:
        today = today or date.today()
        with self._transaction(f"Marking room {room_id} changed") as session:
            found = self._load(session, room_id)
            if found is None:
                return None
            room, schedule = found
            schedule.last_changed = today
            self._log(session, room.id, "Changed today")
            session.flush()
            row = row_from(room, schedule, today)
        logger.info("Room %s changed today", row.room_number)
        return row

    def mark_changed_on(
        self, room_id: int, changed_on: date, today: Optional[date] = None
    ) -> Optional[RoomRow]:
        """Record a change made on an earlier day. Future dates are rejected."""
        today = today or date.today()
        if changed_on > today:
            raise ValidationError(
                f"Change date {changed_on.isoformat()} is in the future."
            )
        with self._transaction(f"Marking room {room_id} changed") as session:
            found = self._load(session, room_id)
            if found is None:
                return None
            room, schedule = found
            schedule.last_changed = changed_on
            self._log(session, room.id, f"Changed on {changed_on.isoformat()}")
            session.flush()
            row = row_from(room, schedule, today)
        logger.info("Room %s changed on %s", row.room_number, changed_on.isoformat())
        return row

    def postpone(
        self, room_id: int, days: int = 7, today: Optional[date] = None
    ) -> Optional[RoomRow]:
        """Push the next due date forward without recording a change."""
        if days < 1:
            raise ValidationError(f"Postpone needs at least 1 day, got {days}.")
        today = today or date.today()
        with self._transaction(f"Postponing room {room_id}") as session:
            found = self._load(session, room_id)
            if found is None:
                return None
            room, schedule = found
            schedule.last_changed = schedule.last_changed + timedelta(days=days)
            self._log(session, room.id, f"Postponed {days} day(s)")
            session.flush()
            row = row_from(room, schedule, today)
        logger.info("Room %s postponed %d day(s)", row.room_number, days)
        return row

    def toggle_pause(
        self, room_id: int, today: Optional[date] = None
    ) -> Optional[RoomRow]:
        today = today or date.today()
        with self._transaction(f"Toggling pause on room {room_id}") as session:
            found = self._load(session, room_id)
            if found is None:
                return None
            room, schedule = found
            schedule.paused = not schedule.paused
            self._log(session, room.id, "Paused" if schedule.paused else "Resumed")
            session.flush()
            row = row_from(room, schedule, today)
        logger.info("Room %s %s", row.room_number, "paused" if row.paused else "resumed")
        return row

    # ---- Delete ----

    def delete_room(self, room_id: int) -> bool:
        """Delete a room with its schedule and change log, all or nothing."""
        with self._transaction(f"Deleting room {room_id}") as session:
            room = session.get(Room, room_id)
            if room is None:
                return False
            number = room.room_number
            session.execute(delete(ChangeLogEntry).where(ChangeLogEntry.room_id == room_id))
            session.execute(delete(LinenSchedule).where(LinenSchedule.room_id == room_id))
            session.execute(delete(Room).where(Room.id == room_id))
        logger.info("Deleted room %s", number)
        return True
