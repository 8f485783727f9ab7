"""
Tests for the due-date engine, room list query, mutations and migrations.
"""

from datetime import date, timedelta

import pytest
from sqlalchemy import create_engine, event, func, inspect, select, text
from sqlalchemy.exc import OperationalError

from linen_tracker.errors import StoreError, ValidationError
from linen_tracker.tracker.migrations import LATEST_VERSION, current_version, run_migrations
from linen_tracker.tracker.models import ChangeLogEntry, LinenSchedule, Room
from linen_tracker.tracker.query import RoomQuery
from linen_tracker.tracker.schedule import (
    DueStatus,
    RoomFilter,
    classify,
    compute_status,
    next_due,
    parse_interval,
)
from linen_tracker.tracker.tracker import TrackerDB


TODAY = date(2024, 3, 15)


def _add_due(db: TrackerDB, room_number: str, due_offset: int, interval: int = 7, **kwargs):
    """Add a room whose next due date is ``due_offset`` days from TODAY."""
    last = TODAY + timedelta(days=due_offset - interval)
    return db.add_or_update_room(
        room_number, last_changed=last, interval_days=interval, today=TODAY, **kwargs
    )


def _count(db: TrackerDB, model) -> int:
    with db.SessionFactory() as session:
        return session.execute(select(func.count()).select_from(model)).scalar_one()


# ---------------------------------------------------------------------------
# Due-date engine
# ---------------------------------------------------------------------------

class TestSchedule:
    def test_next_due_adds_interval(self):
        assert next_due(date(2024, 1, 1), 14) == date(2024, 1, 15)

    def test_next_due_crosses_leap_day(self):
        assert next_due(date(2024, 2, 25), 7) == date(2024, 3, 3)

    def test_classify_thresholds(self):
        assert classify(TODAY - timedelta(days=1), TODAY) == DueStatus.OVERDUE
        assert classify(TODAY, TODAY) == DueStatus.DUE_TODAY
        assert classify(TODAY + timedelta(days=1), TODAY) == DueStatus.DUE_THIS_WEEK
        assert classify(TODAY + timedelta(days=6), TODAY) == DueStatus.DUE_THIS_WEEK
        assert classify(TODAY + timedelta(days=7), TODAY) == DueStatus.SCHEDULED

    def test_every_offset_gets_exactly_one_bucket(self):
        for interval in (1, 7, 14, 30):
            for offset in range(-40, 40):
                last = TODAY + timedelta(days=offset)
                status = compute_status(last, interval, today=TODAY)
                due = last + timedelta(days=interval)
                assert status.next_due == due
                assert status.days_until_due == (due - TODAY).days
                if due < TODAY:
                    expected = DueStatus.OVERDUE
                elif due == TODAY:
                    expected = DueStatus.DUE_TODAY
                elif due <= TODAY + timedelta(days=6):
                    expected = DueStatus.DUE_THIS_WEEK
                else:
                    expected = DueStatus.SCHEDULED
                assert status.status == expected

    def test_paused_only_matches_all(self):
        status = compute_status(TODAY - timedelta(days=20), 7, paused=True, today=TODAY)
        assert status.status == DueStatus.OVERDUE
        assert not status.is_overdue
        assert status.matches(RoomFilter.ALL)
        assert not status.matches(RoomFilter.OVERDUE)
        assert not status.matches(RoomFilter.DUE_TODAY)
        assert not status.matches(RoomFilter.DUE_THIS_WEEK)

    def test_week_filter_includes_today(self):
        status = compute_status(TODAY - timedelta(days=7), 7, today=TODAY)
        assert status.matches(RoomFilter.DUE_TODAY)
        assert status.matches(RoomFilter.DUE_THIS_WEEK)
        assert not status.matches(RoomFilter.OVERDUE)

    def test_parse_interval_defaults(self):
        assert parse_interval(None) == 14
        assert parse_interval("") == 14
        assert parse_interval("two weeks") == 14
        assert parse_interval(None, default=21) == 21

    def test_parse_interval_values(self):
        assert parse_interval(7) == 7
        assert parse_interval(" 10 ") == 10

    def test_parse_interval_rejects_non_positive(self):
        with pytest.raises(ValidationError):
            parse_interval(0)
        with pytest.raises(ValidationError):
            parse_interval("-3")


# ---------------------------------------------------------------------------
# Room list query (in-memory SQLite)
# ---------------------------------------------------------------------------

class TestRoomList:
    def setup_method(self):
        self.db = TrackerDB("sqlite:///:memory:")
        _add_due(self.db, "301", -1)
        _add_due(self.db, "105", -5, note="Window side, extra pillow")
        _add_due(self.db, "200", 0, resident_name="Kari Nordmann")
        _add_due(self.db, "150", 3)
        _add_due(self.db, "120", 3, note="Allergy: use 100% cotton")
        _add_due(self.db, "110", 20)

    def _numbers(self, room_filter=RoomFilter.ALL, search=""):
        return [r.room_number for r in self.db.list_rooms(room_filter, search=search, today=TODAY)]

    def test_order_overdue_first_then_due_date_then_number(self):
        assert self._numbers() == ["105", "301", "200", "120", "150", "110"]

    def test_overdue_filter(self):
        assert self._numbers(RoomFilter.OVERDUE) == ["105", "301"]

    def test_due_today_filter(self):
        assert self._numbers(RoomFilter.DUE_TODAY) == ["200"]

    def test_this_week_filter(self):
        assert self._numbers(RoomFilter.DUE_THIS_WEEK) == ["200", "120", "150"]

    def test_paused_rooms_excluded_from_due_filters(self):
        room = self.db.get_room_by_number("200")
        self.db.toggle_pause(room.id)
        assert self._numbers(RoomFilter.DUE_TODAY) == []
        assert "200" not in self._numbers(RoomFilter.DUE_THIS_WEEK)
        assert "200" in self._numbers(RoomFilter.ALL)

    def test_sql_filter_agrees_with_engine(self):
        for room_filter in RoomFilter:
            expected = [
                r.room_number
                for r in self.db.list_rooms(today=TODAY)
                if compute_status(r.last_changed, r.interval_days, r.paused, TODAY).matches(room_filter)
            ]
            assert self._numbers(room_filter) == expected

    def test_search_resident_case_insensitive(self):
        assert self._numbers(search="NORD") == ["200"]

    def test_search_folds_non_ascii_letters(self):
        _add_due(self.db, "401", 10, resident_name="Øyvind Ås", note="ÆRLIG")
        assert self._numbers(search="øyvind") == ["401"]
        assert self._numbers(search="ØYVIND ÅS") == ["401"]
        assert self._numbers(search="ærlig") == ["401"]

    def test_search_note_and_number(self):
        assert self._numbers(search="pillow") == ["105"]
        assert self._numbers(search="30") == ["301"]

    def test_search_combines_with_filter(self):
        assert self._numbers(RoomFilter.OVERDUE, search="05") == ["105"]
        assert self._numbers(RoomFilter.DUE_TODAY, search="pillow") == []

    def test_search_wildcards_are_literal(self):
        assert self._numbers(search="%") == ["120"]
        assert self._numbers(search="_") == []

    def test_blank_search_matches_everything(self):
        assert len(self._numbers(search="   ")) == 6

    def test_query_builder_composes_predicates(self):
        base = RoomQuery(today=TODAY)
        assert base.predicates() == []
        query = base.with_filter(RoomFilter.OVERDUE).with_search("05")
        assert len(query.predicates()) == 2
        assert base.room_filter == RoomFilter.ALL
        with self.db.SessionFactory() as session:
            rows = session.execute(query.statement()).all()
        assert [room.room_number for room, _ in rows] == ["105"]

    def test_row_fields(self):
        row = self.db.get_room_by_number("200", today=TODAY)
        assert row.resident_name == "Kari Nordmann"
        assert row.note == ""
        assert row.next_due == TODAY
        assert row.status == DueStatus.DUE_TODAY
        assert row.to_dict()["next_due"] == "2024-03-15"

    def test_summary(self):
        room = self.db.get_room_by_number("110")
        self.db.toggle_pause(room.id)
        summary = self.db.get_summary(TODAY)
        assert summary.total == 6
        assert summary.overdue == 2
        assert summary.due_today == 1
        assert summary.due_this_week == 2
        assert summary.paused == 1
        assert "2 overdue" in summary.format_text()


# ---------------------------------------------------------------------------
# Mutations (in-memory SQLite)
# ---------------------------------------------------------------------------

class TestMutations:
    def setup_method(self):
        self.db = TrackerDB("sqlite:///:memory:")

    def test_add_creates_room_and_schedule(self):
        row = self.db.add_or_update_room("101", note="Corner", interval_days=10, today=TODAY)
        assert row.id is not None
        assert row.last_changed == TODAY
        assert row.next_due == TODAY + timedelta(days=10)
        assert row.paused is False
        assert [c.note for c in self.db.list_changes(row.id)] == ["Room created"]

    def test_add_uses_default_interval(self):
        row = self.db.add_or_update_room("101", today=TODAY)
        assert row.interval_days == 14
        custom = TrackerDB("sqlite:///:memory:", default_interval_days=21)
        assert custom.add_or_update_room("101", interval_days="n/a", today=TODAY).interval_days == 21

    def test_add_is_idempotent_on_room_number(self):
        first = self.db.add_or_update_room("101", resident_name="Ola", note="a", today=TODAY)
        second = self.db.add_or_update_room(" 101 ", resident_name="Kari", note="b", interval_days=7, today=TODAY)
        assert first.id == second.id
        rows = self.db.list_rooms(today=TODAY)
        assert len(rows) == 1
        assert rows[0].resident_name == "Kari"
        assert rows[0].note == "b"
        assert rows[0].interval_days == 7
        assert _count(self.db, LinenSchedule) == 1
        assert [c.note for c in self.db.list_changes(first.id)][0] == "Room updated"

    def test_update_keeps_fields_left_out_and_pause_flag(self):
        row = self.db.add_or_update_room("101", note="Keep me", today=TODAY)
        self.db.toggle_pause(row.id)
        updated = self.db.add_or_update_room("101", interval_days=5, today=TODAY)
        assert updated.note == "Keep me"
        assert updated.paused is True

    def test_add_rejects_empty_room_number(self):
        with pytest.raises(ValidationError):
            self.db.add_or_update_room("   ")
        assert _count(self.db, Room) == 0
        assert _count(self.db, ChangeLogEntry) == 0

    def test_add_rejects_non_positive_interval(self):
        with pytest.raises(ValidationError):
            self.db.add_or_update_room("101", interval_days=0)
        assert _count(self.db, Room) == 0

    def test_mark_changed_today(self):
        row = self.db.add_or_update_room("101", last_changed=date(2024, 1, 1), today=TODAY)
        updated = self.db.mark_changed_today(row.id, today=TODAY)
        assert updated.last_changed == TODAY
        assert self.db.get_room(row.id).last_changed == TODAY
        assert self.db.list_changes(row.id)[0].note == "Changed today"

    def test_mark_changed_on_past_date(self):
        row = self.db.add_or_update_room("101", last_changed=date(2024, 1, 1), today=TODAY)
        updated = self.db.mark_changed_on(row.id, date(2024, 3, 10), today=TODAY)
        assert updated.last_changed == date(2024, 3, 10)
        assert self.db.list_changes(row.id)[0].note == "Changed on 2024-03-10"

    def test_mark_changed_on_accepts_today(self):
        row = self.db.add_or_update_room("101", last_changed=date(2024, 1, 1), today=TODAY)
        assert self.db.mark_changed_on(row.id, TODAY, today=TODAY).last_changed == TODAY

    def test_mark_changed_on_rejects_future(self):
        row = self.db.add_or_update_room("101", last_changed=date(2024, 1, 1), today=TODAY)
        with pytest.raises(ValidationError):
            self.db.mark_changed_on(row.id, TODAY + timedelta(days=1), today=TODAY)
        assert self.db.get_room(row.id).last_changed == date(2024, 1, 1)
        assert len(self.db.list_changes(row.id)) == 1

    def test_postpone_shifts_due_date(self):
        today = date(2024, 1, 20)
        row = self.db.add_or_update_room(
            "101", last_changed=date(2024, 1, 1), interval_days=14, today=today
        )
        assert row.status == DueStatus.OVERDUE
        updated = self.db.postpone(row.id, 7, today=today)
        assert updated.last_changed == date(2024, 1, 8)
        assert updated.next_due == row.next_due + timedelta(days=7)
        assert updated.status == DueStatus.DUE_THIS_WEEK
        assert self.db.list_changes(row.id)[0].note == "Postponed 7 day(s)"

    def test_postpone_rejects_non_positive_days(self):
        row = self.db.add_or_update_room("101", today=TODAY)
        with pytest.raises(ValidationError):
            self.db.postpone(row.id, 0)

    def test_toggle_pause(self):
        row = self.db.add_or_update_room("101", today=TODAY)
        assert self.db.toggle_pause(row.id).paused is True
        assert self.db.toggle_pause(row.id).paused is False
        notes = [c.note for c in self.db.list_changes(row.id)]
        assert notes[:2] == ["Resumed", "Paused"]

    def test_unknown_room(self):
        assert self.db.mark_changed_today(999) is None
        assert self.db.postpone(999) is None
        assert self.db.toggle_pause(999) is None
        assert self.db.get_room(999) is None
        assert self.db.delete_room(999) is False

    def test_delete_room_removes_everything(self):
        keep = self.db.add_or_update_room("100", today=TODAY)
        row = self.db.add_or_update_room("101", today=TODAY)
        self.db.mark_changed_today(row.id, today=TODAY)
        assert self.db.delete_room(row.id) is True
        assert self.db.get_room(row.id) is None
        assert self.db.list_changes(row.id) == []
        assert _count(self.db, Room) == 1
        assert _count(self.db, LinenSchedule) == 1
        assert len(self.db.list_changes(keep.id)) == 1

    def test_delete_room_is_all_or_nothing(self):
        row = self.db.add_or_update_room("101", today=TODAY)
        self.db.mark_changed_today(row.id, today=TODAY)

        def fail_on_room_delete(conn, cursor, statement, parameters, context, executemany):
            if statement.startswith("DELETE FROM rooms"):
                raise RuntimeError("induced failure")

        event.listen(self.db.engine, "before_cursor_execute", fail_on_room_delete)
        try:
            with pytest.raises(RuntimeError):
                self.db.delete_room(row.id)
        finally:
            event.remove(self.db.engine, "before_cursor_execute", fail_on_room_delete)

        assert self.db.get_room(row.id) is not None
        assert len(self.db.list_changes(row.id)) == 2
        assert _count(self.db, LinenSchedule) == 1

    def test_store_failure_is_wrapped_and_rolled_back(self):
        row = self.db.add_or_update_room("101", last_changed=date(2024, 1, 1), today=TODAY)

        def fail_on_schedule_update(conn, cursor, statement, parameters, context, executemany):
            if statement.startswith("UPDATE linens"):
                raise OperationalError(statement, parameters, Exception("disk I/O error"))

        event.listen(self.db.engine, "before_cursor_execute", fail_on_schedule_update)
        try:
            with pytest.raises(StoreError):
                self.db.mark_changed_today(row.id, today=TODAY)
        finally:
            event.remove(self.db.engine, "before_cursor_execute", fail_on_schedule_update)

        assert self.db.get_room(row.id).last_changed == date(2024, 1, 1)
        assert len(self.db.list_changes(row.id)) == 1

    def test_mutation_visible_to_next_query(self):
        row = _add_due(self.db, "101", -3)
        assert [r.id for r in self.db.list_rooms(RoomFilter.OVERDUE, today=TODAY)] == [row.id]
        self.db.mark_changed_today(row.id, today=TODAY)
        assert self.db.list_rooms(RoomFilter.OVERDUE, today=TODAY) == []


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------

class TestMigrations:
    def test_fresh_store_is_at_latest_version(self):
        db = TrackerDB("sqlite:///:memory:")
        assert current_version(db.engine) == LATEST_VERSION

    def test_migrations_apply_once(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'data.db'}"
        first = TrackerDB(url)
        first.add_or_update_room("101", today=TODAY)
        first.engine.dispose()

        second = TrackerDB(url)
        assert run_migrations(second.engine) == []
        assert current_version(second.engine) == LATEST_VERSION
        assert second.get_room_by_number("101") is not None

    def test_opens_store_written_before_version_tracking(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'legacy.db'}"
        engine = create_engine(url)
        with engine.begin() as conn:
            for statement in (
                "CREATE TABLE rooms (id INTEGER PRIMARY KEY AUTOINCREMENT, "
                "room_number TEXT NOT NULL UNIQUE, note TEXT, resident_name TEXT)",
                "CREATE TABLE linens (id INTEGER PRIMARY KEY AUTOINCREMENT, "
                "room_id INTEGER NOT NULL, last_changed TEXT NOT NULL, "
                "interval_days INTEGER NOT NULL, paused INTEGER NOT NULL DEFAULT 0, "
                "FOREIGN KEY (room_id) REFERENCES rooms(id))",
                "CREATE UNIQUE INDEX ux_linens_room ON linens(room_id)",
                "CREATE TABLE changes_log (id INTEGER PRIMARY KEY AUTOINCREMENT, "
                "room_id INTEGER NOT NULL, changed_at TEXT NOT NULL, note TEXT)",
                "INSERT INTO rooms (room_number, note, resident_name) VALUES ('101', 'Corner', 'Ola')",
                "INSERT INTO linens (room_id, last_changed, interval_days, paused) "
                "VALUES (1, '2024-03-01', 14, 0)",
            ):
                conn.execute(text(statement))
        engine.dispose()

        db = TrackerDB(url)
        assert current_version(db.engine) == LATEST_VERSION
        row = db.get_room_by_number("101", today=TODAY)
        assert row.resident_name == "Ola"
        assert row.next_due == TODAY

    def test_schema_has_resident_name(self):
        db = TrackerDB("sqlite:///:memory:")
        columns = {c["name"] for c in inspect(db.engine).get_columns("rooms")}
        assert {"id", "room_number", "note", "resident_name"} <= columns
        tables = set(inspect(db.engine).get_table_names())
        assert {"rooms", "linens", "changes_log", "schema_migrations"} <= tables
