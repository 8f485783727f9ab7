"""
Due-date calculation for linen schedules.

A schedule is due ``interval_days`` calendar days after the linens were
last changed. Rooms are bucketed relative to a reference day:

- OVERDUE        next due date already passed
- DUE_TODAY      next due date is the reference day
- DUE_THIS_WEEK  due within the following six days
- SCHEDULED      anything later
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Optional

from linen_tracker.errors import ValidationError


WEEK_WINDOW_DAYS = 6
DEFAULT_INTERVAL_DAYS = 14


class DueStatus(enum.Enum):
    """Where a room's next due date falls relative to today."""

    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    DUE_THIS_WEEK = "due_this_week"
    SCHEDULED = "scheduled"


class RoomFilter(enum.Enum):
    """Room list filters offered to the user."""

    ALL = "all"
    DUE_TODAY = "today"
    OVERDUE = "overdue"
    DUE_THIS_WEEK = "week"


def next_due(last_changed: date, interval_days: int) -> date:
    """Return the date the linens are next due."""
    return last_changed + timedelta(days=interval_days)


def week_end(today: date) -> date:
    """Last day of the "this week" window starting at ``today``."""
    return today + timedelta(days=WEEK_WINDOW_DAYS)


def classify(due: date, today: date) -> DueStatus:
    if due < today:
        return DueStatus.OVERDUE
    if due == today:
        return DueStatus.DUE_TODAY
    if due <= week_end(today):
        return DueStatus.DUE_THIS_WEEK
    return DueStatus.SCHEDULED


@dataclass(frozen=True)
class ScheduleStatus:
    """Derived state of a linen schedule on a given day."""

    next_due: date
    status: DueStatus
    paused: bool
    days_until_due: int

    @property
    def is_overdue(self) -> bool:
        return not self.paused and self.status == DueStatus.OVERDUE

    def matches(self, room_filter: RoomFilter) -> bool:
        """In-memory equivalent of the SQL filter used by the room list."""
        if room_filter == RoomFilter.ALL:
            return True
        if self.paused:
            return False
        if room_filter == RoomFilter.OVERDUE:
            return self.status == DueStatus.OVERDUE
        if room_filter == RoomFilter.DUE_TODAY:
            return self.status == DueStatus.DUE_TODAY
        # The week list includes rooms due today.
        return self.status in (DueStatus.DUE_TODAY, DueStatus.DUE_THIS_WEEK)


def compute_status(
    last_changed: date,
    interval_days: int,
    paused: bool = False,
    today: Optional[date] = None,
) -> ScheduleStatus:
    today = today or date.today()
    due = next_due(last_changed, interval_days)
    return ScheduleStatus(
        next_due=due,
        status=classify(due, today),
        paused=paused,
        days_until_due=(due - today).days,
    )


def parse_interval(value: Any, default: int = DEFAULT_INTERVAL_DAYS) -> int:
    """Turn user input into an interval in days.

    Missing or unparseable input falls back to ``default``. A parsed value
    of zero or less is rejected.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        parsed = value
    else:
        try:
            parsed = int(str(value).strip())
        except ValueError:
            return default
    if parsed <= 0:
        raise ValidationError(f"Interval must be at least 1 day, got {parsed}.")
    return parsed
