"""
Daily list export — the rooms whose linens are due today, as CSV.

The document is rendered with Jinja2 in the same way as every other text
document of the project. Fields are joined with plain commas and never
quoted, so commas and line breaks inside a room number or note are replaced
with spaces.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Optional

from jinja2 import BaseLoader, Environment

from linen_tracker.tracker.query import RoomRow
from linen_tracker.tracker.schedule import RoomFilter
from linen_tracker.tracker.tracker import TrackerDB


logger = logging.getLogger(__name__)


CSV_HEADER = "Room,Interval,LastChanged,NextDue,Note"

DAILY_LIST_TEMPLATE = """\
{{ header }}
{% for row in rows %}
{{ row.room_number | csv_field }},{{ row.interval_days }},{{ row.last_changed.isoformat() }},{{ row.next_due.isoformat() }},{{ row.note | csv_field }}
{% endfor %}
"""


def csv_field(value: Optional[str]) -> str:
    """Make a value safe for an unquoted comma-separated line."""
    if not value:
        return ""
    return value.replace("\r\n", " ").replace("\n", " ").replace("\r", " ").replace(",", " ")


def _environment() -> Environment:
    env = Environment(
        loader=BaseLoader(),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters["csv_field"] = csv_field
    return env


@dataclass
class DailyExport:
    """Rows due on ``day`` and the CSV document listing them."""

    day: date
    rows: list[RoomRow] = field(default_factory=list)
    content: str = ""

    @property
    def filename(self) -> str:
        return f"daily_list_{self.day.isoformat()}.csv"


def render_daily_list(rows: list[RoomRow]) -> str:
    template = _environment().from_string(DAILY_LIST_TEMPLATE)
    return template.render(header=CSV_HEADER, rows=rows)


def build_daily_export(db: TrackerDB, today: Optional[date] = None) -> DailyExport:
    """Collect the unpaused rooms due today, sorted by room number."""
    today = today or date.today()
    rows = sorted(
        db.list_rooms(RoomFilter.DUE_TODAY, today=today),
        key=lambda r: r.room_number,
    )
    return DailyExport(day=today, rows=rows, content=render_daily_list(rows))


def write_daily_export(export: DailyExport, directory: str | Path) -> Path:
    """Write the export as UTF-8 into ``directory`` and return the file path."""
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / export.filename
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(export.content)
    logger.info("Wrote %d room(s) to %s", len(export.rows), path)
    return path
