"""
Exports of the room list.
"""

from linen_tracker.export.daily_list import (
    DailyExport,
    build_daily_export,
    write_daily_export,
)

__all__ = ["DailyExport", "build_daily_export", "write_daily_export"]
