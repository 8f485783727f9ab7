"""
Linen Tracker — bed-linen change schedules for hotel and care-facility rooms.
"""

__version__ = "0.3.0"
