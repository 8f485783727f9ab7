"""
Backup rotation for the tracker store file.
"""

from linen_tracker.backup.rotation import BackupRotator

__all__ = ["BackupRotator"]
