"""
Best-effort backups of the store file.

Copies the store into a backup directory under a timestamped name and keeps
only the newest ``keep`` copies. Nothing in here raises: a failed backup is
logged and the caller carries on.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)


TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
DEFAULT_KEEP = 30


def _created_at(path: Path) -> float:
    stat = path.stat()
    # st_birthtime exists on macOS/BSD and on Windows with Python 3.12+.
    return getattr(stat, "st_birthtime", stat.st_mtime)


class BackupRotator:
    """
    Timestamped copies of a single store file with retention.

    Usage:
        rotator = BackupRotator(config.db_path, config.backup_dir, keep=30)
        rotator.run_daily()
    """

    def __init__(self, db_path: str | Path, backup_dir: str | Path, keep: int = DEFAULT_KEEP) -> None:
        self.db_path = Path(db_path)
        self.backup_dir = Path(backup_dir)
        self.keep = max(keep, 1)

    @property
    def prefix(self) -> str:
        return f"{self.db_path.stem}_"

    @property
    def pattern(self) -> str:
        return f"{self.prefix}*{self.db_path.suffix}"

    def backup_name(self, now: datetime) -> str:
        return f"{self.prefix}{now.strftime(TIMESTAMP_FORMAT)}{self.db_path.suffix}"

    def list_backups(self) -> list[Path]:
        """Backup files, newest first."""
        if not self.backup_dir.is_dir():
            return []
        files = [p for p in self.backup_dir.glob(self.pattern) if p.is_file()]
        files.sort(key=lambda p: (_created_at(p), p.name), reverse=True)
        return files

    def has_backup_for(self, day: datetime) -> bool:
        day_prefix = f"{self.prefix}{day.strftime('%Y-%m-%d')}_".lower()
        return any(p.name.lower().startswith(day_prefix) for p in self.list_backups())

    def run(self, now: Optional[datetime] = None) -> Optional[Path]:
        """Copy the store now and rotate old copies. Returns the new backup, if any."""
        try:
            if not self.db_path.exists():
                logger.debug("No store at %s, skipping backup", self.db_path)
                return None
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            target = self.backup_dir / self.backup_name(now or datetime.now())
            created: Optional[Path] = None
            if target.exists():
                logger.info("Backup %s already exists, not overwriting", target.name)
            else:
                shutil.copy2(self.db_path, target)
                created = target
                logger.info("Backed up %s to %s", self.db_path, target)
            self.rotate()
            return created
        except Exception as exc:
            logger.warning("Backup of %s failed: %s", self.db_path, exc)
            return None

    def run_daily(self, now: Optional[datetime] = None) -> Optional[Path]:
        """Back up only if no backup from today exists yet."""
        now = now or datetime.now()
        try:
            if self.has_backup_for(now):
                return None
        except Exception as exc:
            logger.warning("Could not inspect backups in %s: %s", self.backup_dir, exc)
            return None
        return self.run(now)

    def rotate(self) -> list[Path]:
        """Delete all but the newest ``keep`` backups. Returns the removed files."""
        removed: list[Path] = []
        for old in self.list_backups()[self.keep:]:
            try:
                old.unlink()
                removed.append(old)
            except OSError as exc:
                logger.warning("Could not remove old backup %s: %s", old, exc)
        return removed
