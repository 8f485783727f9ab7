"""
Tracker configuration model.

Defines where the store, backups and exports live and the defaults applied
to new rooms. Supports loading from a JSON config file, with the data
directory overridable through an environment variable.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional


HOME_ENV_VAR = "LINEN_TRACKER_HOME"


def _default_data_dir() -> Path:
    return Path.home() / ".linen_tracker"


@dataclass
class TrackerConfig:
    """Runtime settings for the linen tracker.

    Attributes:
        data_dir: Directory holding the store file, backups and exports.
        db_filename: File name of the SQLite store inside ``data_dir``.
        backup_dirname: Subdirectory of ``data_dir`` for backup copies.
        backup_keep: Number of newest backup files retained by rotation.
        default_interval_days: Interval used when a room is added without
                               a (parseable) interval.
        export_dirname: Subdirectory of ``data_dir`` for CSV exports.
                        Empty means ``data_dir`` itself.
    """

    data_dir: Path = field(default_factory=_default_data_dir)
    db_filename: str = "data.db"
    backup_dirname: str = "backups"
    backup_keep: int = 30
    default_interval_days: int = 14
    export_dirname: str = ""

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_filename

    @property
    def db_url(self) -> str:
        return f"sqlite:///{self.db_path}"

    @property
    def backup_dir(self) -> Path:
        return self.data_dir / self.backup_dirname

    @property
    def export_dir(self) -> Path:
        if self.export_dirname:
            return self.data_dir / self.export_dirname
        return self.data_dir


def load_config(config_path: Optional[str | Path] = None) -> TrackerConfig:
    """Build a TrackerConfig from defaults, an optional JSON file and the environment.

    The ``LINEN_TRACKER_HOME`` environment variable, when set, wins over
    the ``data_dir`` given in the file.

    Args:
        config_path: Path to a JSON config file, or None for defaults only.

    Returns:
        A populated TrackerConfig instance.

    Raises:
        FileNotFoundError: If config_path is given but does not exist.
        json.JSONDecodeError: If the JSON is malformed.
    """
    raw: dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Tracker config not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)

    config = TrackerConfig(
        db_filename=raw.get("db_filename", "data.db"),
        backup_dirname=raw.get("backup_dirname", "backups"),
        backup_keep=int(raw.get("backup_keep", 30)),
        default_interval_days=int(raw.get("default_interval_days", 14)),
        export_dirname=raw.get("export_dirname", ""),
    )
    if raw.get("data_dir"):
        config.data_dir = Path(raw["data_dir"]).expanduser()

    env_home = os.environ.get(HOME_ENV_VAR, "")
    if env_home:
        config.data_dir = Path(env_home).expanduser()

    return config
