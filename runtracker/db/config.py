from __future__ import annotations

import os
from pathlib import Path


DATABASE_NAME = "garmin-run-tracker.db"


def data_dir() -> Path:
    default = Path.home() / ".local" / "share" / "garmin-run-tracker"
    return Path(os.getenv("RUNTRACKER_DATA_DIR", default))


def devices_dir() -> Path:
    """Location raw FIT files are copied to after a successful import."""
    return data_dir() / "devices"


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", f"sqlite:///{data_dir() / DATABASE_NAME}")
