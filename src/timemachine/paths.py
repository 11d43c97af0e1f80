"""Helpers for locating the agent's database and log files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from platformdirs import PlatformDirs


APP_NAME = "TimeMachine"
APP_AUTHOR = "TimeMachine"
HOME_ENV_VAR = "TIMEMACHINE_HOME"


def get_data_dir() -> Path:
    """Return the directory holding the database and logs.

    ``TIMEMACHINE_HOME`` overrides the per-user platform directory.
    """
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        path = Path(override).expanduser()
    else:
        dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=True)
        path = Path(dirs.user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def resolve_db_path(db_path: Optional[Path] = None) -> Path:
    """Return ``db_path`` (creating its parent) or the default database path."""
    if db_path is None:
        return get_data_dir() / "timemachine.sqlite3"
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def get_log_path() -> Path:
    return get_data_dir() / "agent.log"
