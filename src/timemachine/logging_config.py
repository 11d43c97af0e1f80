"""Logging setup shared by the CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(verbose: bool = False, log_path: Optional[Path] = None) -> None:
    """Log to the console and, when a path is given, to a file as well."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_path is not None:
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
    )
    # urllib3 is chatty at DEBUG; the feed importer logs what matters.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
