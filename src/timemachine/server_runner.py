"""Helpers to launch the local JSON dashboard."""

from __future__ import annotations

import logging
import threading
import time
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .config import AnalyticsSettings, FeedSettings, TrackerSettings
from .webapp import create_app


def run_dashboard(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    analytics: Optional[AnalyticsSettings] = None,
    feed_settings: Optional[FeedSettings] = None,
    open_browser: bool = False,
    log_level: str = "info",
) -> None:
    """Start the FastAPI app with the collector and feed importer in the background."""
    app = create_app(
        db_path=db_path,
        settings=settings or TrackerSettings(),
        analytics=analytics,
        feed_settings=feed_settings or FeedSettings.from_env(),
    )

    if open_browser:
        url = f"http://{host}:{port}/api/reports"
        threading.Thread(
            target=_launch_browser_after_delay, args=(url,), daemon=True
        ).start()

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def _launch_browser_after_delay(url: str) -> None:
    time.sleep(1.0)
    try:
        webbrowser.open(url)
    except webbrowser.Error:
        logging.getLogger(__name__).exception("Failed to launch browser for %s", url)
