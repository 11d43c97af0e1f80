"""FastAPI application exposing the day's reports as JSON."""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .analytics import EmptySource, load_reports, report_to_dict
from .collector import ActivityCollector
from .config import AnalyticsSettings, FeedSettings, TrackerSettings
from .db import (
    SessionStore,
    database_connection,
    fetch_feed_counts_for_day,
    fetch_recent_feed_events,
)
from .errors import StoreError
from .feed import FeedImporter, FeedRunner
from .models import Session
from .paths import resolve_db_path
from .reporting import REPORT_KINDS

logger = logging.getLogger(__name__)

CollectorFactory = Callable[[Path, TrackerSettings], ActivityCollector]


class CollectorRunner:
    """Manage the activity collector in a background thread."""

    def __init__(
        self,
        db_path: Path,
        settings: TrackerSettings,
        factory: Optional[CollectorFactory] = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._settings = settings
        self._factory = factory or _default_collector
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._collector: Optional[ActivityCollector] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            collector = self._factory(self._db_path, self._settings)
            thread = threading.Thread(
                target=collector.run_until_stopped,
                args=(stop_event,),
                name="collector",
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            self._collector = collector
            thread.start()
            logger.info("Collector background thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
            self._collector = None
        if thread:
            thread.join(timeout=10)
            logger.info("Collector background thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def live_session(self) -> Optional[Session]:
        with self._lock:
            collector = self._collector
        return collector.live_session() if collector is not None else None


def _default_collector(db_path: Path, settings: TrackerSettings) -> ActivityCollector:
    return ActivityCollector(db_path=db_path, settings=settings)


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    analytics: Optional[AnalyticsSettings] = None,
    feed_settings: Optional[FeedSettings] = None,
    collector_factory: Optional[CollectorFactory] = None,
    track: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = resolve_db_path(db_path)
    resolved_settings = settings or TrackerSettings()
    resolved_analytics = analytics or AnalyticsSettings(
        min_session_write=resolved_settings.min_session_write
    )
    runner = CollectorRunner(resolved_db_path, resolved_settings, collector_factory)
    importer = FeedImporter.from_settings(resolved_db_path, feed_settings or FeedSettings())
    feed_runner = FeedRunner(importer) if importer is not None else None

    app = FastAPI(title="TimeMachine", version="0.4.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.collector_runner = runner
    app.state.feed_runner = feed_runner

    @app.on_event("startup")
    async def _startup() -> None:
        if track:
            runner.start()
        if feed_runner is not None:
            feed_runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()
        if feed_runner is not None:
            feed_runner.stop()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        live = request.app.state.collector_runner.live_session()
        return {
            "collector_running": request.app.state.collector_runner.is_running(),
            "feed_running": bool(feed_runner and feed_runner.is_running()),
            "database_path": str(request.app.state.db_path),
            "poll_ms": resolved_settings.poll_interval.total_seconds() * 1000,
            "grace_ms": resolved_settings.grace_switch.total_seconds() * 1000,
            "idle_seconds": resolved_settings.idle_threshold.total_seconds(),
            "live_session": report_to_dict(live) if live is not None else None,
        }

    @app.get("/api/reports")
    def reports(request: Request) -> Dict[str, Any]:
        bundle = _load_today(request)
        return report_to_dict(bundle)

    @app.get("/api/reports/{kind}")
    def report(kind: str, request: Request) -> Dict[str, Any]:
        if kind not in REPORT_KINDS:
            raise HTTPException(status_code=404, detail=f"Unknown report: {kind}")
        bundle = _load_today(request)
        return report_to_dict(getattr(bundle, kind))

    @app.get("/api/sessions")
    def sessions(
        request: Request,
        date: Optional[str] = Query(
            default=None,
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        target_day = _parse_date(date)
        try:
            with database_connection(request.app.state.db_path) as conn:
                rows = SessionStore(conn).query_day(target_day)
        except StoreError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return {
            "date": target_day.strftime("%Y-%m-%d"),
            "sessions": [
                {**report_to_dict(session), "duration_seconds": session.duration_seconds}
                for session in rows
            ],
        }

    @app.get("/api/feed")
    def feed(
        request: Request,
        date: Optional[str] = Query(default=None, description="Target date in YYYY-MM-DD format."),
    ) -> Dict[str, Any]:
        target_day = _parse_date(date)
        try:
            with database_connection(request.app.state.db_path) as conn:
                counts = fetch_feed_counts_for_day(conn, target_day)
                recent = fetch_recent_feed_events(conn, target_day)
        except (StoreError, sqlite3.Error):
            logger.exception("Database unavailable; serving an empty feed.")
            counts, recent = [], []
        return {
            "date": target_day.strftime("%Y-%m-%d"),
            "counts": [{"event_type": name, "count": total} for name, total in counts],
            "recent": [
                {
                    "event_id": event.event_id,
                    "event_type": event.event_type,
                    "repo": event.repo,
                    "created_time": event.created_time.isoformat(),
                }
                for event in recent
            ],
        }

    def _load_today(request: Request):
        live = request.app.state.collector_runner.live_session()
        try:
            with database_connection(request.app.state.db_path) as conn:
                store = SessionStore(conn, resolved_analytics.min_session_write)
                return load_reports(store, live, resolved_analytics)
        except StoreError:
            logger.exception("Database unavailable; serving reports for the live session only.")
            return load_reports(EmptySource(), live, resolved_analytics)

    return app


def _parse_date(value: Optional[str]) -> datetime:
    if not value:
        return _start_of_day(datetime.now())
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc
    return _start_of_day(parsed)


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)
