"""Console rendering for analytics reports."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional

from .analytics import (
    DistractionReport,
    EmptySource,
    FocusReport,
    GeneralReport,
    PatternReport,
    ReportBundle,
    load_reports,
)
from .config import AnalyticsSettings
from .db import (
    SessionStore,
    database_connection,
    fetch_feed_counts_for_day,
    fetch_recent_feed_events,
)
from .errors import StoreError
from .models import FeedEvent, Session

logger = logging.getLogger(__name__)

REPORT_KINDS = ("general", "focus", "pattern", "distractions")


def format_duration(value: timedelta) -> str:
    """Format as zero-padded ``HH:MM:SS``; hours do not wrap at 24."""
    total_seconds = max(int(value.total_seconds()), 0)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def render_general(report: GeneralReport) -> str:
    lines = [
        "--- GENERAL (today) ---",
        f"Active: {format_duration(report.active_time)}   Idle: {format_duration(report.idle_time)}",
        f"Sessions: {report.active_sessions}   Idle sessions: {report.idle_sessions}   "
        f"Avg session: {format_duration(report.average_session)}",
        "",
        "Top apps:",
    ]
    lines.extend(f"{entry.app} : {format_duration(entry.total)}" for entry in report.top_apps)
    return _block(lines, "------------------------")


def render_focus(report: FocusReport) -> str:
    deep_minutes = report.deep_threshold.total_seconds() / 60
    lines = [
        "--- FOCUS (today) ---",
        f"Deep threshold: {deep_minutes:g} min",
        f"Deep sessions: {report.deep_sessions}   Deep time: {format_duration(report.deep_time)}",
        f"Switches: {report.switches}",
        f"Focus score: {report.focus_score:.1f}%",
    ]
    if report.longest is not None:
        lines.append(
            f"Longest session: {report.longest.app}  {format_duration(report.longest.duration)}"
        )
    return _block(lines, "----------------------")


def render_pattern(report: PatternReport) -> str:
    lines = ["--- PATTERN (today) ---"]
    if report.peak_hour is None:
        lines.append("No active sessions yet.")
        return _block(lines, "-----------------------")

    lines.append(f"Total active: {format_duration(report.total_active)}")
    lines.append(
        f"Switches: {report.switches}   Avg session: {format_duration(report.average_session)}"
    )
    lines.append(f"Peak hour: {report.peak_hour:02d}:00  ({format_duration(report.peak_hour_time)})")
    if report.top_switch_target is not None:
        target = report.top_switch_target
        lines.append(f"Most switched-to app: {target.app} ({target.count})")
    return _block(lines, "------------------------")


def render_distractions(report: DistractionReport, has_activity: bool = True) -> str:
    lines = ["--- DISTRACTIONS (today) ---"]
    if not has_activity:
        lines.append("No active sessions yet.")
        return _block(lines, "----------------------------")

    short_seconds = int(report.short_threshold.total_seconds())
    if report.time_to_first_distraction is not None:
        first = format_duration(report.time_to_first_distraction)
    else:
        first = "n/a"
    lines.append(f"Time to first distraction: {first}  (short <= {short_seconds}s)")
    if report.top_switch_target is not None:
        target = report.top_switch_target
        lines.append(f"Main switch target: {target.app} ({target.count})")

    lines.append("")
    lines.append(f"Top short sessions (<= {short_seconds}s):")
    if not report.short_sessions:
        lines.append("(none)")
    for stats in report.short_sessions:
        lines.append(
            f"{stats.app}  hits:{stats.count}  avg:{format_duration(stats.average)}  "
            f"total:{format_duration(stats.total)}"
        )
    return _block(lines, "----------------------------")


def render_feed(counts: Iterable[tuple[str, int]], recent: Iterable[FeedEvent]) -> str:
    lines = ["--- TODAY: GITHUB EVENTS ---"]
    counts = list(counts)
    if not counts:
        lines.append("(no events today)")
    lines.extend(f"{event_type} : {total}" for event_type, total in counts)

    lines.append("")
    lines.append("Last 10:")
    for event in recent:
        lines.append(f"{event.created_time:%H:%M:%S}  {event.event_type}  {event.repo or ''}")
    return _block(lines, "----------------------------")


def render_bundle(bundle: ReportBundle, kind: Optional[str] = None) -> str:
    """Render one report kind, or all four when ``kind`` is ``None``."""
    has_activity = bundle.general.active_sessions > 0
    renderers = {
        "general": lambda: render_general(bundle.general),
        "focus": lambda: render_focus(bundle.focus),
        "pattern": lambda: render_pattern(bundle.pattern),
        "distractions": lambda: render_distractions(bundle.distractions, has_activity),
    }
    if kind is not None:
        return renderers[kind]()
    return "\n".join(render() for render in renderers.values())


def _block(lines: list[str], footer: str) -> str:
    return "\n" + "\n".join(lines + [footer]) + "\n"


class ReportPrinter:
    """Render human-readable reports in the console."""

    def __init__(self, db_path: Path, settings: Optional[AnalyticsSettings] = None) -> None:
        self.db_path = Path(db_path)
        self.settings = settings or AnalyticsSettings()

    def print_daily_reports(
        self,
        day: datetime,
        kind: Optional[str] = None,
        live: Optional[Session] = None,
    ) -> None:
        try:
            with database_connection(self.db_path) as conn:
                store = SessionStore(conn, self.settings.min_session_write)
                bundle = load_reports(store, live, self.settings, now=day)
        except StoreError:
            logger.exception("Database unavailable; reporting on an empty log.")
            bundle = load_reports(EmptySource(), live, self.settings, now=day)
        print(render_bundle(bundle, kind))

    def print_feed(self, day: datetime) -> None:
        try:
            with database_connection(self.db_path) as conn:
                counts = fetch_feed_counts_for_day(conn, day)
                recent = fetch_recent_feed_events(conn, day)
        except (StoreError, sqlite3.Error):
            logger.exception("Database unavailable; no feed events to show.")
            counts, recent = [], []
        print(render_feed(counts, recent))
