"""Command-line interface for the TimeMachine agent."""

from __future__ import annotations

import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

import typer

from .config import AnalyticsSettings, FeedSettings, TrackerSettings
from .paths import get_log_path, resolve_db_path

if TYPE_CHECKING:
    from .collector import ReportHandler
    from .db import SessionStore
    from .models import Session

app = typer.Typer(help="Local-first focus and session tracker.")

REPORT_KEYS = {
    "s": "general",
    "f": "focus",
    "p": "pattern",
    "d": "distractions",
    "g": "github",
}


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    from .logging_config import setup_logging

    setup_logging(verbose=verbose, log_path=get_log_path())


@app.command()
def track(
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the session SQLite database."
    ),
    poll_ms: int = typer.Option(250, "--poll-ms", min=50, help="Sampling interval in milliseconds."),
    idle_seconds: int = typer.Option(
        60, "--idle-threshold", min=1, help="Seconds without input before time counts as idle."
    ),
    grace_ms: int = typer.Option(
        5000, "--grace-ms", min=0, help="How long a new window must hold focus to start a session."
    ),
    min_write_ms: int = typer.Option(
        1000, "--min-write-ms", min=0, help="Sessions shorter than this are not recorded."
    ),
    deep_minutes: float = typer.Option(20.0, "--deep-minutes", min=1.0, help="Deep-work threshold."),
    short_seconds: float = typer.Option(
        90.0, "--short-seconds", min=1.0, help="Sessions at or below this count as distractions."
    ),
    feed: bool = typer.Option(
        True, "--feed/--no-feed", help="Import GitHub public events when a token is set."
    ),
) -> None:
    """Track focus until interrupted. Type s/f/p/d/g + Enter for a report."""
    from .collector import ActivityCollector
    from .feed import FeedImporter, FeedRunner

    resolved_db = resolve_db_path(db_path)
    settings = TrackerSettings.from_intervals(
        poll_ms=poll_ms, idle_seconds=idle_seconds, grace_ms=grace_ms, min_write_ms=min_write_ms
    )
    analytics = AnalyticsSettings.from_intervals(
        deep_minutes=deep_minutes, short_seconds=short_seconds, min_write_ms=min_write_ms
    )

    feed_runner = None
    if feed:
        importer = FeedImporter.from_settings(resolved_db, FeedSettings.from_env())
        if importer is not None:
            feed_runner = FeedRunner(importer)
            feed_runner.start()

    collector = ActivityCollector(
        db_path=resolved_db,
        settings=settings,
        report_handler=make_report_handler(analytics),
    )
    threading.Thread(
        target=_read_report_keys, args=(collector.request_report,), name="keys", daemon=True
    ).start()
    typer.echo("Keys: s=General f=Focus p=Pattern d=Distractions g=GitHub, Ctrl+C to stop.")
    try:
        collector.run_forever()
    finally:
        if feed_runner is not None:
            feed_runner.stop()


def make_report_handler(analytics: AnalyticsSettings) -> ReportHandler:
    """Build the callback the polling loop uses to print a requested report."""
    from .analytics import load_reports
    from .db import fetch_feed_counts_for_day, fetch_recent_feed_events
    from .reporting import render_bundle, render_feed

    def handle(kind: str, store: SessionStore, live: Optional[Session]) -> None:
        now = datetime.now()
        if kind == "github":
            conn = store.connection
            counts = fetch_feed_counts_for_day(conn, now)
            typer.echo(render_feed(counts, fetch_recent_feed_events(conn, now)))
            return
        bundle = load_reports(store, live, analytics, now=now)
        typer.echo(render_bundle(bundle, kind))

    return handle


def _read_report_keys(request: Callable[[str], None]) -> None:
    if sys.platform == "win32":
        import msvcrt

        while True:
            key = msvcrt.getwch().lower()
            if key in REPORT_KEYS:
                request(REPORT_KEYS[key])
    for line in sys.stdin:
        key = line.strip().lower()[:1]
        if key in REPORT_KEYS:
            request(REPORT_KEYS[key])


@app.command()
def report(
    kind: str = typer.Argument(
        "all", help="general, focus, pattern, distractions or all."
    ),
    date: Optional[str] = typer.Option(
        None, "--date", help="Date (YYYY-MM-DD) to report on. Defaults to today."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the session SQLite database."
    ),
    deep_minutes: float = typer.Option(20.0, "--deep-minutes", min=1.0),
    short_seconds: float = typer.Option(90.0, "--short-seconds", min=1.0),
) -> None:
    """Print analytics for a specific day from the recorded sessions."""
    from .reporting import REPORT_KINDS, ReportPrinter

    if kind != "all" and kind not in REPORT_KINDS:
        raise typer.BadParameter(f"Unknown report kind: {kind}")
    target = datetime.strptime(date, "%Y-%m-%d") if date else datetime.now()
    analytics = AnalyticsSettings.from_intervals(deep_minutes=deep_minutes, short_seconds=short_seconds)
    printer = ReportPrinter(resolve_db_path(db_path), analytics)
    printer.print_daily_reports(target, None if kind == "all" else kind)


@app.command("feed")
def feed_summary(
    date: Optional[str] = typer.Option(None, "--date", help="Date (YYYY-MM-DD). Defaults to today."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the session SQLite database."
    ),
) -> None:
    """Print the GitHub events imported for a day."""
    from .reporting import ReportPrinter

    target = datetime.strptime(date, "%Y-%m-%d") if date else datetime.now()
    ReportPrinter(resolve_db_path(db_path)).print_feed(target)


@app.command("import-feed")
def import_feed(
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the session SQLite database."
    ),
    page_size: int = typer.Option(30, "--page-size", min=1, max=100),
) -> None:
    """Import one page of GitHub public events now."""
    from .feed import FeedImporter

    importer = FeedImporter.from_settings(
        resolve_db_path(db_path), FeedSettings.from_env(page_size=page_size)
    )
    if importer is None:
        raise typer.Exit(code=1)
    typer.echo(f"Imported {importer.import_once()} new event(s).")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the dashboard."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the dashboard."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the session SQLite database."
    ),
    poll_ms: int = typer.Option(250, "--poll-ms", min=50, help="Sampling interval in milliseconds."),
    idle_seconds: int = typer.Option(60, "--idle-threshold", min=1),
    grace_ms: int = typer.Option(5000, "--grace-ms", min=0),
    open_browser: bool = typer.Option(
        False,
        "--open-browser/--no-open-browser",
        help="Open the reports endpoint in your default browser.",
    ),
) -> None:
    """Serve the reports as JSON while tracking in the background."""
    from .server_runner import run_dashboard

    settings = TrackerSettings.from_intervals(
        poll_ms=poll_ms, idle_seconds=idle_seconds, grace_ms=grace_ms
    )
    run_dashboard(
        host=host,
        port=port,
        db_path=resolve_db_path(db_path),
        settings=settings,
        open_browser=open_browser,
    )
