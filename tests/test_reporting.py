from datetime import timedelta

from conftest import T0, make_session

from timemachine.analytics import build_reports
from timemachine.db import SessionStore, open_database
from timemachine.models import FeedEvent
from timemachine.reporting import (
    ReportPrinter,
    format_duration,
    render_bundle,
    render_feed,
)


def test_format_duration():
    assert format_duration(timedelta(0)) == "00:00:00"
    assert format_duration(timedelta(seconds=59.999)) == "00:00:59"
    assert format_duration(timedelta(hours=26, minutes=3, seconds=4)) == "26:03:04"
    assert format_duration(timedelta(seconds=-5)) == "00:00:00"


def test_render_empty_bundle():
    text = render_bundle(build_reports([]))

    assert "--- GENERAL (today) ---" in text
    assert "Focus score: 0.0%" in text
    assert text.count("No active sessions yet.") == 2


def test_render_reports_with_activity():
    sessions = [
        make_session(0, 25 * 60, "Editor"),
        make_session(25 * 60, 30, "Chat"),
        make_session(25 * 60 + 30, 5 * 60, "Editor"),
    ]
    bundle = build_reports(sessions)

    focus = render_bundle(bundle, "focus")
    assert "Deep threshold: 20 min" in focus
    assert "Longest session: Editor  00:25:00" in focus

    distractions = render_bundle(bundle, "distractions")
    assert "Time to first distraction: 00:25:00  (short <= 90s)" in distractions
    assert "Chat  hits:1  avg:00:00:30  total:00:00:30" in distractions

    pattern = render_bundle(bundle, "pattern")
    assert "Peak hour: 09:00" in pattern


def test_render_feed():
    events = [FeedEvent("1", "PushEvent", "octo/agent", T0, "{}")]
    text = render_feed([("PushEvent", 1)], events)
    assert "PushEvent : 1" in text
    assert "09:00:00  PushEvent  octo/agent" in text
    assert "(no events today)" in render_feed([], [])


def test_printer_reads_database(db_file, capsys):
    store = SessionStore(open_database(db_file))
    store.insert_session(make_session(0, 600, "Editor"))
    store.close()

    ReportPrinter(db_file).print_daily_reports(T0, "general")

    out = capsys.readouterr().out
    assert "Active: 00:10:00" in out
    assert "Editor : 00:10:00" in out


def test_printer_degrades_on_unreadable_database(corrupt_db, capsys):
    ReportPrinter(corrupt_db).print_daily_reports(T0)

    out = capsys.readouterr().out
    assert "Focus score: 0.0%" in out
    assert out.count("No active sessions yet.") == 2


def test_printer_includes_live_session_when_database_fails(corrupt_db, capsys):
    live = make_session(0, 600, "Browser")

    ReportPrinter(corrupt_db).print_daily_reports(T0, "general", live=live)

    assert "Browser : 00:10:00" in capsys.readouterr().out


def test_feed_printer_degrades_on_unreadable_database(corrupt_db, capsys):
    ReportPrinter(corrupt_db).print_feed(T0)
    assert "(no events today)" in capsys.readouterr().out
