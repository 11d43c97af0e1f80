from datetime import timedelta
from unittest.mock import Mock

import pytest

from conftest import T0, make_session

from timemachine.analytics import (
    build_reports,
    count_switches,
    distraction_report,
    focus_report,
    general_report,
    load_reports,
    pattern_report,
    report_to_dict,
    top_switch_target,
    with_live,
)
from timemachine.config import AnalyticsSettings
from timemachine.errors import StoreError


def test_empty_log_degrades_to_zero_values():
    bundle = build_reports([])

    assert bundle.general.active_time == timedelta(0)
    assert bundle.general.top_apps == []
    assert bundle.general.average_session == timedelta(0)
    assert bundle.focus.focus_score == 0
    assert bundle.focus.ratio == 0
    assert bundle.focus.longest is None
    assert bundle.pattern.peak_hour is None
    assert bundle.pattern.top_switch_target is None
    assert bundle.distractions.short_sessions == []
    assert bundle.distractions.time_to_first_distraction is None


def test_general_report_totals_and_top_apps():
    sessions = [
        make_session(0, 600, "Editor"),
        make_session(600, 60, "", is_idle=True),
        make_session(660, 300, "Browser"),
        make_session(960, 600, "Chat"),
        make_session(1560, 120, "Editor"),
    ]
    report = general_report(sessions)

    assert report.active_time == timedelta(seconds=1620)
    assert report.idle_time == timedelta(seconds=60)
    assert (report.active_sessions, report.idle_sessions) == (4, 1)
    assert report.average_session == timedelta(seconds=405)
    assert [(a.app, a.total.total_seconds()) for a in report.top_apps] == [
        ("Editor", 720),
        ("Chat", 600),
        ("Browser", 300),
    ]


def test_top_apps_ties_keep_first_seen_order():
    sessions = [make_session(0, 60, "B"), make_session(60, 60, "A"), make_session(120, 60, "C")]
    assert [a.app for a in general_report(sessions).top_apps] == ["B", "A", "C"]


def test_top_apps_limited():
    sessions = [make_session(i * 10, 10 + i, f"App{i}") for i in range(12)]
    assert len(general_report(sessions, top_n=10).top_apps) == 10


def test_focus_score_scenario():
    sessions = [make_session(0, 25 * 60, "Editor"), make_session(25 * 60, 5 * 60, "Browser")]
    report = focus_report(sessions, deep_threshold=timedelta(minutes=20), switch_penalty=0.5)

    assert report.deep_sessions == 1
    assert report.deep_time == timedelta(minutes=25)
    assert report.switches == 1
    assert report.ratio == pytest.approx(25 / 30)
    assert report.focus_score == pytest.approx(25 / 30 * 100 - 0.5)
    assert round(report.focus_score, 1) == 82.8
    assert report.longest.app == "Editor"


def test_focus_score_is_clamped():
    sessions = [make_session(i * 10, 10, "A" if i % 2 else "B") for i in range(50)]
    report = focus_report(sessions)
    assert report.switches == 49
    assert report.focus_score == 0.0

    deep_only = focus_report([make_session(0, 3600, "Editor")])
    assert deep_only.focus_score == 100.0


def test_switches_are_case_insensitive_and_ignore_idle():
    sessions = [
        make_session(0, 60, "Editor"),
        make_session(60, 60, "", is_idle=True),
        make_session(120, 60, "EDITOR"),
        make_session(180, 60, "Browser"),
    ]
    active = [s for s in sessions if not s.is_idle]
    assert count_switches(active) == 1


def test_sessions_are_ordered_by_start_before_counting():
    sessions = [make_session(120, 60, "A"), make_session(0, 60, "A"), make_session(60, 60, "B")]
    assert focus_report(sessions).switches == 2


def test_pattern_report_peak_hour_and_switch_target():
    sessions = [
        make_session(0, 600, "Editor"),  # 09:00
        make_session(600, 60, "Chat"),
        make_session(660, 600, "Editor"),
        make_session(3600, 1800, "Editor"),  # 10:00
        make_session(5400, 60, "chat"),
    ]
    report = pattern_report(sessions)

    assert report.peak_hour == 10
    assert report.peak_hour_time == timedelta(seconds=1860)
    assert report.switches == 3
    assert report.total_active == timedelta(seconds=3120)
    assert report.average_session == timedelta(seconds=624)
    assert report.top_switch_target.app == "Chat"
    assert report.top_switch_target.count == 2


def test_peak_hour_tie_keeps_first_hour():
    sessions = [make_session(0, 60, "A"), make_session(3600, 60, "B")]
    assert pattern_report(sessions).peak_hour == T0.hour


def test_switch_target_ties_are_alphabetical():
    sessions = [
        make_session(0, 10, "Start"),
        make_session(10, 10, "Zed"),
        make_session(20, 10, "Start"),
        make_session(30, 10, "alpha"),
    ]
    target = top_switch_target(sessions)
    # Start, Zed and alpha each receive one switch.
    assert (target.app, target.count) == ("alpha", 1)


def test_distraction_scenario():
    sessions = [make_session(0, 30, "A"), make_session(30, 200, "B"), make_session(230, 45, "A")]
    report = distraction_report(sessions, short_threshold=timedelta(seconds=90))

    [stats] = report.short_sessions
    assert stats.app == "A"
    assert stats.count == 2
    assert stats.total == timedelta(seconds=75)
    assert stats.average == timedelta(seconds=37.5)
    assert report.time_to_first_distraction == timedelta(0)
    # A and B are each switched to once; the alphabetical tie-break picks A.
    assert report.top_switch_target.app == "A"


def test_distraction_sort_and_first_distraction_delay():
    sessions = [
        make_session(0, 600, "Editor"),
        make_session(600, 80, "Chat"),
        make_session(680, 600, "Editor"),
        make_session(1280, 20, "Mail"),
        make_session(1300, 600, "Editor"),
        make_session(1900, 10, "Chat"),
    ]
    report = distraction_report(sessions, short_threshold=timedelta(seconds=90))

    assert [(s.app, s.count) for s in report.short_sessions] == [("Chat", 2), ("Mail", 1)]
    assert report.time_to_first_distraction == timedelta(seconds=600)


def test_distraction_ties_prefer_shorter_average():
    sessions = [make_session(0, 60, "Slow"), make_session(60, 5, "Quick")]
    report = distraction_report(sessions, short_threshold=timedelta(seconds=90))
    assert [s.app for s in report.short_sessions] == ["Quick", "Slow"]


def test_no_short_sessions_means_unavailable():
    report = distraction_report([make_session(0, 600, "Editor")])
    assert report.time_to_first_distraction is None
    assert report.short_sessions == []


def test_with_live_applies_floor_and_does_not_mutate_input():
    persisted = [make_session(0, 60, "Editor")]
    short_live = make_session(60, 0.5, "Browser")
    live = make_session(60, 30, "Browser")

    assert with_live(persisted, short_live, timedelta(seconds=1)) == persisted
    combined = with_live(persisted, live, timedelta(seconds=1))
    assert combined == persisted + [live]
    assert len(persisted) == 1
    assert with_live(persisted, None) == persisted


def test_load_reports_includes_live_session(store):
    store.insert_session(make_session(0, 600, "Editor"))
    live = make_session(600, 1500, "Browser")

    bundle = load_reports(store, live, AnalyticsSettings(), now=T0)

    assert bundle.general.active_sessions == 2
    assert bundle.focus.longest.app == "Browser"


def test_load_reports_degrades_on_store_failure():
    source = Mock()
    source.query_today.side_effect = StoreError("disk gone")

    bundle = load_reports(source, None, AnalyticsSettings(), now=T0)

    assert bundle.general.active_sessions == 0
    assert bundle.focus.focus_score == 0


def test_report_to_dict_is_json_friendly():
    bundle = build_reports([make_session(0, 90, "Editor")])
    data = report_to_dict(bundle)

    assert data["general"]["active_time"] == 90.0
    assert data["focus"]["longest"]["start_time"] == T0.isoformat()
    assert data["distractions"]["time_to_first_distraction"] == 0.0
