"""Behavioral analytics over a day's session log.

Every report is a pure function of a sequence of sessions. The in-progress
session can be appended with :func:`with_live`; nothing here touches the
tracker. Empty input never raises: reports fall back to zero, empty or
``None`` (unavailable) values.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol, Sequence

from .config import AnalyticsSettings
from .errors import StoreError
from .models import Session

logger = logging.getLogger(__name__)

ZERO = timedelta(0)


class SessionSource(Protocol):
    def query_today(self, now: Optional[datetime] = None) -> list[Session]:
        ...


class EmptySource:
    """Stands in for the store when the database cannot be opened."""

    def query_today(self, now: Optional[datetime] = None) -> list[Session]:
        return []


@dataclass(frozen=True, slots=True)
class AppTotal:
    app: str
    total: timedelta


@dataclass(frozen=True, slots=True)
class SwitchTarget:
    app: str
    count: int


@dataclass(frozen=True, slots=True)
class GeneralReport:
    active_time: timedelta = ZERO
    idle_time: timedelta = ZERO
    active_sessions: int = 0
    idle_sessions: int = 0
    average_session: timedelta = ZERO
    top_apps: list[AppTotal] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class FocusReport:
    deep_threshold: timedelta
    deep_sessions: int = 0
    deep_time: timedelta = ZERO
    total_active: timedelta = ZERO
    switches: int = 0
    ratio: float = 0.0
    focus_score: float = 0.0
    longest: Optional[Session] = None


@dataclass(frozen=True, slots=True)
class PatternReport:
    total_active: timedelta = ZERO
    switches: int = 0
    average_session: timedelta = ZERO
    peak_hour: Optional[int] = None
    peak_hour_time: timedelta = ZERO
    top_switch_target: Optional[SwitchTarget] = None


@dataclass(frozen=True, slots=True)
class ShortSessionStats:
    app: str
    count: int
    total: timedelta
    average: timedelta


@dataclass(frozen=True, slots=True)
class DistractionReport:
    short_threshold: timedelta
    short_sessions: list[ShortSessionStats] = field(default_factory=list)
    top_switch_target: Optional[SwitchTarget] = None
    time_to_first_distraction: Optional[timedelta] = None


@dataclass(frozen=True, slots=True)
class ReportBundle:
    general: GeneralReport
    focus: FocusReport
    pattern: PatternReport
    distractions: DistractionReport


def with_live(
    sessions: Sequence[Session],
    live: Optional[Session],
    min_duration: timedelta = ZERO,
) -> list[Session]:
    """Return ``sessions`` plus the live session when it clears the discard floor."""
    combined = list(sessions)
    if live is not None and live.duration >= min_duration:
        combined.append(live)
    return combined


def active_sessions(sessions: Sequence[Session]) -> list[Session]:
    """Non-idle sessions ordered by start time."""
    return sorted((s for s in sessions if not s.is_idle), key=lambda s: s.start_time)


def count_switches(active: Sequence[Session]) -> int:
    return sum(
        1
        for previous, following in zip(active, active[1:])
        if previous.app.casefold() != following.app.casefold()
    )


def top_switch_target(active: Sequence[Session]) -> Optional[SwitchTarget]:
    """Most frequent destination of an app switch.

    Names are compared case-insensitively and the first spelling seen is reported.
    Equal counts are resolved alphabetically so the result never depends on
    grouping order.
    """
    counts: Counter[str] = Counter()
    spelling: dict[str, str] = {}
    for previous, following in zip(active, active[1:]):
        destination = following.app.casefold()
        if previous.app.casefold() == destination:
            continue
        counts[destination] += 1
        spelling.setdefault(destination, following.app)
    if not counts:
        return None
    best = min(counts, key=lambda name: (-counts[name], name))
    return SwitchTarget(app=spelling[best], count=counts[best])


def _total(sessions: Sequence[Session]) -> timedelta:
    return sum((s.duration for s in sessions), ZERO)


def _average(sessions: Sequence[Session]) -> timedelta:
    if not sessions:
        return ZERO
    return _total(sessions) / len(sessions)


def general_report(sessions: Sequence[Session], top_n: int = 10) -> GeneralReport:
    active = [s for s in sessions if not s.is_idle]
    idle = [s for s in sessions if s.is_idle]

    per_app: dict[str, timedelta] = {}
    for session in active:
        per_app[session.app] = per_app.get(session.app, ZERO) + session.duration
    ranked = sorted(per_app.items(), key=lambda item: item[1], reverse=True)

    return GeneralReport(
        active_time=_total(active),
        idle_time=_total(idle),
        active_sessions=len(active),
        idle_sessions=len(idle),
        average_session=_average(active),
        top_apps=[AppTotal(app, total) for app, total in ranked[:top_n]],
    )


def focus_report(
    sessions: Sequence[Session],
    deep_threshold: timedelta = timedelta(minutes=20),
    switch_penalty: float = 0.5,
) -> FocusReport:
    active = active_sessions(sessions)
    total_active = _total(active)
    deep = [s for s in active if s.duration >= deep_threshold]
    deep_time = _total(deep)
    switches = count_switches(active)

    ratio = deep_time / total_active if total_active > ZERO else 0.0
    score = ratio * 100.0 - switches * switch_penalty if total_active > ZERO else 0.0
    score = min(max(score, 0.0), 100.0)

    longest = max(active, key=lambda s: s.duration, default=None)
    return FocusReport(
        deep_threshold=deep_threshold,
        deep_sessions=len(deep),
        deep_time=deep_time,
        total_active=total_active,
        switches=switches,
        ratio=ratio,
        focus_score=score,
        longest=longest,
    )


def pattern_report(sessions: Sequence[Session]) -> PatternReport:
    active = active_sessions(sessions)
    if not active:
        return PatternReport()

    by_hour: dict[int, timedelta] = {}
    for session in active:
        hour = session.start_time.hour
        by_hour[hour] = by_hour.get(hour, ZERO) + session.duration
    peak_hour, peak_time = sorted(by_hour.items(), key=lambda item: item[1], reverse=True)[0]

    return PatternReport(
        total_active=_total(active),
        switches=count_switches(active),
        average_session=_average(active),
        peak_hour=peak_hour,
        peak_hour_time=peak_time,
        top_switch_target=top_switch_target(active),
    )


def distraction_report(
    sessions: Sequence[Session], short_threshold: timedelta = timedelta(seconds=90)
) -> DistractionReport:
    active = active_sessions(sessions)
    if not active:
        return DistractionReport(short_threshold=short_threshold)

    short = [s for s in active if s.duration <= short_threshold]
    grouped: dict[str, list[Session]] = {}
    for session in short:
        grouped.setdefault(session.app, []).append(session)
    stats = [
        ShortSessionStats(
            app=app,
            count=len(items),
            total=_total(items),
            average=_average(items),
        )
        for app, items in grouped.items()
    ]
    stats.sort(key=lambda item: (-item.count, item.average))

    first_distraction: Optional[timedelta] = None
    if short:
        first_distraction = max(short[0].start_time - active[0].start_time, ZERO)

    return DistractionReport(
        short_threshold=short_threshold,
        short_sessions=stats[:10],
        top_switch_target=top_switch_target(active),
        time_to_first_distraction=first_distraction,
    )


def build_reports(
    sessions: Sequence[Session], settings: Optional[AnalyticsSettings] = None
) -> ReportBundle:
    settings = settings or AnalyticsSettings()
    return ReportBundle(
        general=general_report(sessions, top_n=settings.top_apps),
        focus=focus_report(sessions, settings.deep_threshold, settings.switch_penalty),
        pattern=pattern_report(sessions),
        distractions=distraction_report(sessions, settings.distraction_short),
    )


def load_reports(
    source: SessionSource,
    live: Optional[Session] = None,
    settings: Optional[AnalyticsSettings] = None,
    now: Optional[datetime] = None,
) -> ReportBundle:
    """Build today's reports, falling back to empty ones if the store fails."""
    settings = settings or AnalyticsSettings()
    try:
        persisted = source.query_today(now)
    except StoreError:
        logger.exception("Failed to load today's sessions; reporting on an empty log.")
        persisted = []
    sessions = with_live(persisted, live, settings.min_session_write)
    return build_reports(sessions, settings)


def report_to_dict(report: Any) -> dict[str, Any]:
    """Convert a report dataclass into JSON-friendly primitives."""
    return _jsonable(asdict(report))


def _jsonable(value: Any) -> Any:
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value
