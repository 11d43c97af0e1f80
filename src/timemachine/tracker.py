"""Debounced session tracking.

Raw samples arrive several times per second and the foreground window flickers
(alt-tab, transient popups). A change of application only becomes a new session
once it has been observed continuously for the grace window; the previous
session then ends where the candidate was first seen, so recorded sessions
partition time without gaps or overlaps.

The transition logic lives in :func:`advance`, a pure function over an
immutable :class:`TrackerState`. :class:`SessionTracker` owns the state and
hands every closed session to a sink.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, NamedTuple, Optional

from .models import OpenSession, PendingSwitch, Sample, Session

logger = logging.getLogger(__name__)

SessionSink = Callable[[Session], None]


@dataclass(frozen=True, slots=True)
class TrackerState:
    current: Optional[OpenSession] = None
    pending: Optional[PendingSwitch] = None


class Transition(NamedTuple):
    state: TrackerState
    closed: Optional[Session] = None
    opened: Optional[OpenSession] = None


def advance(state: TrackerState, sample: Sample, grace: timedelta) -> Transition:
    """Apply one sample to ``state``."""
    current = state.current
    if current is None:
        opened = OpenSession.from_sample(sample)
        return Transition(TrackerState(opened, None), opened=opened)

    key = sample.key
    if key == current.key:
        # Focus came back before the grace window elapsed: the switch is cancelled.
        return Transition(TrackerState(current.with_title(sample.title), None))

    pending = state.pending
    if pending is None or pending.key != key:
        pending = PendingSwitch(first_seen=sample.timestamp, candidate=sample)

    if sample.timestamp - pending.first_seen < grace:
        return Transition(TrackerState(current, pending))

    closed = current.close(pending.first_seen)
    opened = OpenSession.from_sample(pending.candidate, start_time=pending.first_seen)
    return Transition(TrackerState(opened, None), closed=closed, opened=opened)


def shutdown(state: TrackerState, now: datetime) -> Optional[Session]:
    """Return the session to persist when tracking stops. Pending switches are dropped."""
    if state.current is None:
        return None
    return state.current.close(now)


def live_snapshot(
    state: TrackerState, now: datetime, min_duration: timedelta = timedelta(0)
) -> Optional[Session]:
    """Return the open session truncated to ``now``, or ``None`` if too short."""
    if state.current is None:
        return None
    snapshot = state.current.close(now)
    if snapshot.duration < min_duration:
        return None
    return snapshot


class SessionTracker:
    """Owns the tracking state and forwards closed sessions to ``sink``."""

    def __init__(self, sink: SessionSink, grace: timedelta = timedelta(seconds=5)) -> None:
        self._sink = sink
        self.grace = grace
        self._state = TrackerState()

    @property
    def state(self) -> TrackerState:
        return self._state

    @property
    def current(self) -> Optional[OpenSession]:
        return self._state.current

    @property
    def pending(self) -> Optional[PendingSwitch]:
        return self._state.pending

    def observe(self, sample: Sample) -> Optional[Session]:
        transition = advance(self._state, sample, self.grace)
        self._state = transition.state
        if transition.opened is not None:
            _log_start(transition.opened)
        if transition.closed is not None:
            self._sink(transition.closed)
        return transition.closed

    def flush(self, now: Optional[datetime] = None) -> Optional[Session]:
        """Close the open session at ``now`` and reset to the initial state."""
        closed = shutdown(self._state, now or datetime.now())
        self._state = TrackerState()
        if closed is not None:
            self._sink(closed)
        return closed

    def live_session(
        self, now: Optional[datetime] = None, min_duration: timedelta = timedelta(0)
    ) -> Optional[Session]:
        # A single attribute read, so other threads see a consistent state.
        state = self._state
        return live_snapshot(state, now or datetime.now(), min_duration)


def _log_start(opened: OpenSession) -> None:
    logger.info(
        "START %s %s | %s",
        "[IDLE]" if opened.is_idle else "      ",
        opened.app,
        opened.title,
    )
