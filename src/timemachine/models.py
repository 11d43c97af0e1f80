"""Domain models for sampled activity and recorded sessions."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import NamedTuple, Optional

IDLE_APP = "Idle"


class SessionKey(NamedTuple):
    """Identity of a session. The window title is deliberately not part of it."""

    app: str
    pid: int
    is_idle: bool


def session_key(app: str, pid: int, is_idle: bool) -> SessionKey:
    if is_idle:
        return SessionKey(IDLE_APP, 0, True)
    return SessionKey(app, pid, False)


@dataclass(frozen=True, slots=True)
class Sample:
    """One observation of the foreground application, taken once per tick."""

    timestamp: datetime
    is_idle: bool
    app: str
    pid: int
    title: str = ""
    exe_path: Optional[str] = None

    @classmethod
    def observe(
        cls,
        timestamp: datetime,
        *,
        is_idle: bool,
        app: str = "unknown",
        pid: int = 0,
        title: str = "",
        exe_path: Optional[str] = None,
    ) -> "Sample":
        """Build a sample, collapsing every field to the idle sentinel when idle."""
        if is_idle:
            return cls(timestamp, True, IDLE_APP, 0, "", None)
        return cls(timestamp, False, app, pid, title.strip(), exe_path)

    @property
    def key(self) -> SessionKey:
        return session_key(self.app, self.pid, self.is_idle)


@dataclass(frozen=True, slots=True)
class Session:
    """A closed, contiguous block of time spent in one application (or idle)."""

    start_time: datetime
    end_time: datetime
    app: str
    pid: int = 0
    window_title: str = ""
    exe_path: Optional[str] = None
    is_idle: bool = False

    @property
    def duration(self) -> timedelta:
        return max(self.end_time - self.start_time, timedelta(0))

    @property
    def duration_seconds(self) -> float:
        return self.duration.total_seconds()


@dataclass(frozen=True, slots=True)
class OpenSession:
    """The session currently in progress. Replaced, never mutated in place."""

    start_time: datetime
    app: str
    pid: int
    title: str
    exe_path: Optional[str]
    is_idle: bool

    @classmethod
    def from_sample(cls, sample: Sample, start_time: Optional[datetime] = None) -> "OpenSession":
        return cls(
            start_time=start_time if start_time is not None else sample.timestamp,
            app=sample.app,
            pid=sample.pid,
            title=sample.title,
            exe_path=sample.exe_path,
            is_idle=sample.is_idle,
        )

    @property
    def key(self) -> SessionKey:
        return session_key(self.app, self.pid, self.is_idle)

    def with_title(self, title: str) -> "OpenSession":
        if title == self.title:
            return self
        return replace(self, title=title)

    def close(self, end_time: datetime) -> Session:
        return Session(
            start_time=self.start_time,
            end_time=end_time,
            app=IDLE_APP if self.is_idle else self.app,
            pid=0 if self.is_idle else self.pid,
            window_title=self.title or "",
            exe_path=self.exe_path,
            is_idle=self.is_idle,
        )


@dataclass(frozen=True, slots=True)
class PendingSwitch:
    """A candidate session waiting for the grace window to elapse."""

    first_seen: datetime
    candidate: Sample

    @property
    def key(self) -> SessionKey:
        return self.candidate.key


@dataclass(frozen=True, slots=True)
class FeedEvent:
    """One event imported from the remote activity feed."""

    event_id: str
    event_type: str
    repo: Optional[str]
    created_time: datetime
    payload: str
