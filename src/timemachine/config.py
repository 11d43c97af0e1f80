"""Configuration models and helpers for the TimeMachine agent."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

TOKEN_ENV_VAR = "TIMEMACHINE_GITHUB_TOKEN"


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration for the polling loop and session tracker."""

    poll_interval: timedelta = timedelta(milliseconds=250)
    idle_threshold: timedelta = timedelta(seconds=60)
    grace_switch: timedelta = timedelta(milliseconds=5000)
    min_session_write: timedelta = timedelta(milliseconds=1000)

    @classmethod
    def from_intervals(
        cls,
        poll_ms: int = 250,
        idle_seconds: int = 60,
        grace_ms: int = 5000,
        min_write_ms: int = 1000,
    ) -> "TrackerSettings":
        return cls(
            poll_interval=timedelta(milliseconds=poll_ms),
            idle_threshold=timedelta(seconds=idle_seconds),
            grace_switch=timedelta(milliseconds=grace_ms),
            min_session_write=timedelta(milliseconds=min_write_ms),
        )


@dataclass(slots=True)
class AnalyticsSettings:
    """Thresholds used by the focus, pattern and distraction reports."""

    deep_threshold: timedelta = timedelta(minutes=20)
    distraction_short: timedelta = timedelta(seconds=90)
    switch_penalty: float = 0.5
    top_apps: int = 10
    min_session_write: timedelta = timedelta(milliseconds=1000)

    @classmethod
    def from_intervals(
        cls,
        deep_minutes: float = 20,
        short_seconds: float = 90,
        switch_penalty: float = 0.5,
        min_write_ms: int = 1000,
    ) -> "AnalyticsSettings":
        return cls(
            deep_threshold=timedelta(minutes=deep_minutes),
            distraction_short=timedelta(seconds=short_seconds),
            switch_penalty=switch_penalty,
            min_session_write=timedelta(milliseconds=min_write_ms),
        )


@dataclass(slots=True)
class FeedSettings:
    """Settings for the GitHub public activity importer."""

    token: Optional[str] = None
    poll_interval: timedelta = timedelta(seconds=60)
    page_size: int = 30
    api_url: str = "https://api.github.com"
    request_timeout: float = 15.0

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    @classmethod
    def from_env(
        cls,
        poll_seconds: float = 60.0,
        page_size: int = 30,
    ) -> "FeedSettings":
        raw = os.environ.get(TOKEN_ENV_VAR, "")
        token = raw.strip() or None
        return cls(
            token=token,
            poll_interval=timedelta(seconds=poll_seconds),
            page_size=page_size,
        )
