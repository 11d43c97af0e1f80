import threading
from datetime import datetime, timedelta

import pytest

from timemachine.db import SessionStore, open_database
from timemachine.models import Sample, Session
from timemachine.tracker import SessionTracker

T0 = datetime(2026, 3, 2, 9, 0, 0)


def at(ms):
    """Timestamp ``ms`` milliseconds after the start of the test day."""
    return T0 + timedelta(milliseconds=ms)


def app_sample(ms, app, pid, title=""):
    return Sample.observe(at(ms), is_idle=False, app=app, pid=pid, title=title)


def idle_sample(ms):
    return Sample.observe(at(ms), is_idle=True)


def make_session(start_s, duration_s, app, is_idle=False, pid=1):
    start = T0 + timedelta(seconds=start_s)
    return Session(
        start_time=start,
        end_time=start + timedelta(seconds=duration_s),
        app="Idle" if is_idle else app,
        pid=0 if is_idle else pid,
        is_idle=is_idle,
    )


class ScriptedSampler:
    """Replays prepared samples; sets ``stop_event`` once they run out."""

    def __init__(self, samples, stop_event=None):
        self._samples = list(samples)
        self._index = 0
        self.stop_event = stop_event or threading.Event()

    def idle_seconds(self):
        return 0

    def sample(self, now=None):
        item = self._samples[self._index]
        self._index += 1
        if self._index >= len(self._samples):
            self.stop_event.set()
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def last_timestamp(self):
        for item in reversed(self._samples[: self._index]):
            if isinstance(item, Sample):
                return item.timestamp
        return T0


@pytest.fixture
def closed_sessions():
    return []


@pytest.fixture
def tracker(closed_sessions):
    return SessionTracker(closed_sessions.append, grace=timedelta(milliseconds=5000))


@pytest.fixture
def store():
    """In-memory session store with the default one second write floor."""
    store = SessionStore(open_database(":memory:"), timedelta(milliseconds=1000))
    yield store
    store.close()


@pytest.fixture
def db_file(tmp_path):
    path = tmp_path / "timemachine.sqlite3"
    open_database(path).close()
    return path


@pytest.fixture
def corrupt_db(tmp_path):
    """A file at the database path that is not SQLite."""
    path = tmp_path / "bad.sqlite3"
    path.write_bytes(b"this is not a database\n" * 64)
    return path
