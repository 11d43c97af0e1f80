"""SQLite storage for sessions and imported feed events."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from .errors import StoreError
from .models import FeedEvent, Session

DbPath = Union[str, Path]


def open_database(path: DbPath, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    try:
        conn = sqlite3.connect(
            path,
            isolation_level=None,
            check_same_thread=check_same_thread,
            timeout=10.0,
        )
        conn.row_factory = sqlite3.Row
        initialize_schema(conn)
    except sqlite3.Error as exc:
        raise StoreError(f"Cannot open database {path}: {exc}") from exc
    return conn


@contextmanager
def database_connection(
    path: DbPath, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS sessions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            start_ts INTEGER NOT NULL,
            end_ts INTEGER NOT NULL,
            duration_ms INTEGER NOT NULL,
            app TEXT NOT NULL,
            pid INTEGER NOT NULL,
            window_title TEXT NOT NULL,
            exe_path TEXT,
            is_idle INTEGER NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_sessions_start ON sessions(start_ts);
        CREATE INDEX IF NOT EXISTS idx_sessions_app ON sessions(app);

        CREATE TABLE IF NOT EXISTS github_events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            imported_ts INTEGER NOT NULL,
            event_id TEXT NOT NULL,
            event_type TEXT NOT NULL,
            repo_label TEXT,
            created_ts INTEGER NOT NULL,
            payload_json TEXT NOT NULL
        );

        CREATE UNIQUE INDEX IF NOT EXISTS idx_github_event_id
            ON github_events(event_id);
        CREATE INDEX IF NOT EXISTS idx_github_created_ts
            ON github_events(created_ts);
        """
    )


def to_epoch_ms(value: datetime) -> int:
    return int(round(value.timestamp() * 1000))


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000)


def day_bounds(day: datetime) -> tuple[datetime, datetime]:
    """Return local midnight of ``day`` and of the following day."""
    start = day.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def insert_session(
    conn: sqlite3.Connection, session: Session, min_duration: timedelta
) -> bool:
    """Append one session row. Sessions shorter than ``min_duration`` are dropped."""
    if session.duration < min_duration:
        return False
    start_ms = to_epoch_ms(session.start_time)
    end_ms = to_epoch_ms(session.end_time)
    duration_ms = max(0, end_ms - start_ms)
    conn.execute(
        """
        INSERT INTO sessions (
            start_ts,
            end_ts,
            duration_ms,
            app,
            pid,
            window_title,
            exe_path,
            is_idle
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            start_ms,
            end_ms,
            duration_ms,
            session.app,
            session.pid,
            session.window_title or "",
            session.exe_path,
            1 if session.is_idle else 0,
        ),
    )
    return True


def fetch_sessions_between(
    conn: sqlite3.Connection, start: datetime, end: datetime
) -> list[Session]:
    """Sessions starting in ``[start, end)``, ordered by start time."""
    rows = conn.execute(
        """
        SELECT start_ts, end_ts, app, pid, window_title, exe_path, is_idle
        FROM sessions
        WHERE start_ts >= ? AND start_ts < ?
        ORDER BY start_ts, id;
        """,
        (to_epoch_ms(start), to_epoch_ms(end)),
    )
    return [row_to_session(row) for row in rows]


def row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        start_time=from_epoch_ms(row["start_ts"]),
        end_time=from_epoch_ms(row["end_ts"]),
        app=row["app"],
        pid=row["pid"],
        window_title=row["window_title"],
        exe_path=row["exe_path"],
        is_idle=bool(row["is_idle"]),
    )


def insert_feed_events(
    conn: sqlite3.Connection,
    events: Iterable[FeedEvent],
    imported_at: Optional[datetime] = None,
) -> int:
    """Insert events in one transaction; already known event ids are ignored."""
    imported_ms = to_epoch_ms(imported_at or datetime.now())
    inserted = 0
    conn.execute("BEGIN")
    try:
        for event in events:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO github_events (
                    imported_ts,
                    event_id,
                    event_type,
                    repo_label,
                    created_ts,
                    payload_json
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    imported_ms,
                    event.event_id,
                    event.event_type,
                    event.repo,
                    to_epoch_ms(event.created_time),
                    event.payload,
                ),
            )
            inserted += max(cur.rowcount, 0)
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")
    return inserted


def fetch_feed_counts_for_day(
    conn: sqlite3.Connection, day: datetime
) -> list[tuple[str, int]]:
    start, end = day_bounds(day)
    rows = conn.execute(
        """
        SELECT event_type, COUNT(*) AS total
        FROM github_events
        WHERE created_ts >= ? AND created_ts < ?
        GROUP BY event_type
        ORDER BY total DESC, event_type;
        """,
        (to_epoch_ms(start), to_epoch_ms(end)),
    )
    return [(row["event_type"], row["total"]) for row in rows]


def fetch_recent_feed_events(
    conn: sqlite3.Connection, day: datetime, limit: int = 10
) -> list[FeedEvent]:
    start, end = day_bounds(day)
    rows = conn.execute(
        """
        SELECT event_id, event_type, repo_label, created_ts, payload_json
        FROM github_events
        WHERE created_ts >= ? AND created_ts < ?
        ORDER BY created_ts DESC
        LIMIT ?;
        """,
        (to_epoch_ms(start), to_epoch_ms(end), limit),
    )
    return [
        FeedEvent(
            event_id=row["event_id"],
            event_type=row["event_type"],
            repo=row["repo_label"],
            created_time=from_epoch_ms(row["created_ts"]),
            payload=row["payload_json"],
        )
        for row in rows
    ]


class SessionStore:
    """Append-only session log backed by one SQLite connection."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        min_session_write: timedelta = timedelta(milliseconds=1000),
    ) -> None:
        self._conn = conn
        self.min_session_write = min_session_write

    @classmethod
    def open(
        cls,
        path: DbPath,
        min_session_write: timedelta = timedelta(milliseconds=1000),
        *,
        check_same_thread: bool = True,
    ) -> "SessionStore":
        return cls(open_database(path, check_same_thread=check_same_thread), min_session_write)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def insert_session(self, session: Session) -> bool:
        try:
            return insert_session(self._conn, session, self.min_session_write)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to write session for {session.app}: {exc}") from exc

    def query_today(self, now: Optional[datetime] = None) -> list[Session]:
        return self.query_day(now or datetime.now())

    def query_day(self, day: datetime) -> list[Session]:
        start, end = day_bounds(day)
        try:
            return fetch_sessions_between(self._conn, start, end)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to load sessions: {exc}") from exc

    def close(self) -> None:
        self._conn.close()
