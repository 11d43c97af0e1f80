"""Import of a GitHub account's public activity feed.

The importer runs on its own thread with its own database connection and never
talks to the tracker. Re-importing an event that is already stored is a no-op.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import requests
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .config import FeedSettings
from .db import database_connection, insert_feed_events
from .errors import FeedError, StoreError
from .models import FeedEvent

logger = logging.getLogger(__name__)

USER_AGENT = "TimeMachine/1.0"


class RepoRef(BaseModel):
    name: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class GitHubEventModel(BaseModel):
    """The subset of a GitHub event that is stored alongside the raw payload."""

    id: str
    type: str = "unknown"
    repo: Optional[RepoRef] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("id", mode="before")
    @classmethod
    def _require_id(cls, value: Any) -> str:
        text = str(value).strip() if value is not None else ""
        if not text:
            raise ValueError("event id is empty")
        return text

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, value: Any) -> str:
        return value or "unknown"

    @field_validator("created_at", mode="before")
    @classmethod
    def _lenient_created_at(cls, value: Any) -> Any:
        # Unparseable timestamps fall back to the import time.
        if not isinstance(value, str) or not value.strip():
            return None
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None


def parse_events(payload: Any, imported_at: Optional[datetime] = None) -> list[FeedEvent]:
    """Turn a decoded ``/events`` response into feed events, skipping malformed ones."""
    if not isinstance(payload, list):
        return []
    imported_at = imported_at or datetime.now()
    events: list[FeedEvent] = []
    for raw in payload:
        if not isinstance(raw, dict):
            continue
        try:
            model = GitHubEventModel.model_validate(raw)
        except ValidationError:
            logger.debug("Skipping malformed feed event: %r", raw.get("id"))
            continue
        created = imported_at
        if model.created_at is not None:
            created = model.created_at
            if created.tzinfo is not None:
                # Stored as local naive time like every other timestamp.
                created = created.astimezone().replace(tzinfo=None)
        events.append(
            FeedEvent(
                event_id=model.id,
                event_type=model.type,
                repo=model.repo.name if model.repo else None,
                created_time=created,
                payload=json.dumps(raw, separators=(",", ":")),
            )
        )
    return events


class GitHubClient:
    """Thin wrapper over the GitHub REST API."""

    def __init__(
        self,
        token: str,
        *,
        api_url: str = "https://api.github.com",
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._login: Optional[str] = None
        self._http = session or requests.Session()
        self._http.headers.update(
            {
                "User-Agent": USER_AGENT,
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
            }
        )

    def fetch_login(self) -> str:
        if self._login:
            return self._login
        data = self._get_json("/user")
        login = data.get("login") if isinstance(data, dict) else None
        if not login:
            raise FeedError("GitHub /user response has no login")
        self._login = login
        return login

    def fetch_public_events(self, login: str, per_page: int = 30) -> Any:
        return self._get_json(f"/users/{login}/events/public", params={"per_page": per_page})

    def close(self) -> None:
        self._http.close()

    def _get_json(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        try:
            response = self._http.get(f"{self.api_url}{path}", params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as exc:
            raise FeedError(f"GET {path} failed: {exc}") from exc
        except ValueError as exc:
            raise FeedError(f"GET {path} returned invalid JSON: {exc}") from exc


class FeedImporter:
    """Pulls the public event feed into the ``github_events`` table."""

    def __init__(self, db_path: Path, settings: FeedSettings, client: GitHubClient) -> None:
        self.db_path = Path(db_path)
        self.settings = settings
        self._client = client

    @classmethod
    def from_settings(cls, db_path: Path, settings: FeedSettings) -> Optional["FeedImporter"]:
        """Return an importer, or ``None`` when no token is configured."""
        if not settings.enabled:
            logger.info("GitHub feed disabled (set TIMEMACHINE_GITHUB_TOKEN).")
            return None
        client = GitHubClient(
            settings.token or "",
            api_url=settings.api_url,
            timeout=settings.request_timeout,
        )
        return cls(db_path, settings, client)

    def import_once(self) -> int:
        """Fetch one page of events and store the new ones. Failures yield 0."""
        try:
            login = self._client.fetch_login()
            payload = self._client.fetch_public_events(login, self.settings.page_size)
        except FeedError as exc:
            logger.warning("GitHub pull failed: %s", exc)
            return 0

        events = parse_events(payload)
        if not events:
            return 0
        try:
            with database_connection(self.db_path) as conn:
                inserted = insert_feed_events(conn, events)
        except (StoreError, sqlite3.Error) as exc:
            logger.warning("Failed to store GitHub events: %s", exc)
            return 0
        if inserted:
            logger.info("GitHub: +%d new events saved.", inserted)
        return inserted

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        interval = self.settings.poll_interval.total_seconds()
        logger.info("Starting GitHub feed importer (every %.0fs).", interval)
        try:
            while not stop_event.is_set():
                self.import_once()
                stop_event.wait(interval)
        finally:
            self._client.close()
            logger.info("GitHub feed importer stopped.")


class FeedRunner:
    """Manage the feed importer in a background thread."""

    def __init__(self, importer: FeedImporter) -> None:
        self._importer = importer
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._importer.run_until_stopped,
                args=(stop_event,),
                name="feed-importer",
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()

    def stop(self) -> None:
        with self._lock:
            thread, stop_event = self._thread, self._stop_event
            self._thread = None
            self._stop_event = None
        if stop_event is not None:
            stop_event.set()
        if thread is not None:
            thread.join(timeout=10)

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())
