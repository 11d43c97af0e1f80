"""The sequential polling loop that drives the session tracker."""

from __future__ import annotations

import logging
import queue
import threading
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .config import TrackerSettings
from .db import SessionStore
from .errors import StoreError
from .models import Session
from .sampling import Sampler, create_default_sampler
from .tracker import SessionTracker

logger = logging.getLogger(__name__)

ReportHandler = Callable[[str, SessionStore, Optional[Session]], None]


class ActivityCollector:
    """Samples the foreground application at a fixed interval and records sessions.

    One thread owns the tracker: it samples, advances the state machine, writes
    closed sessions, services at most one report request, then sleeps. Closed
    sessions that fail to write stay queued and are retried on the next tick.
    """

    def __init__(
        self,
        db_path: Path,
        settings: TrackerSettings,
        *,
        sampler: Optional[Sampler] = None,
        report_handler: Optional[ReportHandler] = None,
        store: Optional[SessionStore] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.db_path = Path(db_path)
        self.settings = settings
        self._sampler = sampler
        self._report_handler = report_handler
        self._store = store
        self._owns_store = store is None
        self._clock = clock
        self._unsaved: deque[Session] = deque()
        self._report_requests: queue.Queue[str] = queue.Queue()
        self.tracker = SessionTracker(self._unsaved.append, grace=settings.grace_switch)

    def run_forever(self) -> None:
        stop_event = threading.Event()
        try:
            self._run_loop(stop_event)
        except KeyboardInterrupt:
            logger.info("Collector interrupted; flushing the open session.")
        finally:
            self._shutdown()

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Run the collector until the provided event is set."""
        try:
            self._run_loop(stop_event)
        finally:
            self._shutdown()

    def request_report(self, kind: str) -> None:
        """Queue a report; safe to call from any thread."""
        self._report_requests.put(kind)

    def live_session(self, now: Optional[datetime] = None) -> Optional[Session]:
        return self.tracker.live_session(now or self._clock(), self.settings.min_session_write)

    def sample_once(self) -> None:
        try:
            sample = self._require_sampler().sample(self._clock())
        except Exception:
            logger.warning("Sampling failed; skipping this tick.", exc_info=True)
            return
        self.tracker.observe(sample)

    def write_closed_sessions(self) -> None:
        store = self._require_store()
        while self._unsaved:
            session = self._unsaved[0]
            try:
                written = store.insert_session(session)
            except StoreError:
                logger.exception(
                    "Failed to persist %s session; %d session(s) waiting for retry.",
                    session.app,
                    len(self._unsaved),
                )
                return
            self._unsaved.popleft()
            if written:
                logger.debug(
                    "Saved %s session of %.1fs.", session.app, session.duration_seconds
                )
            else:
                logger.debug("Discarded %s session below the write floor.", session.app)

    def service_report_request(self) -> None:
        try:
            kind = self._report_requests.get_nowait()
        except queue.Empty:
            return
        if self._report_handler is None:
            return
        try:
            self._report_handler(kind, self._require_store(), self.live_session())
        except Exception:
            logger.exception("Failed to produce the %s report.", kind)

    def _require_sampler(self) -> Sampler:
        if self._sampler is None:
            self._sampler = create_default_sampler(self.settings.idle_threshold)
        return self._sampler

    def _require_store(self) -> SessionStore:
        if self._store is None:
            self._store = SessionStore.open(self.db_path, self.settings.min_session_write)
            self._owns_store = True
        return self._store

    def _run_loop(self, stop_event: threading.Event) -> None:
        logger.info("Starting collector; writing to %s", self.db_path)
        logger.info(
            "Sessions keyed by app+pid+idle; grace window %dms.",
            self.settings.grace_switch.total_seconds() * 1000,
        )
        self._require_sampler()
        self._require_store()
        interval = self.settings.poll_interval.total_seconds()
        while not stop_event.is_set():
            self.sample_once()
            self.write_closed_sessions()
            self.service_report_request()
            # Sleep in an interruptible manner.
            stop_event.wait(interval)

    def _shutdown(self) -> None:
        self.tracker.flush(self._clock())
        try:
            if self._store is not None:
                self.write_closed_sessions()
        finally:
            if self._store is not None and self._owns_store:
                self._store.close()
                self._store = None
            logger.info("Collector stopped.")
