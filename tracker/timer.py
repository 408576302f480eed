"""Background ticking for active focus sessions.

Each scheduled session owns a chain of ``threading.Timer`` objects keyed by
session id. Every tick reports wall-clock progress and completes the session
once it is due. A tick that fires after the session was completed or
cancelled elsewhere does nothing.
"""

from __future__ import annotations

import logging
import threading

from tracker.errors import SessionNotActive, SessionNotFound
from tracker.focus import SessionManager
from tracker.models import FocusSession

logger = logging.getLogger(__name__)


class FocusTimer:
    def __init__(self, manager: SessionManager, tick_seconds: float | None = None):
        self.manager = manager
        self.tick_seconds = tick_seconds or manager.ws.settings.timer_tick_seconds
        self._timers: dict[int, threading.Timer] = {}
        self._lock = threading.Lock()
        manager.timer = self

    def schedule(self, session: FocusSession) -> None:
        with self._lock:
            self._timers[session.id] = self._new_timer(session.id)
            self._timers[session.id].start()
        logger.debug("Scheduled timer for session %d every %.2fs", session.id, self.tick_seconds)

    def resume(self) -> FocusSession | None:
        """Schedule the session left active by a previous process, if any."""
        session = self.manager.get_active()
        if session is not None and not self.is_scheduled(session.id):
            logger.info("Resuming timer for active session %d", session.id)
            self.schedule(session)
        return session

    def cancel(self, session_id: int) -> None:
        with self._lock:
            timer = self._timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()

    def shutdown(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def is_scheduled(self, session_id: int) -> bool:
        with self._lock:
            return session_id in self._timers

    def _new_timer(self, session_id: int) -> threading.Timer:
        timer = threading.Timer(self.tick_seconds, self._run, args=(session_id,))
        timer.daemon = True
        return timer

    def _run(self, session_id: int) -> None:
        if not self.is_scheduled(session_id):
            return
        if self.tick(session_id) is None:
            return
        with self._lock:
            if session_id in self._timers:
                self._timers[session_id] = self._new_timer(session_id)
                self._timers[session_id].start()

    def tick(self, session_id: int) -> FocusSession | None:
        """Advance one session once.

        Returns the still-active session, or None when it completed or is no
        longer active.
        """
        manager = self.manager
        try:
            session = manager.get_session(session_id)
            if not session.is_active:
                self.cancel(session_id)
                return None
            elapsed = min(session.elapsed_seconds(manager.ws.clock.now()), session.target_duration)
            session = manager.record_progress(session_id, elapsed)
            if manager.is_due(session):
                manager.complete(session_id)
                return None
            return session
        except (SessionNotActive, SessionNotFound) as e:
            logger.debug("Ignoring late tick for session %d: %s", session_id, e)
            self.cancel(session_id)
            return None
