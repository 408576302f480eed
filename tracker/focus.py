"""Focus (pomodoro) session management.

A session moves active -> completed or active -> cancelled, once. At most one
session is active system-wide: the check runs inside an immediate
transaction and a partial unique index backs it up, so two racing starts can
never both succeed. Completing a habit-bound session writes its pomodoro
event and statistics in the same transaction as the status change.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from tracker.clock import day_of, iso
from tracker.config import MAX_TARGET_MINUTES, MIN_TARGET_MINUTES
from tracker.context import Workspace
from tracker.errors import (
    InvalidDuration,
    SessionAlreadyActive,
    SessionNotActive,
    SessionNotFound,
)
from tracker.events import insert_pomodoro_event
from tracker.habits import fetch_habit, require_habit
from tracker.hooks import run_hooks
from tracker.models import ACTIVE, CANCELLED, COMPLETED, FocusSession, StatsDelta
from tracker.stats import upsert_stats

if TYPE_CHECKING:
    from tracker.timer import FocusTimer

logger = logging.getLogger(__name__)

_SESSION_COLS = "id, habit_id, started_at, ended_at, duration, target_duration, status, created_at"


def _fetch_session(conn: sqlite3.Connection, session_id: int) -> FocusSession | None:
    row = conn.execute(
        f"SELECT {_SESSION_COLS} FROM focus_sessions WHERE id = ?",  # noqa: S608
        (session_id,),
    ).fetchone()
    return FocusSession.from_row(row) if row else None


def _require_session(conn: sqlite3.Connection, session_id: int) -> FocusSession:
    session = _fetch_session(conn, session_id)
    if session is None:
        raise SessionNotFound(session_id)
    return session


def _require_active(conn: sqlite3.Connection, session_id: int) -> FocusSession:
    session = _require_session(conn, session_id)
    if not session.is_active:
        raise SessionNotActive(session_id, session.status)
    return session


def validate_target_minutes(minutes: Any) -> int:
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise InvalidDuration(f"Target minutes must be an integer, got {minutes!r}")
    if not MIN_TARGET_MINUTES <= minutes <= MAX_TARGET_MINUTES:
        raise InvalidDuration(
            f"Target minutes must be between {MIN_TARGET_MINUTES} and {MAX_TARGET_MINUTES}, got {minutes}"
        )
    return minutes


class SessionManager:
    """Creates, advances and closes focus sessions for one workspace.

    Progress reports are coalesced: a value is written only when it moved at
    least ``progress_persist_seconds`` from the last written value or reached
    the target. Smaller moves are kept in memory and overlaid on reads.
    """

    def __init__(self, ws: Workspace, timer: FocusTimer | None = None):
        self.ws = ws
        self.timer = timer
        self._lock = threading.Lock()
        self._pending: dict[int, int] = {}
        self._persisted: dict[int, int] = {}

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self, habit_id: int | None = None, target_minutes: int | None = None) -> FocusSession:
        if target_minutes is None:
            target_minutes = self.ws.settings.default_target_minutes
        minutes = validate_target_minutes(target_minutes)

        now = iso(self.ws.clock.now())
        try:
            with self.ws.db() as conn:
                if habit_id is not None:
                    require_habit(conn, habit_id)
                active = conn.execute(
                    "SELECT id FROM focus_sessions WHERE status = ?", (ACTIVE,)
                ).fetchone()
                if active is not None:
                    raise SessionAlreadyActive(active["id"])
                cursor = conn.execute(
                    "INSERT INTO focus_sessions (habit_id, started_at, duration, target_duration, status, created_at) "
                    "VALUES (?, ?, 0, ?, ?, ?)",
                    (habit_id, now, minutes * 60, ACTIVE, now),
                )
                session = _require_session(conn, cursor.lastrowid)
        except sqlite3.IntegrityError as e:
            raise SessionAlreadyActive() from e

        logger.info("Started focus session %d (habit=%s, target=%ds)", session.id, habit_id, session.target_duration)
        if self.timer is not None:
            self.timer.schedule(session)
        run_hooks("on_focus_start", session.to_dict(), self.ws.root)
        return session

    def record_progress(self, session_id: int, elapsed_seconds: int) -> FocusSession:
        """Overwrite the session's elapsed counter. No events or statistics."""
        if elapsed_seconds < 0:
            raise InvalidDuration(f"Elapsed seconds must be >= 0, got {elapsed_seconds}")
        elapsed = int(elapsed_seconds)
        step = self.ws.settings.progress_persist_seconds

        with self.ws.db() as conn:
            session = _require_active(conn, session_id)
            with self._lock:
                last = self._persisted.get(session_id, session.duration)
            persist = abs(elapsed - last) >= step or elapsed >= session.target_duration
            if persist:
                conn.execute(
                    "UPDATE focus_sessions SET duration = ? WHERE id = ? AND status = ?",
                    (elapsed, session_id, ACTIVE),
                )

        with self._lock:
            if persist:
                self._persisted[session_id] = elapsed
                self._pending.pop(session_id, None)
            else:
                self._pending[session_id] = elapsed
        if not persist:
            logger.debug("Session %d progress %ds held in memory", session_id, elapsed)
        session.duration = elapsed
        return session

    def complete(self, session_id: int) -> FocusSession:
        now = self.ws.clock.now()
        stamp = iso(now)
        with self.ws.db() as conn:
            session = _require_active(conn, session_id)
            duration = session.elapsed_seconds(now)
            conn.execute(
                "UPDATE focus_sessions SET status = ?, ended_at = ?, duration = ? WHERE id = ?",
                (COMPLETED, stamp, duration, session_id),
            )
            if session.habit_id is not None:
                habit = fetch_habit(conn, session.habit_id)
                day = day_of(now, self.ws.clock.tz)
                title = f"Pomodoro: {habit.name}" if habit else ""
                insert_pomodoro_event(conn, session.habit_id, day, duration, stamp, title=title)
                upsert_stats(conn, session.habit_id, day, StatsDelta.pomodoro(duration), stamp)
            session = _require_session(conn, session_id)

        self._finish(session_id)
        logger.info("Completed focus session %d after %ds", session_id, session.duration)
        run_hooks("on_focus_complete", session.to_dict(), self.ws.root)
        return session

    def cancel(self, session_id: int) -> FocusSession:
        now = self.ws.clock.now()
        with self.ws.db() as conn:
            _require_active(conn, session_id)
            conn.execute(
                "UPDATE focus_sessions SET status = ?, ended_at = ? WHERE id = ?",
                (CANCELLED, iso(now), session_id),
            )
            session = _require_session(conn, session_id)

        with self._lock:
            pending = self._pending.get(session_id)
        if pending is not None:
            session.duration = pending
        self._finish(session_id)
        logger.info("Cancelled focus session %d", session_id)
        run_hooks("on_focus_cancel", session.to_dict(), self.ws.root)
        return session

    def _finish(self, session_id: int) -> None:
        with self._lock:
            self._pending.pop(session_id, None)
            self._persisted.pop(session_id, None)
        if self.timer is not None:
            self.timer.cancel(session_id)

    # ── Queries ───────────────────────────────────────────────

    def _overlay(self, session: FocusSession) -> FocusSession:
        if session.is_active:
            with self._lock:
                pending = self._pending.get(session.id)
            if pending is not None:
                session.duration = pending
        return session

    def get_session(self, session_id: int) -> FocusSession:
        with self.ws.db(readonly=True) as conn:
            session = _require_session(conn, session_id)
        return self._overlay(session)

    def get_active(self) -> FocusSession | None:
        with self.ws.db(readonly=True) as conn:
            row = conn.execute(
                f"SELECT {_SESSION_COLS} FROM focus_sessions WHERE status = ?",  # noqa: S608
                (ACTIVE,),
            ).fetchone()
        return self._overlay(FocusSession.from_row(row)) if row else None

    def list_sessions(
        self,
        day: date | None = None,
        habit_id: int | None = None,
        status: str | None = None,
    ) -> list[FocusSession]:
        """Sessions, newest first, optionally filtered by start day, habit or status."""
        sql = f"SELECT {_SESSION_COLS} FROM focus_sessions WHERE 1 = 1"  # noqa: S608
        params: list[Any] = []
        if day is not None:
            sql += " AND substr(started_at, 1, 10) = ?"
            params.append(day.isoformat())
        if habit_id is not None:
            sql += " AND habit_id = ?"
            params.append(habit_id)
        if status is not None:
            sql += " AND status = ?"
            params.append(status)
        sql += " ORDER BY started_at DESC, id DESC"
        with self.ws.db(readonly=True) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._overlay(FocusSession.from_row(r)) for r in rows]

    def is_due(self, session: FocusSession, now: datetime | None = None) -> bool:
        """True once the recorded or wall-clock elapsed time reaches the target."""
        if not session.is_active:
            return False
        if session.duration >= session.target_duration:
            return True
        now = now or self.ws.clock.now()
        return session.elapsed_seconds(now) >= session.target_duration
