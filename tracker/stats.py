"""Per-habit, per-day statistics and the calendar read views.

Counters only ever move through a single ``INSERT … ON CONFLICT DO UPDATE``
increment, so concurrent writers to the same (habit, day) never lose updates.
Completion counters are flip-aware: a delta is applied only when a new habit
event's verdict differs from the previous event for the same (habit, day), or
when there was none yet. completion_states caches the latest verdict.
"""

from __future__ import annotations

import calendar
import logging
import sqlite3
from collections import defaultdict
from datetime import date
from typing import Any

from tracker.clock import iso
from tracker.context import Workspace
from tracker.errors import InvalidDelta, InvalidDuration
from tracker.events import (
    fetch_events,
    insert_habit_event,
    insert_pomodoro_event,
    latest_habit_event,
    latest_habit_events,
)
from tracker.habits import fetch_habits, load_day_state, require_habit
from tracker.models import (
    COMPLETED,
    DAY_COMPLETE,
    DAY_INCOMPLETE,
    DAY_NONE,
    HABIT_EVENT,
    POMODORO_EVENT,
    CalendarEvent,
    FocusSession,
    HabitDayStatus,
    HabitStatistics,
    RangeResult,
    StatsDelta,
)

logger = logging.getLogger(__name__)

_STATS_COLS = (
    "id, habit_id, day, total_pomodoros, total_duration, completed_habits, failed_habits, created_at"
)
_ALLOWED_DELTAS = "{completedHabits: 1}, {failedHabits: 1} or {totalPomodoros: 1, totalDuration: d}"


# ── Row access ────────────────────────────────────────────────


def upsert_stats(
    conn: sqlite3.Connection,
    habit_id: int,
    day: date,
    delta: StatsDelta,
    created_at: str,
) -> None:
    """Create the (habit, day) row as zeros plus delta, or add delta in place."""
    conn.execute(
        """
        INSERT INTO habit_statistics
            (habit_id, day, total_pomodoros, total_duration, completed_habits, failed_habits, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(habit_id, day) DO UPDATE SET
            total_pomodoros = total_pomodoros + excluded.total_pomodoros,
            total_duration = total_duration + excluded.total_duration,
            completed_habits = completed_habits + excluded.completed_habits,
            failed_habits = failed_habits + excluded.failed_habits
        """,
        (
            habit_id,
            day.isoformat(),
            delta.total_pomodoros,
            delta.total_duration,
            delta.completed_habits,
            delta.failed_habits,
            created_at,
        ),
    )


def fetch_stats_row(conn: sqlite3.Connection, habit_id: int, day: date) -> HabitStatistics | None:
    row = conn.execute(
        f"SELECT {_STATS_COLS} FROM habit_statistics WHERE habit_id = ? AND day = ?",  # noqa: S608
        (habit_id, day.isoformat()),
    ).fetchone()
    return HabitStatistics.from_row(row) if row else None


def fetch_stats(
    conn: sqlite3.Connection,
    start: date | None = None,
    end: date | None = None,
    habit_id: int | None = None,
) -> list[HabitStatistics]:
    sql = f"SELECT {_STATS_COLS} FROM habit_statistics WHERE 1 = 1"  # noqa: S608
    params: list[Any] = []
    if start is not None:
        sql += " AND day >= ?"
        params.append(start.isoformat())
    if end is not None:
        sql += " AND day <= ?"
        params.append(end.isoformat())
    if habit_id is not None:
        sql += " AND habit_id = ?"
        params.append(habit_id)
    sql += " ORDER BY day, habit_id"
    return [HabitStatistics.from_row(r) for r in conn.execute(sql, params).fetchall()]


def apply_completion(
    conn: sqlite3.Connection,
    habit_id: int,
    day: date,
    completed: bool,
    event_id: int,
    now: str,
) -> StatsDelta | None:
    """Count the verdict of a just-inserted habit event if it flipped.

    The previous verdict is read from the event log, so this must run in the
    transaction that inserted ``event_id``. Returns the delta applied, or None
    when the verdict did not change.
    """
    before = latest_habit_event(conn, habit_id, day, exclude_id=event_id)
    previous = None if before is None else before.completed

    conn.execute(
        """
        INSERT INTO completion_states (habit_id, day, completed, event_id, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(habit_id, day) DO UPDATE SET
            completed = excluded.completed,
            event_id = excluded.event_id,
            updated_at = excluded.updated_at
        """,
        (habit_id, day.isoformat(), int(completed), event_id, now),
    )

    if previous is not None and previous == completed:
        return None
    delta = StatsDelta.completed() if completed else StatsDelta.failed()
    upsert_stats(conn, habit_id, day, delta, now)
    return delta


def fetch_sessions_started_on(conn: sqlite3.Connection, day: date) -> list[FocusSession]:
    # started_at is stored in the clock's zone, so its date prefix is the local day
    rows = conn.execute(
        "SELECT id, habit_id, started_at, ended_at, duration, target_duration, status, created_at "
        "FROM focus_sessions WHERE substr(started_at, 1, 10) = ? ORDER BY started_at, id",
        (day.isoformat(),),
    ).fetchall()
    return [FocusSession.from_row(r) for r in rows]


# ── Workspace-level operations ────────────────────────────────


def validate_delta(delta: StatsDelta) -> StatsDelta:
    """Accept only the three increments the event log can produce."""
    if delta.total_duration < 0 or delta.total_pomodoros < 0:
        raise InvalidDuration("Pomodoro deltas must not be negative")
    if delta.completed_habits < 0 or delta.failed_habits < 0:
        raise InvalidDelta("Completion deltas must not be negative")
    shape = (delta.total_pomodoros, delta.completed_habits, delta.failed_habits)
    if shape not in {(0, 1, 0), (0, 0, 1), (1, 0, 0)}:
        raise InvalidDelta(f"Statistics delta must be one of {_ALLOWED_DELTAS}")
    if delta.total_pomodoros == 0 and delta.total_duration:
        raise InvalidDelta("totalDuration can only change together with totalPomodoros")
    return delta


def upsert_daily_stats(
    ws: Workspace,
    habit_id: int,
    day: date,
    delta: StatsDelta | dict[str, Any],
) -> HabitStatistics:
    """Atomically add a delta to one (habit, day) row and return the row.

    Raises InvalidDuration / InvalidDelta / HabitNotFound.
    """
    if isinstance(delta, dict):
        try:
            delta = StatsDelta.from_dict(delta)
        except (TypeError, ValueError):
            raise InvalidDelta(f"Statistics delta fields must be integers: {delta}")
    validate_delta(delta)
    with ws.db() as conn:
        require_habit(conn, habit_id)
        upsert_stats(conn, habit_id, day, delta, iso(ws.clock.now()))
        return fetch_stats_row(conn, habit_id, day)


def append_habit_event(ws: Workspace, habit_id: int, day: date, completed: bool) -> CalendarEvent:
    """Store a habit completion verdict and count it if it flipped.

    Raises HabitNotFound for unknown habits.
    """
    now = iso(ws.clock.now())
    with ws.db() as conn:
        habit = require_habit(conn, habit_id)
        event = insert_habit_event(conn, habit.id, day, completed, now, title=f"Habit: {habit.name}")
        apply_completion(conn, habit.id, day, bool(completed), event.id, now)
    return event


def append_pomodoro_event(ws: Workspace, habit_id: int, day: date, duration_seconds: int) -> CalendarEvent:
    """Store a focus duration and add it to the day's statistics.

    Raises InvalidDuration / HabitNotFound.
    """
    if duration_seconds < 0:
        raise InvalidDuration(f"Pomodoro duration must be >= 0 seconds, got {duration_seconds}")
    now = iso(ws.clock.now())
    with ws.db() as conn:
        habit = require_habit(conn, habit_id)
        event = insert_pomodoro_event(
            conn, habit.id, day, duration_seconds, now, title=f"Pomodoro: {habit.name}"
        )
        upsert_stats(conn, habit.id, day, StatsDelta.pomodoro(duration_seconds), now)
    return event


def get_daily_stats(ws: Workspace, habit_id: int, day: date) -> HabitStatistics | None:
    with ws.db(readonly=True) as conn:
        return fetch_stats_row(conn, habit_id, day)


def query_range(ws: Workspace, start: date, end: date, habit_id: int | None = None) -> RangeResult:
    """Events and statistics with day in [start, end], grouped by ISO day."""
    result = RangeResult(start=start, end=end)
    with ws.db(readonly=True) as conn:
        events = fetch_events(conn, start, end, habit_id=habit_id)
        stats = fetch_stats(conn, start, end, habit_id=habit_id)
    for event in events:
        result.events_by_date.setdefault(event.day.isoformat(), []).append(event)
    for row in stats:
        result.stats_by_date.setdefault(row.day.isoformat(), []).append(row)
    return result


def query_month(ws: Workspace, year: int, month: int, habit_id: int | None = None) -> RangeResult:
    last = calendar.monthrange(year, month)[1]
    return query_range(ws, date(year, month, 1), date(year, month, last), habit_id=habit_id)


def query_day(ws: Workspace, day: date) -> dict[str, Any]:
    """Everything known about one calendar day.

    A habit with no habit event that day reports completed=False with status
    "none"; ``applicable`` is False before the habit's start date.
    """
    with ws.db(readonly=True) as conn:
        habits = fetch_habits(conn)
        latest = latest_habit_events(conn, day, day)
        events = fetch_events(conn, day, day)
        stats = fetch_stats(conn, day, day)
        sessions = fetch_sessions_started_on(conn, day)
        statuses = []
        for habit in habits:
            event = latest.get((habit.id, day))
            state = load_day_state(conn, habit, day)
            if event is None:
                status = DAY_NONE
            else:
                status = DAY_COMPLETE if event.completed else DAY_INCOMPLETE
            statuses.append(
                HabitDayStatus(
                    habit_id=habit.id,
                    name=habit.name,
                    completed=bool(event and event.completed),
                    status=status,
                    applicable=habit.applies_on(day),
                    checklist=list(state.items),
                    completed_count=state.completed_count,
                    required_items=habit.required_items,
                )
            )

    habit_events = [e for e in events if e.kind == HABIT_EVENT]
    summary = {
        "totalEvents": len(habit_events),
        "completedEvents": sum(1 for e in habit_events if e.completed),
        "failedEvents": sum(1 for e in habit_events if not e.completed),
        "applicableHabits": sum(1 for s in statuses if s.applicable),
        "completedHabits": sum(1 for s in statuses if s.applicable and s.completed),
        "totalPomodoros": len(sessions),
        "completedPomodoros": sum(1 for s in sessions if s.status == COMPLETED),
        "totalDuration": sum(s.duration for s in sessions),
    }
    return {
        "date": day.isoformat(),
        "habits": [s.to_dict() for s in statuses],
        "events": [e.to_dict() for e in events],
        "statistics": [s.to_dict() for s in stats],
        "pomodoros": [s.to_dict() for s in sessions],
        "summary": summary,
    }


def daily_summaries(
    ws: Workspace,
    start: date | None = None,
    end: date | None = None,
    habit_id: int | None = None,
) -> dict[str, Any]:
    """Statistics summed per day across habits, newest day first, plus totals."""
    with ws.db(readonly=True) as conn:
        rows = fetch_stats(conn, start, end, habit_id=habit_id)
        names = {h.id: h.name for h in fetch_habits(conn)}

    by_day: dict[str, list[HabitStatistics]] = defaultdict(list)
    for row in rows:
        by_day[row.day.isoformat()].append(row)

    days = []
    for key in sorted(by_day, reverse=True):
        group = by_day[key]
        days.append({
            "date": key,
            "totalPomodoros": sum(r.total_pomodoros for r in group),
            "totalDuration": sum(r.total_duration for r in group),
            "completedHabits": sum(r.completed_habits for r in group),
            "failedHabits": sum(r.failed_habits for r in group),
            "habits": [
                dict(r.to_dict(), habitName=names.get(r.habit_id))
                for r in group
            ],
        })
    return {
        "dailyStats": days,
        "totalDays": len(days),
        "totalPomodoros": sum(d["totalPomodoros"] for d in days),
        "totalDuration": sum(d["totalDuration"] for d in days),
        "totalCompletedHabits": sum(d["completedHabits"] for d in days),
        "totalFailedHabits": sum(d["failedHabits"] for d in days),
    }


def rebuild_statistics(ws: Workspace, habit_id: int | None = None) -> int:
    """Recompute statistics and completion states from the event log.

    Pomodoro events are summed per day; habit events are replayed in creation
    order with the same flip rule used live. Rows of deleted habits are left
    alone. Returns the number of statistics rows written.
    """
    now = iso(ws.clock.now())
    with ws.db() as conn:
        if habit_id is not None:
            habits = [require_habit(conn, habit_id)]
        else:
            habits = fetch_habits(conn)

        written = 0
        for habit in habits:
            conn.execute("DELETE FROM habit_statistics WHERE habit_id = ?", (habit.id,))
            conn.execute("DELETE FROM completion_states WHERE habit_id = ?", (habit.id,))

            totals: dict[date, list[int]] = defaultdict(lambda: [0, 0, 0, 0])
            verdicts: dict[date, tuple[bool, int]] = {}
            for event in fetch_events(conn, date.min, date.max, habit_id=habit.id):
                counters = totals[event.day]
                if event.kind == POMODORO_EVENT:
                    counters[0] += 1
                    counters[1] += event.duration or 0
                    continue
                previous = verdicts.get(event.day)
                if previous is None or previous[0] != event.completed:
                    counters[2 if event.completed else 3] += 1
                verdicts[event.day] = (event.completed, event.id)

            for day, (pomodoros, duration, completed, failed) in sorted(totals.items()):
                upsert_stats(conn, habit.id, day, StatsDelta(pomodoros, duration, completed, failed), now)
                written += 1
            for day, (completed, event_id) in verdicts.items():
                conn.execute(
                    "INSERT INTO completion_states (habit_id, day, completed, event_id, updated_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (habit.id, day.isoformat(), int(completed), event_id, now),
                )
    logger.info("Rebuilt %d statistics rows for %s", written, f"habit {habit_id}" if habit_id else "all habits")
    return written
