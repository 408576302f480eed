"""Append-only calendar event log.

Habit events record a day's completion verdict; pomodoro events record a
completed focus session's duration. Nothing here updates or deletes an
event: the latest event per (habit, day, kind), ordered by creation, is the
current value. Workspace-level appends live in tracker.stats.
"""

from __future__ import annotations

import sqlite3
from datetime import date

from tracker.errors import InvalidDuration
from tracker.models import (
    HABIT_EVENT,
    POMODORO_EVENT,
    CalendarEvent,
    ChecklistItem,
    items_to_json,
)

_EVENT_COLS = "id, habit_id, title, day, kind, completed, duration, checklist, created_at"


def _fetch_event(conn: sqlite3.Connection, event_id: int) -> CalendarEvent:
    row = conn.execute(
        f"SELECT {_EVENT_COLS} FROM calendar_events WHERE id = ?",  # noqa: S608
        (event_id,),
    ).fetchone()
    return CalendarEvent.from_row(row)


def insert_habit_event(
    conn: sqlite3.Connection,
    habit_id: int,
    day: date,
    completed: bool,
    created_at: str,
    title: str = "",
    checklist: tuple[ChecklistItem, ...] | None = None,
) -> CalendarEvent:
    cursor = conn.execute(
        "INSERT INTO calendar_events (habit_id, title, day, kind, completed, checklist, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        (
            habit_id,
            title or "Habit",
            day.isoformat(),
            HABIT_EVENT,
            int(bool(completed)),
            items_to_json(checklist) if checklist is not None else None,
            created_at,
        ),
    )
    return _fetch_event(conn, cursor.lastrowid)


def insert_pomodoro_event(
    conn: sqlite3.Connection,
    habit_id: int,
    day: date,
    duration_seconds: int,
    created_at: str,
    title: str = "",
) -> CalendarEvent:
    if duration_seconds < 0:
        raise InvalidDuration(f"Pomodoro duration must be >= 0 seconds, got {duration_seconds}")
    cursor = conn.execute(
        "INSERT INTO calendar_events (habit_id, title, day, kind, completed, duration, created_at) "
        "VALUES (?, ?, ?, ?, 1, ?, ?)",
        (habit_id, title or "Pomodoro", day.isoformat(), POMODORO_EVENT, int(duration_seconds), created_at),
    )
    return _fetch_event(conn, cursor.lastrowid)


def fetch_events(
    conn: sqlite3.Connection,
    start: date,
    end: date,
    habit_id: int | None = None,
    kind: str | None = None,
) -> list[CalendarEvent]:
    """Events with day in [start, end], in creation order."""
    sql = f"SELECT {_EVENT_COLS} FROM calendar_events WHERE day BETWEEN ? AND ?"  # noqa: S608
    params: list[object] = [start.isoformat(), end.isoformat()]
    if habit_id is not None:
        sql += " AND habit_id = ?"
        params.append(habit_id)
    if kind is not None:
        sql += " AND kind = ?"
        params.append(kind)
    sql += " ORDER BY day, created_at, id"
    return [CalendarEvent.from_row(r) for r in conn.execute(sql, params).fetchall()]


def latest_habit_events(
    conn: sqlite3.Connection,
    start: date,
    end: date,
    habit_id: int | None = None,
) -> dict[tuple[int, date], CalendarEvent]:
    """Latest habit-kind event per (habit, day) in [start, end].

    "Latest" is by creation time with the row id as tie-breaker, never by day.
    Orphaned events (deleted habit) are skipped.
    """
    latest: dict[tuple[int, date], CalendarEvent] = {}
    for event in fetch_events(conn, start, end, habit_id=habit_id, kind=HABIT_EVENT):
        if event.habit_id is None:
            continue
        latest[(event.habit_id, event.day)] = event
    return latest


def latest_habit_event(
    conn: sqlite3.Connection,
    habit_id: int,
    day: date,
    exclude_id: int | None = None,
) -> CalendarEvent | None:
    """Latest habit-kind event for (habit, day), optionally ignoring one event."""
    row = conn.execute(
        f"SELECT {_EVENT_COLS} FROM calendar_events "  # noqa: S608
        "WHERE habit_id = ? AND day = ? AND kind = ? AND id != ? "
        "ORDER BY created_at DESC, id DESC LIMIT 1",
        (habit_id, day.isoformat(), HABIT_EVENT, -1 if exclude_id is None else exclude_id),
    ).fetchone()
    return CalendarEvent.from_row(row) if row else None
