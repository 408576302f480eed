"""Aggregate statistics over habits, focus sessions and calendar events.

Computes the dashboard numbers (completion rates, pomodoro totals, streaks)
and caches a summary in summary.json.
"""

from __future__ import annotations

import sqlite3
from collections import defaultdict
from datetime import date
from typing import Any

from tracker.clock import iso
from tracker.context import Workspace
from tracker.events import fetch_events
from tracker.fileio import read_json, write_json_atomic
from tracker.habits import fetch_habits, require_habit
from tracker.models import (
    ACTIVE,
    CANCELLED,
    COMPLETED,
    HABIT_EVENT,
    CalendarEvent,
    FocusSession,
    Habit,
)
from tracker.stats import fetch_stats
from tracker.streaks import StreakCalculator
from tracker.workspace import summary_path

DAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def _rate(part: int, total: int) -> float:
    """Percentage rounded to one decimal, 0 for an empty total."""
    return round(part / total * 100, 1) if total else 0.0


def _fetch_sessions(
    conn: sqlite3.Connection,
    start: date | None,
    end: date | None,
    habit_id: int | None,
) -> list[FocusSession]:
    sql = (
        "SELECT id, habit_id, started_at, ended_at, duration, target_duration, status, created_at "
        "FROM focus_sessions WHERE 1 = 1"
    )
    params: list[Any] = []
    if start is not None:
        sql += " AND substr(started_at, 1, 10) >= ?"
        params.append(start.isoformat())
    if end is not None:
        sql += " AND substr(started_at, 1, 10) <= ?"
        params.append(end.isoformat())
    if habit_id is not None:
        sql += " AND habit_id = ?"
        params.append(habit_id)
    sql += " ORDER BY started_at DESC, id DESC"
    return [FocusSession.from_row(r) for r in conn.execute(sql, params).fetchall()]


def _habit_events(
    conn: sqlite3.Connection,
    start: date | None,
    end: date | None,
    habit_id: int | None,
) -> list[CalendarEvent]:
    return fetch_events(conn, start or date.min, end or date.max, habit_id=habit_id, kind=HABIT_EVENT)


def _pomodoro_block(sessions: list[FocusSession]) -> dict[str, Any]:
    total = len(sessions)
    completed = sum(1 for s in sessions if s.status == COMPLETED)
    duration = sum(s.duration for s in sessions)
    return {
        "total": total,
        "completed": completed,
        "cancelled": sum(1 for s in sessions if s.status == CANCELLED),
        "totalDuration": duration,
        "averageDuration": round(duration / total, 1) if total else 0.0,
        "completionRate": _rate(completed, total),
    }


def _event_block(events: list[CalendarEvent]) -> dict[str, Any]:
    completed = sum(1 for e in events if e.completed)
    return {
        "total": len(events),
        "completed": completed,
        "failed": len(events) - completed,
        "completionRate": _rate(completed, len(events)),
    }


def _habit_entry(habit: Habit, sessions: list[FocusSession], events: list[CalendarEvent]) -> dict[str, Any]:
    mine = [s for s in sessions if s.habit_id == habit.id]
    my_events = [e for e in events if e.habit_id == habit.id]
    return {
        "id": habit.id,
        "name": habit.name,
        "description": habit.description,
        "totalPomodoros": len(mine),
        "completedPomodoros": sum(1 for s in mine if s.status == COMPLETED),
        "totalEvents": len(my_events),
        "completedEvents": sum(1 for e in my_events if e.completed),
        "totalDuration": sum(s.duration for s in mine),
    }


# ── Public queries ────────────────────────────────────────────


def overall_stats(
    ws: Workspace,
    start: date | None = None,
    end: date | None = None,
    habit_id: int | None = None,
) -> dict[str, Any]:
    with ws.db(readonly=True) as conn:
        if habit_id is not None:
            habits = [require_habit(conn, habit_id)]
        else:
            habits = fetch_habits(conn)
        sessions = _fetch_sessions(conn, start, end, habit_id)
        events = _habit_events(conn, start, end, habit_id)
        daily = fetch_stats(conn, start, end, habit_id=habit_id)

    return {
        "habits": {
            "total": len(habits),
            "list": [_habit_entry(h, sessions, events) for h in habits],
        },
        "pomodoros": _pomodoro_block(sessions),
        "events": _event_block(events),
        "dailyStats": [s.to_dict() for s in reversed(daily)],
    }


def habit_stats(
    ws: Workspace,
    habit_id: int,
    start: date | None = None,
    end: date | None = None,
) -> dict[str, Any]:
    """Statistics for one habit. Raises HabitNotFound."""
    with ws.db(readonly=True) as conn:
        habit = require_habit(conn, habit_id)
        sessions = _fetch_sessions(conn, start, end, habit_id)
        events = _habit_events(conn, start, end, habit_id)
        daily = fetch_stats(conn, start, end, habit_id=habit_id)

    pomodoros = _pomodoro_block(sessions)
    pomodoros["sessions"] = [s.to_dict() for s in sessions]
    event_block = _event_block(events)
    event_block["list"] = [e.to_dict() for e in reversed(events)]
    return {
        "habit": {
            "id": habit.id,
            "name": habit.name,
            "description": habit.description,
            "createdAt": habit.created_at,
        },
        "pomodoros": pomodoros,
        "events": event_block,
        "dailyStats": [s.to_dict() for s in reversed(daily)],
    }


def pomodoro_stats(
    ws: Workspace,
    start: date | None = None,
    end: date | None = None,
    habit_id: int | None = None,
) -> dict[str, Any]:
    """Focus session totals, grouped by habit name ("General" without a habit)."""
    with ws.db(readonly=True) as conn:
        sessions = _fetch_sessions(conn, start, end, habit_id)
        names = {h.id: h.name for h in fetch_habits(conn)}

    groups: dict[str, list[FocusSession]] = defaultdict(list)
    for s in sessions:
        groups[names.get(s.habit_id, "General")].append(s)

    block = _pomodoro_block(sessions)
    return {
        "totalSessions": block["total"],
        "completedSessions": block["completed"],
        "cancelledSessions": block["cancelled"],
        "activeSessions": sum(1 for s in sessions if s.status == ACTIVE),
        "totalDuration": block["totalDuration"],
        "averageDuration": block["averageDuration"],
        "completionRate": block["completionRate"],
        "byHabit": [
            {
                "habitName": name,
                "totalSessions": len(group),
                "completedSessions": sum(1 for s in group if s.status == COMPLETED),
                "totalDuration": sum(s.duration for s in group),
                "averageDuration": round(sum(s.duration for s in group) / len(group), 1),
            }
            for name, group in groups.items()
        ],
        "sessions": [s.to_dict() for s in sessions],
    }


# ── Storage & Refresh ─────────────────────────────────────────


def compute_summary(ws: Workspace, days: int = 30) -> dict[str, Any]:
    """Streaks, rolling completion averages and completion by weekday."""
    calc = StreakCalculator(ws)
    window = calc.progress_window(days=days)

    weekday_rates: dict[str, list[float]] = defaultdict(list)
    rates = []
    for entry in window:
        if not entry.total:
            continue
        rate = entry.completed / entry.total
        rates.append(rate)
        weekday_rates[DAY_NAMES[entry.day.weekday()]].append(rate)

    recent = rates[-7:]
    return {
        "generatedAt": iso(ws.clock.now()),
        "currentStreak": calc.current_streak(),
        "longestStreak": calc.longest_streak(),
        "rolling7dayAvg": round(sum(recent) / len(recent), 3) if recent else 0.0,
        "rolling30dayAvg": round(sum(rates) / len(rates), 3) if rates else 0.0,
        "completionByWeekday": {
            day: round(sum(r) / len(r), 3) for day, r in weekday_rates.items()
        },
        "pomodoros": _pomodoro_block_for(ws),
    }


def _pomodoro_block_for(ws: Workspace) -> dict[str, Any]:
    with ws.db(readonly=True) as conn:
        return _pomodoro_block(_fetch_sessions(conn, None, None, None))


def refresh_summary(ws: Workspace) -> dict[str, Any]:
    """Recompute the dashboard summary and save it to summary.json."""
    summary = compute_summary(ws)
    write_json_atomic(summary_path(ws.root), summary)
    return summary


def load_summary(ws: Workspace) -> dict[str, Any] | None:
    """Load the cached summary from summary.json."""
    data = read_json(summary_path(ws.root))
    return data or None
