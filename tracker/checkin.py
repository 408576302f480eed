"""Daily check-ins: checklist toggles, resets and direct day verdicts.

Each operation runs in one transaction: the new day state, a habit calendar
event carrying the checklist snapshot, and the flip-aware statistics delta
commit together or not at all. Hooks run after the commit.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Any

from tracker import checklist
from tracker.clock import iso
from tracker.context import Workspace
from tracker.events import insert_habit_event
from tracker.habits import load_day_state, require_habit, save_day_state
from tracker.hooks import run_hooks
from tracker.models import CalendarEvent, ChecklistResult, Habit, StatsDelta
from tracker.stats import apply_completion

logger = logging.getLogger(__name__)


def _record(conn: sqlite3.Connection, habit: Habit, result: ChecklistResult, now: str) -> StatsDelta | None:
    state = result.state
    save_day_state(conn, state, now)
    event = insert_habit_event(
        conn,
        habit.id,
        state.day,
        result.is_complete,
        now,
        title=f"Habit: {habit.name}",
        checklist=state.items,
    )
    return apply_completion(conn, habit.id, state.day, result.is_complete, event.id, now)


def _log_flip(habit: Habit, day: date, delta: StatsDelta | None) -> None:
    if delta is None:
        return
    verdict = "complete" if delta.completed_habits else "incomplete"
    logger.info("Habit %d %r is %s for %s", habit.id, habit.name, verdict, day.isoformat())


def _hook_context(habit: Habit, day: date, **extra: Any) -> dict[str, Any]:
    return {"habitId": habit.id, "habitName": habit.name, "date": day.isoformat(), **extra}


def toggle_checklist_item(
    ws: Workspace,
    habit_id: int,
    item_id: str,
    day: date | None = None,
) -> ChecklistResult:
    """Invert one item of the day's checklist and record the outcome.

    Raises HabitNotFound / ItemNotFound; nothing is written on error.
    """
    day = day or ws.today()
    now = iso(ws.clock.now())
    with ws.db() as conn:
        habit = require_habit(conn, habit_id)
        state = load_day_state(conn, habit, day)
        result = checklist.toggle_item(state, str(item_id), habit.required_items)
        delta = _record(conn, habit, result, now)

    _log_flip(habit, day, delta)
    if delta is not None and delta.completed_habits:
        run_hooks(
            "on_habit_complete",
            _hook_context(habit, day, completedCount=result.completed_count),
            ws.root,
        )
    return result


def reset_checklist(ws: Workspace, habit_id: int, day: date | None = None) -> ChecklistResult:
    """Clear every item of the day's checklist and record the outcome."""
    day = day or ws.today()
    now = iso(ws.clock.now())
    with ws.db() as conn:
        habit = require_habit(conn, habit_id)
        state = load_day_state(conn, habit, day)
        result = checklist.reset(state, habit.required_items)
        delta = _record(conn, habit, result, now)

    _log_flip(habit, day, delta)
    run_hooks("on_habit_reset", _hook_context(habit, day), ws.root)
    return result


def mark_day(ws: Workspace, habit_id: int, day: date, completed: bool) -> CalendarEvent:
    """Record a completion verdict for a day without touching its checklist."""
    now = iso(ws.clock.now())
    with ws.db() as conn:
        habit = require_habit(conn, habit_id)
        event = insert_habit_event(
            conn, habit.id, day, bool(completed), now, title=f"Habit: {habit.name}"
        )
        delta = apply_completion(conn, habit.id, day, bool(completed), event.id, now)

    _log_flip(habit, day, delta)
    if delta is not None and delta.completed_habits:
        run_hooks("on_habit_complete", _hook_context(habit, day), ws.root)
    return event
