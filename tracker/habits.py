"""Habit templates and per-day checklist storage."""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Any

from tracker.checklist import checklist_from_markdown, day_state_from_template, reconcile
from tracker.clock import iso, parse_day
from tracker.context import Workspace
from tracker.errors import HabitNotFound, InvalidHabit
from tracker.models import ChecklistItem, DayChecklistState, Habit, items_to_json

logger = logging.getLogger(__name__)

_HABIT_COLS = "id, name, description, checklist, required_items, start_date, created_at, updated_at"


# ── Validation ────────────────────────────────────────────────


def parse_checklist(raw: Any) -> tuple[ChecklistItem, ...]:
    """Build template items from dicts or plain labels.

    Template items are always unchecked; items without an id get their
    1-based position as id. A markdown string of checkboxes is accepted too.
    """
    if isinstance(raw, str):
        raw = checklist_from_markdown(raw)
    items = []
    for i, entry in enumerate(raw or [], start=1):
        if isinstance(entry, ChecklistItem):
            item = entry
        elif isinstance(entry, dict):
            item = ChecklistItem.from_dict(entry)
        else:
            item = ChecklistItem(id="", label=str(entry))
        items.append(ChecklistItem(id=item.id or str(i), label=item.label.strip(), completed=False))
    return tuple(items)


def validate_habit(name: str, checklist: tuple[ChecklistItem, ...], required_items: Any) -> list[str]:
    """Validate the parts of a template that drive aggregation."""
    errors = []
    if not (name or "").strip():
        errors.append("Missing required field: name")
    if not checklist:
        errors.append("checklist must have at least one item")
    ids = [i.id for i in checklist]
    if len(ids) != len(set(ids)):
        errors.append("checklist item ids must be unique")
    if isinstance(required_items, bool) or not isinstance(required_items, int):
        errors.append("requiredItems must be an integer")
    elif checklist and not 1 <= required_items <= len(checklist):
        errors.append(f"requiredItems must be between 1 and {len(checklist)}")
    return errors


# ── Row access ────────────────────────────────────────────────


def fetch_habit(conn: sqlite3.Connection, habit_id: int) -> Habit | None:
    row = conn.execute(
        f"SELECT {_HABIT_COLS} FROM habits WHERE id = ?",  # noqa: S608
        (habit_id,),
    ).fetchone()
    return Habit.from_row(row) if row else None


def require_habit(conn: sqlite3.Connection, habit_id: int) -> Habit:
    habit = fetch_habit(conn, habit_id)
    if habit is None:
        raise HabitNotFound(habit_id)
    return habit


def fetch_habits(conn: sqlite3.Connection) -> list[Habit]:
    rows = conn.execute(f"SELECT {_HABIT_COLS} FROM habits ORDER BY id").fetchall()  # noqa: S608
    return [Habit.from_row(r) for r in rows]


# ── CRUD ──────────────────────────────────────────────────────


def create_habit(
    ws: Workspace,
    name: str,
    checklist: Any,
    required_items: int,
    start_date: date | str | None = None,
    description: str = "",
) -> Habit:
    items = parse_checklist(checklist)
    errors = validate_habit(name, items, required_items)
    if errors:
        raise InvalidHabit("; ".join(errors))

    now = iso(ws.clock.now())
    start = parse_day(start_date) if start_date else ws.today()
    with ws.db() as conn:
        cursor = conn.execute(
            "INSERT INTO habits (name, description, checklist, required_items, start_date, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (name.strip(), description or "", items_to_json(items), required_items, start.isoformat(), now, now),
        )
        habit = require_habit(conn, cursor.lastrowid)
    logger.info("Created habit %d %r (%d items, %d required)", habit.id, habit.name, len(items), required_items)
    return habit


def get_habit(ws: Workspace, habit_id: int) -> Habit | None:
    with ws.db(readonly=True) as conn:
        return fetch_habit(conn, habit_id)


def list_habits(ws: Workspace) -> list[Habit]:
    with ws.db(readonly=True) as conn:
        return fetch_habits(conn)


def update_habit(ws: Workspace, habit_id: int, updates: dict[str, Any]) -> Habit:
    """Edit the template (name/description/checklist/requiredItems/startDate).

    Per-day checklist states are untouched; they are reconciled against the
    new template when next read.
    """
    with ws.db() as conn:
        habit = require_habit(conn, habit_id)
        name = updates.get("name", habit.name)
        items = parse_checklist(updates["checklist"]) if "checklist" in updates else habit.checklist
        required = updates.get("requiredItems", updates.get("required_items", habit.required_items))
        start_raw = updates.get("startDate", updates.get("start_date"))
        start = parse_day(start_raw) if start_raw else habit.start_date
        description = updates.get("description", habit.description)

        errors = validate_habit(name, items, required)
        if errors:
            raise InvalidHabit("; ".join(errors))

        conn.execute(
            "UPDATE habits SET name = ?, description = ?, checklist = ?, required_items = ?, "
            "start_date = ?, updated_at = ? WHERE id = ?",
            (
                name.strip(),
                description or "",
                items_to_json(items),
                required,
                start.isoformat(),
                iso(ws.clock.now()),
                habit_id,
            ),
        )
        return require_habit(conn, habit_id)


def delete_habit(ws: Workspace, habit_id: int) -> None:
    """Delete a habit template.

    Sessions, calendar events and statistics keep their history with the
    habit reference nulled; day checklists and completion states go with it.
    """
    with ws.db() as conn:
        require_habit(conn, habit_id)
        conn.execute("DELETE FROM habits WHERE id = ?", (habit_id,))
    logger.info("Deleted habit %d", habit_id)


# ── Day checklist state ───────────────────────────────────────


def load_day_state(conn: sqlite3.Connection, habit: Habit, day: date) -> DayChecklistState:
    """Stored state for (habit, day), or an unchecked copy of the template."""
    row = conn.execute(
        "SELECT habit_id, day, items, updated_at FROM day_checklists WHERE habit_id = ? AND day = ?",
        (habit.id, day.isoformat()),
    ).fetchone()
    if row is None:
        return day_state_from_template(habit, day)
    return reconcile(habit, DayChecklistState.from_row(row))


def save_day_state(conn: sqlite3.Connection, state: DayChecklistState, updated_at: str) -> None:
    conn.execute(
        """
        INSERT INTO day_checklists (habit_id, day, items, updated_at) VALUES (?, ?, ?, ?)
        ON CONFLICT(habit_id, day) DO UPDATE SET items = excluded.items, updated_at = excluded.updated_at
        """,
        (state.habit_id, state.day.isoformat(), items_to_json(state.items), updated_at),
    )


def get_day_state(ws: Workspace, habit_id: int, day: date | None = None) -> DayChecklistState:
    day = day or ws.today()
    with ws.db(readonly=True) as conn:
        habit = require_habit(conn, habit_id)
        return load_day_state(conn, habit, day)
