"""Checklist evaluation: toggling, resetting and judging a day's checklist.

Everything here is pure. Functions take a day state and return a new one;
the input is never modified.
"""

from __future__ import annotations

import re
from dataclasses import replace
from datetime import date

from tracker.errors import ItemNotFound
from tracker.models import ChecklistItem, ChecklistResult, DayChecklistState, Habit


def checklist_from_markdown(text: str) -> tuple[ChecklistItem, ...]:
    """Extract template items from markdown checkboxes.

    Recognizes:
        - [ ] Item label
        - [x] Item label
    The checked mark is ignored: template items are always unchecked.
    """
    out = []
    for line in text.splitlines():
        m = re.match(r"^\s*[-*]\s*\[([ xX])\]\s+(.*)$", line)
        if not m:
            continue
        out.append(ChecklistItem(id=str(len(out) + 1), label=m.group(2).strip()))
    return tuple(out)


def day_state_from_template(habit: Habit, day: date) -> DayChecklistState:
    """An unchecked copy of the template for a day nobody has touched yet."""
    items = tuple(ChecklistItem(id=i.id, label=i.label, completed=False) for i in habit.checklist)
    return DayChecklistState(habit_id=habit.id, day=day, items=items)


def reconcile(habit: Habit, state: DayChecklistState) -> DayChecklistState:
    """Align a stored day state with the current template.

    Items dropped from the template disappear, new ones appear unchecked,
    labels follow the template and completion flags are kept by item id.
    """
    done = {i.id for i in state.items if i.completed}
    items = tuple(
        ChecklistItem(id=t.id, label=t.label, completed=t.id in done) for t in habit.checklist
    )
    if items == state.items:
        return state
    return replace(state, items=items)


def evaluate(state: DayChecklistState, required_items: int) -> ChecklistResult:
    count = state.completed_count
    return ChecklistResult(state=state, completed_count=count, is_complete=count >= required_items)


def toggle_item(state: DayChecklistState, item_id: str, required_items: int) -> ChecklistResult:
    """Invert one item's completed flag. Raises ItemNotFound if absent."""
    if state.find(item_id) is None:
        raise ItemNotFound(item_id)
    items = tuple(
        replace(i, completed=not i.completed) if i.id == item_id else i for i in state.items
    )
    return evaluate(replace(state, items=items), required_items)


def reset(state: DayChecklistState, required_items: int) -> ChecklistResult:
    """Clear every item."""
    items = tuple(replace(i, completed=False) for i in state.items)
    return evaluate(replace(state, items=items), required_items)
