"""Tests for tracker/checklist.py — checklist evaluation."""

from datetime import date

import pytest

from tracker.checklist import (
    checklist_from_markdown,
    day_state_from_template,
    evaluate,
    reconcile,
    reset,
    toggle_item,
)
from tracker.errors import ItemNotFound
from tracker.models import ChecklistItem, DayChecklistState, Habit

DAY = date(2026, 2, 11)


def _habit(*labels: str, required: int = 2) -> Habit:
    items = tuple(ChecklistItem(id=str(i), label=l) for i, l in enumerate(labels, start=1))
    return Habit(id=1, name="Routine", checklist=items, required_items=required, start_date=date(2026, 2, 1))


def _state(*flags: bool) -> DayChecklistState:
    items = tuple(ChecklistItem(id=str(i), label=f"item {i}", completed=f) for i, f in enumerate(flags, start=1))
    return DayChecklistState(habit_id=1, day=DAY, items=items)


def test_checklist_from_markdown():
    md = """# Routine
- [ ] Stretch
- [x] Read 20m
* [X] Journal
Not a checkbox
"""
    items = checklist_from_markdown(md)
    assert [i.id for i in items] == ["1", "2", "3"]
    assert [i.label for i in items] == ["Stretch", "Read 20m", "Journal"]
    assert not any(i.completed for i in items)


def test_three_item_scenario():
    """3 items, 2 required: toggle 1,2 -> complete; 1 off -> incomplete; 3 on -> complete."""
    state = _state(False, False, False)

    r = toggle_item(state, "1", 2)
    assert (r.completed_count, r.is_complete) == (1, False)
    r = toggle_item(r.state, "2", 2)
    assert (r.completed_count, r.is_complete) == (2, True)
    r = toggle_item(r.state, "1", 2)
    assert (r.completed_count, r.is_complete) == (1, False)
    r = toggle_item(r.state, "3", 2)
    assert (r.completed_count, r.is_complete) == (2, True)


def test_toggle_twice_restores_and_input_unchanged():
    state = _state(True, False, False)
    once = toggle_item(state, "2", 2)
    assert state.items[1].completed is False
    twice = toggle_item(once.state, "2", 2)
    assert twice.state == state


def test_toggle_unknown_item():
    with pytest.raises(ItemNotFound):
        toggle_item(_state(False), "9", 1)


def test_is_complete_matches_count():
    for flags in [(False, False, False), (True, False, False), (True, True, False), (True, True, True)]:
        result = evaluate(_state(*flags), 2)
        assert result.completed_count == sum(flags)
        assert result.is_complete == (sum(flags) >= 2)


def test_reset_clears_every_item():
    result = reset(_state(True, True, True), 2)
    assert result.completed_count == 0
    assert result.is_complete is False
    assert all(not i.completed for i in result.state.items)


def test_day_state_from_template_is_unchecked():
    habit = _habit("Stretch", "Read")
    state = day_state_from_template(habit, DAY)
    assert state.habit_id == 1
    assert state.day == DAY
    assert [i.label for i in state.items] == ["Stretch", "Read"]
    assert state.completed_count == 0


def test_reconcile_follows_template():
    habit = _habit("Stretch", "Read more", "Meditate")
    stored = DayChecklistState(
        habit_id=1,
        day=DAY,
        items=(
            ChecklistItem(id="2", label="Read", completed=True),
            ChecklistItem(id="4", label="Dropped", completed=True),
        ),
    )
    state = reconcile(habit, stored)
    assert [i.id for i in state.items] == ["1", "2", "3"]
    assert [i.completed for i in state.items] == [False, True, False]
    assert state.items[1].label == "Read more"
