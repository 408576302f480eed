"""Tests for tracker/events.py and the calendar views in tracker/stats.py."""

from datetime import date

import pytest

from tracker.checkin import mark_day, toggle_checklist_item
from tracker.errors import HabitNotFound, InvalidDuration
from tracker.events import latest_habit_event
from tracker.habits import create_habit
from tracker.stats import append_habit_event, append_pomodoro_event, query_day, query_month, query_range


def test_append_habit_event(workspace, habit):
    event = append_habit_event(workspace, habit.id, date(2026, 2, 10), True)
    assert event.id > 0
    assert event.kind == "habit"
    assert event.completed is True
    assert event.to_dict()["date"] == "2026-02-10"
    assert event.to_dict()["type"] == "habit"


def test_append_pomodoro_event(workspace, habit):
    event = append_pomodoro_event(workspace, habit.id, date(2026, 2, 10), 1500)
    assert event.kind == "pomodoro"
    assert event.duration == 1500
    assert event.completed is True


def test_append_errors(workspace, habit):
    with pytest.raises(HabitNotFound):
        append_habit_event(workspace, 999, date(2026, 2, 10), True)
    with pytest.raises(HabitNotFound):
        append_pomodoro_event(workspace, 999, date(2026, 2, 10), 60)
    with pytest.raises(InvalidDuration):
        append_pomodoro_event(workspace, habit.id, date(2026, 2, 10), -1)


def test_latest_event_wins_by_creation(workspace, habit, clock):
    day = date(2026, 2, 10)
    append_habit_event(workspace, habit.id, day, True)
    clock.advance(seconds=5)
    append_habit_event(workspace, habit.id, day, False)
    # same timestamp: insertion order breaks the tie
    append_habit_event(workspace, habit.id, day, True)
    with workspace.db(readonly=True) as conn:
        latest = latest_habit_event(conn, habit.id, day)
    assert latest.completed is True
    assert latest.created_at == clock.now().isoformat()


def test_query_range_groups_by_day(workspace, habit):
    append_habit_event(workspace, habit.id, date(2026, 2, 9), True)
    append_pomodoro_event(workspace, habit.id, date(2026, 2, 10), 600)
    append_habit_event(workspace, habit.id, date(2026, 2, 12), True)
    mark_day(workspace, habit.id, date(2026, 2, 10), True)

    result = query_range(workspace, date(2026, 2, 9), date(2026, 2, 10))
    assert sorted(result.events_by_date) == ["2026-02-09", "2026-02-10"]
    assert len(result.events_by_date["2026-02-10"]) == 2
    assert list(result.stats_by_date) == ["2026-02-09", "2026-02-10"]
    row = result.stats_by_date["2026-02-10"][0]
    assert (row.total_pomodoros, row.total_duration, row.completed_habits) == (1, 600, 1)

    d = result.to_dict()
    assert d["startDate"] == "2026-02-09"
    assert d["eventsByDate"]["2026-02-09"][0]["completed"] is True


def test_query_range_habit_filter(workspace, habit):
    other = create_habit(workspace, "Other", ["x"], 1, start_date="2026-02-01")
    append_habit_event(workspace, habit.id, date(2026, 2, 10), True)
    append_habit_event(workspace, other.id, date(2026, 2, 10), True)
    result = query_range(workspace, date(2026, 2, 10), date(2026, 2, 10), habit_id=other.id)
    assert [e.habit_id for e in result.events_by_date["2026-02-10"]] == [other.id]


def test_query_month(workspace, habit):
    append_habit_event(workspace, habit.id, date(2026, 1, 31), True)
    append_habit_event(workspace, habit.id, date(2026, 2, 28), True)
    result = query_month(workspace, 2026, 2)
    assert result.start == date(2026, 2, 1)
    assert result.end == date(2026, 2, 28)
    assert list(result.events_by_date) == ["2026-02-28"]


def test_query_day_without_events(workspace, habit):
    view = query_day(workspace, date(2026, 2, 10))
    [entry] = view["habits"]
    assert entry["completed"] is False
    assert entry["status"] == "none"
    assert entry["applicable"] is True
    assert view["summary"]["applicableHabits"] == 1
    assert view["summary"]["completedHabits"] == 0


def test_query_day_before_start_date(workspace, habit):
    view = query_day(workspace, date(2026, 2, 1))
    assert view["habits"][0]["applicable"] is False


def test_query_day_reports_latest_verdict(workspace, habit, manager, clock):
    toggle_checklist_item(workspace, habit.id, "1")
    toggle_checklist_item(workspace, habit.id, "3")
    session = manager.start(habit_id=habit.id, target_minutes=5)
    clock.advance(seconds=300)
    manager.complete(session.id)

    view = query_day(workspace, date(2026, 2, 11))
    [entry] = view["habits"]
    assert entry["status"] == "complete"
    assert entry["completedCount"] == 2
    assert [i["completed"] for i in entry["checklist"]] == [True, False, True]
    assert len(view["pomodoros"]) == 1
    assert view["summary"]["totalEvents"] == 2
    assert view["summary"]["completedPomodoros"] == 1
    assert view["summary"]["totalDuration"] == 300
    assert view["statistics"][0]["totalPomodoros"] == 1
