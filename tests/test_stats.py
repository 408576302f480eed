"""Tests for tracker/stats.py — statistics aggregation."""

from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from tracker.checkin import mark_day, toggle_checklist_item
from tracker.errors import HabitNotFound, InvalidDelta, InvalidDuration
from tracker.events import fetch_events
from tracker.habits import get_day_state
from tracker.models import StatsDelta
from tracker.stats import (
    append_habit_event,
    append_pomodoro_event,
    daily_summaries,
    get_daily_stats,
    query_day,
    rebuild_statistics,
    upsert_daily_stats,
)

DAY = date(2026, 2, 10)


def test_upsert_creates_then_adds(workspace, habit):
    row = upsert_daily_stats(workspace, habit.id, DAY, StatsDelta.pomodoro(60))
    assert (row.total_pomodoros, row.total_duration, row.completed_habits, row.failed_habits) == (1, 60, 0, 0)
    row = upsert_daily_stats(workspace, habit.id, DAY, {"completedHabits": 1})
    assert (row.total_pomodoros, row.total_duration, row.completed_habits) == (1, 60, 1)
    row = upsert_daily_stats(workspace, habit.id, DAY, StatsDelta.failed())
    assert row.failed_habits == 1


def test_upsert_parallel_no_lost_updates(workspace, habit):
    n = 20
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: upsert_daily_stats(workspace, habit.id, DAY, StatsDelta.pomodoro(60)), range(n)))
    row = get_daily_stats(workspace, habit.id, DAY)
    assert row.total_pomodoros == n
    assert row.total_duration == 60 * n


def test_upsert_errors(workspace, habit):
    with pytest.raises(HabitNotFound):
        upsert_daily_stats(workspace, 999, DAY, StatsDelta.completed())
    with pytest.raises(InvalidDuration):
        upsert_daily_stats(workspace, habit.id, DAY, StatsDelta(total_pomodoros=1, total_duration=-5))
    with pytest.raises(InvalidDuration):
        upsert_daily_stats(workspace, habit.id, DAY, {"totalPomodoros": -1})
    with pytest.raises(InvalidDelta):
        upsert_daily_stats(workspace, habit.id, DAY, {"completedHabits": -5, "failedHabits": -2})
    with pytest.raises(InvalidDelta):
        upsert_daily_stats(workspace, habit.id, DAY, {"completedHabits": 1, "failedHabits": 1})
    with pytest.raises(InvalidDelta):
        upsert_daily_stats(workspace, habit.id, DAY, {"completedHabits": 2})
    with pytest.raises(InvalidDelta):
        upsert_daily_stats(workspace, habit.id, DAY, {})
    with pytest.raises(InvalidDelta):
        upsert_daily_stats(workspace, habit.id, DAY, {"totalDuration": 60})
    with pytest.raises(InvalidDelta):
        upsert_daily_stats(workspace, habit.id, DAY, {"completedHabits": "yes"})
    assert get_daily_stats(workspace, habit.id, DAY) is None


def test_daily_summaries(workspace, habit):
    mark_day(workspace, habit.id, date(2026, 2, 9), True)
    mark_day(workspace, habit.id, DAY, False)
    upsert_daily_stats(workspace, habit.id, DAY, StatsDelta.pomodoro(1500))

    result = daily_summaries(workspace, date(2026, 2, 1), date(2026, 2, 28))
    assert [d["date"] for d in result["dailyStats"]] == ["2026-02-10", "2026-02-09"]
    assert result["totalDays"] == 2
    assert result["totalPomodoros"] == 1
    assert result["totalDuration"] == 1500
    assert result["totalCompletedHabits"] == 1
    assert result["totalFailedHabits"] == 1
    assert result["dailyStats"][0]["habits"][0]["habitName"] == "Morning routine"


def _counters(row):
    return (row.total_pomodoros, row.total_duration, row.completed_habits, row.failed_habits)


def _assert_rebuild_matches(workspace, habit_id, day):
    live = _counters(get_daily_stats(workspace, habit_id, day))
    with workspace.db() as conn:
        conn.execute(
            "UPDATE habit_statistics SET total_pomodoros = 0, total_duration = 0, "
            "completed_habits = 0, failed_habits = 0"
        )
    rebuild_statistics(workspace)
    assert _counters(get_daily_stats(workspace, habit_id, day)) == live
    return live


def test_rebuild_matches_live_counters(workspace, habit):
    for item in ["1", "2", "1", "3"]:
        toggle_checklist_item(workspace, habit.id, item, DAY)
    append_pomodoro_event(workspace, habit.id, DAY, 900)
    live = _assert_rebuild_matches(workspace, habit.id, DAY)
    assert live == (1, 900, 2, 2)

    # the rebuilt completion cache does not count an unchanged verdict again
    mark_day(workspace, habit.id, DAY, True)
    assert get_daily_stats(workspace, habit.id, DAY).completed_habits == 2


def test_appended_verdict_counts_against_the_log(workspace, habit):
    toggle_checklist_item(workspace, habit.id, "1", DAY)
    toggle_checklist_item(workspace, habit.id, "2", DAY)
    append_habit_event(workspace, habit.id, DAY, False)
    assert query_day(workspace, DAY)["habits"][0]["completed"] is False

    toggle_checklist_item(workspace, habit.id, "3", DAY)
    assert query_day(workspace, DAY)["habits"][0]["completed"] is True
    assert _assert_rebuild_matches(workspace, habit.id, DAY) == (0, 0, 2, 2)


def test_parallel_mark_day_loses_nothing(workspace, habit):
    verdicts = [i % 2 == 0 for i in range(20)]
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda v: mark_day(workspace, habit.id, DAY, v), verdicts))

    with workspace.db(readonly=True) as conn:
        events = fetch_events(conn, DAY, DAY, habit_id=habit.id)
    assert len(events) == len(verdicts)
    flips = sum(1 for prev, cur in zip(events, events[1:]) if prev.completed != cur.completed)

    _, _, completed, failed = _assert_rebuild_matches(workspace, habit.id, DAY)
    assert completed + failed == flips + 1


def test_parallel_toggles_loses_nothing(workspace, habit):
    items = ["1", "2"] * 10
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda item: toggle_checklist_item(workspace, habit.id, item, DAY), items))

    state = get_day_state(workspace, habit.id, DAY)
    assert [i.completed for i in state.items] == [False, False, False]
    with workspace.db(readonly=True) as conn:
        assert len(fetch_events(conn, DAY, DAY, habit_id=habit.id)) == len(items)
    _assert_rebuild_matches(workspace, habit.id, DAY)
