"""Tests for tracker/timer.py — background ticking."""

import time

from tracker.focus import SessionManager
from tracker.timer import FocusTimer


def _wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def test_tick_records_progress(manager, clock):
    timer = FocusTimer(manager, tick_seconds=60)
    session = manager.start(target_minutes=25)
    clock.advance(seconds=42)
    ticked = timer.tick(session.id)
    assert ticked.is_active
    assert manager.get_session(session.id).duration == 42
    timer.shutdown()


def test_tick_completes_when_due(workspace, manager, habit, clock):
    timer = FocusTimer(manager, tick_seconds=60)
    session = manager.start(habit_id=habit.id, target_minutes=5)
    clock.advance(seconds=299)
    assert timer.tick(session.id) is not None
    clock.advance(seconds=1)
    assert timer.tick(session.id) is None
    done = manager.get_session(session.id)
    assert done.status == "completed"
    assert done.duration == 300
    assert not timer.is_scheduled(session.id)


def test_late_tick_is_noop(manager, clock):
    timer = FocusTimer(manager, tick_seconds=60)
    session = manager.start(target_minutes=25)
    manager.cancel(session.id)
    clock.advance(seconds=2000)
    assert timer.tick(session.id) is None
    assert manager.get_session(session.id).status == "cancelled"
    assert timer.tick(99999) is None


def test_cancel_stops_timer(manager):
    timer = FocusTimer(manager, tick_seconds=60)
    session = manager.start(target_minutes=25)
    assert timer.is_scheduled(session.id)
    manager.cancel(session.id)
    assert not timer.is_scheduled(session.id)


def test_background_timer_completes_session(manager, clock):
    FocusTimer(manager, tick_seconds=0.02)
    session = manager.start(target_minutes=5)
    clock.advance(seconds=300)
    try:
        assert _wait_for(lambda: manager.get_session(session.id).status == "completed")
        assert manager.get_session(session.id).duration == 300
        assert not manager.timer.is_scheduled(session.id)
    finally:
        manager.timer.shutdown()


def test_shutdown(manager):
    timer = FocusTimer(manager, tick_seconds=60)
    session = manager.start(target_minutes=25)
    timer.shutdown()
    assert not timer.is_scheduled(session.id)


def test_resume_picks_up_session_from_previous_process(workspace, manager, clock):
    FocusTimer(manager, tick_seconds=60)
    session = manager.start(target_minutes=5)
    manager.timer.shutdown()

    restarted = SessionManager(workspace)
    timer = FocusTimer(restarted, tick_seconds=0.02)
    assert timer.resume().id == session.id
    assert timer.is_scheduled(session.id)
    clock.advance(seconds=600)
    try:
        assert _wait_for(lambda: restarted.get_session(session.id).status == "completed")
        assert restarted.start(target_minutes=5).is_active
    finally:
        timer.shutdown()


def test_resume_without_active_session(manager):
    timer = FocusTimer(manager, tick_seconds=60)
    assert timer.resume() is None
