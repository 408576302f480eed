"""Streaks and completion windows derived from the calendar event log.

A day counts as complete when every habit applicable that day (started on or
before it) has a latest habit event marked completed. A habit with no event
for the day counts as incomplete. Everything here is read-only.
"""

from __future__ import annotations

from datetime import date, timedelta

from tracker.clock import day_range
from tracker.context import Workspace
from tracker.events import latest_habit_events
from tracker.habits import fetch_habits, require_habit
from tracker.models import (
    DAY_COMPLETE,
    DAY_INCOMPLETE,
    DAY_NONE,
    CalendarEvent,
    Habit,
    ProgressEntry,
    WeekEntry,
)


class StreakCalculator:
    def __init__(self, ws: Workspace):
        self.ws = ws

    def _yesterday(self) -> date:
        return self.ws.today() - timedelta(days=1)

    def _load(self, start: date, end: date) -> tuple[list[Habit], dict[tuple[int, date], CalendarEvent]]:
        with self.ws.db(readonly=True) as conn:
            return fetch_habits(conn), latest_habit_events(conn, start, end)

    @staticmethod
    def _day_complete(
        day: date,
        habits: list[Habit],
        latest: dict[tuple[int, date], CalendarEvent],
    ) -> bool | None:
        """None when no habit applies on the day."""
        applicable = [h for h in habits if h.applies_on(day)]
        if not applicable:
            return None
        for habit in applicable:
            event = latest.get((habit.id, day))
            if event is None or not event.completed:
                return False
        return True

    def current_streak(self, reference_day: date | None = None) -> int:
        """Consecutive complete days ending at reference_day (default yesterday)."""
        end = reference_day or self._yesterday()
        with self.ws.db(readonly=True) as conn:
            habits = fetch_habits(conn)
            if not habits:
                return 0
            first = min(h.start_date for h in habits)
            if first > end:
                return 0
            latest = latest_habit_events(conn, first, end)

        streak = 0
        day = end
        while day >= first:
            if not self._day_complete(day, habits, latest):
                break
            streak += 1
            day -= timedelta(days=1)
        return streak

    def longest_streak(self, start: date | None = None, end: date | None = None) -> int:
        end = end or self._yesterday()
        with self.ws.db(readonly=True) as conn:
            habits = fetch_habits(conn)
            if not habits:
                return 0
            start = start or min(h.start_date for h in habits)
            latest = latest_habit_events(conn, start, end)

        best = run = 0
        for day in day_range(start, end):
            if self._day_complete(day, habits, latest):
                run += 1
                best = max(best, run)
            else:
                run = 0
        return best

    def weekly_window(self, reference_day: date | None, habit_id: int) -> list[WeekEntry]:
        """Seven entries, oldest first, ending at reference_day inclusive."""
        end = reference_day or self.ws.today()
        start = end - timedelta(days=6)
        with self.ws.db(readonly=True) as conn:
            require_habit(conn, habit_id)
            latest = latest_habit_events(conn, start, end, habit_id=habit_id)

        window = []
        for day in day_range(start, end):
            event = latest.get((habit_id, day))
            if event is None:
                status = DAY_NONE
            else:
                status = DAY_COMPLETE if event.completed else DAY_INCOMPLETE
            window.append(WeekEntry(day=day, status=status))
        return window

    def progress_window(self, reference_day: date | None = None, days: int = 7) -> list[ProgressEntry]:
        """Per day: applicable habits and how many of them were completed."""
        end = reference_day or self.ws.today()
        start = end - timedelta(days=max(1, days) - 1)
        habits, latest = self._load(start, end)

        out = []
        for day in day_range(start, end):
            applicable = [h for h in habits if h.applies_on(day)]
            events = [latest.get((h.id, day)) for h in applicable]
            completed = sum(1 for e in events if e is not None and e.completed)
            out.append(ProgressEntry(day=day, completed=completed, total=len(applicable)))
        return out
