"""Injectable time source.

The engine never reads the wall clock directly: every service takes a
``Clock`` so tests can pin "now" and the calendar day boundary.
"""

from __future__ import annotations

import threading
from datetime import date, datetime, timedelta, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    tz: tzinfo

    def now(self) -> datetime: ...


class SystemClock:
    def __init__(self, tz: tzinfo | None = None):
        self.tz = tz or ZoneInfo("UTC")

    def now(self) -> datetime:
        return datetime.now(self.tz)


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime, tz: tzinfo | None = None):
        self.tz = tz or start.tzinfo or ZoneInfo("UTC")
        if start.tzinfo is None:
            start = start.replace(tzinfo=self.tz)
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, when: datetime) -> None:
        if when.tzinfo is None:
            when = when.replace(tzinfo=self.tz)
        with self._lock:
            self._now = when

    def advance(self, seconds: float = 0, days: int = 0) -> datetime:
        with self._lock:
            self._now = self._now + timedelta(seconds=seconds, days=days)
            return self._now


def day_of(ts: datetime, tz: tzinfo | None = None) -> date:
    """Calendar day of a timestamp in the given (or its own) timezone."""
    if tz is not None and ts.tzinfo is not None:
        ts = ts.astimezone(tz)
    return ts.date()


def parse_day(value: date | datetime | str) -> date:
    """Normalize a date-ish value to a calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts is not None else None


def parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def day_range(start: date, end: date) -> list[date]:
    """Inclusive list of days from start to end."""
    if end < start:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]
