"""Typed dataclasses for the tracker data model.

All models use from_dict/to_dict for JSON serialization and from_row for
SQLite rows. camelCase in JSON is mapped to snake_case in Python.
Unknown keys are ignored; missing keys use defaults.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from tracker.clock import iso, parse_day, parse_ts


# ── Enumerations ──────────────────────────────────────────────

ACTIVE = "active"
COMPLETED = "completed"
CANCELLED = "cancelled"
SESSION_STATUSES = {ACTIVE, COMPLETED, CANCELLED}

HABIT_EVENT = "habit"
POMODORO_EVENT = "pomodoro"

DAY_COMPLETE = "complete"
DAY_INCOMPLETE = "incomplete"
DAY_NONE = "none"


# ── Habit template ────────────────────────────────────────────


@dataclass(frozen=True)
class ChecklistItem:
    id: str
    label: str = ""
    completed: bool = False

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ChecklistItem:
        return cls(
            id=str(d.get("id", "")),
            label=str(d.get("label", d.get("text", ""))),
            completed=bool(d.get("completed", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label, "completed": self.completed}


def items_from_json(raw: str | None) -> tuple[ChecklistItem, ...]:
    if not raw:
        return ()
    data = json.loads(raw)
    return tuple(ChecklistItem.from_dict(i) for i in data if isinstance(i, dict))


def items_to_json(items: tuple[ChecklistItem, ...] | list[ChecklistItem]) -> str:
    return json.dumps([i.to_dict() for i in items], ensure_ascii=False)


@dataclass(frozen=True)
class Habit:
    id: int
    name: str
    checklist: tuple[ChecklistItem, ...]
    required_items: int
    start_date: date
    description: str = ""
    created_at: str = ""
    updated_at: str = ""

    def applies_on(self, day: date) -> bool:
        """A habit does not apply before its start date."""
        return self.start_date <= day

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Habit:
        return cls(
            id=int(row["id"]),
            name=row["name"],
            description=row["description"] or "",
            checklist=items_from_json(row["checklist"]),
            required_items=int(row["required_items"]),
            start_date=parse_day(row["start_date"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "checklist": [i.to_dict() for i in self.checklist],
            "requiredItems": self.required_items,
            "startDate": self.start_date.isoformat(),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


# ── Per-day checklist ─────────────────────────────────────────


@dataclass(frozen=True)
class DayChecklistState:
    """One habit's checklist for one calendar day, separate from the template."""

    habit_id: int
    day: date
    items: tuple[ChecklistItem, ...] = ()
    updated_at: str = ""

    @property
    def completed_count(self) -> int:
        return sum(1 for i in self.items if i.completed)

    def find(self, item_id: str) -> ChecklistItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> DayChecklistState:
        return cls(
            habit_id=int(row["habit_id"]),
            day=parse_day(row["day"]),
            items=items_from_json(row["items"]),
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "habitId": self.habit_id,
            "day": self.day.isoformat(),
            "items": [i.to_dict() for i in self.items],
            "completedCount": self.completed_count,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class ChecklistResult:
    state: DayChecklistState
    completed_count: int
    is_complete: bool

    def to_dict(self) -> dict[str, Any]:
        d = self.state.to_dict()
        d["completedCount"] = self.completed_count
        d["isComplete"] = self.is_complete
        return d


# ── Focus session ─────────────────────────────────────────────


@dataclass
class FocusSession:
    id: int
    start: datetime
    target_duration: int
    habit_id: int | None = None
    end: datetime | None = None
    duration: int = 0
    status: str = ACTIVE
    created_at: str = ""

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE

    def elapsed_seconds(self, now: datetime) -> int:
        """Wall-clock seconds since start, floored."""
        return max(0, int((now - self.start).total_seconds()))

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> FocusSession:
        return cls(
            id=int(row["id"]),
            habit_id=row["habit_id"],
            start=parse_ts(row["started_at"]),
            end=parse_ts(row["ended_at"]),
            duration=int(row["duration"] or 0),
            target_duration=int(row["target_duration"]),
            status=row["status"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "habitId": self.habit_id,
            "start": iso(self.start),
            "end": iso(self.end),
            "duration": self.duration,
            "targetDuration": self.target_duration,
            "status": self.status,
            "createdAt": self.created_at,
        }


# ── Calendar events ───────────────────────────────────────────


@dataclass(frozen=True)
class CalendarEvent:
    id: int
    day: date
    kind: str
    habit_id: int | None = None
    title: str = ""
    completed: bool = False
    duration: int | None = None
    checklist: tuple[ChecklistItem, ...] | None = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> CalendarEvent:
        checklist = row["checklist"]
        return cls(
            id=int(row["id"]),
            habit_id=row["habit_id"],
            title=row["title"],
            day=parse_day(row["day"]),
            kind=row["kind"],
            completed=bool(row["completed"]),
            duration=row["duration"],
            checklist=items_from_json(checklist) if checklist else None,
            created_at=row["created_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "habitId": self.habit_id,
            "title": self.title,
            "date": self.day.isoformat(),
            "type": self.kind,
            "completed": self.completed,
            "duration": self.duration,
            "createdAt": self.created_at,
        }
        if self.checklist is not None:
            d["checklist"] = [i.to_dict() for i in self.checklist]
        return d


# ── Statistics ────────────────────────────────────────────────


@dataclass(frozen=True)
class StatsDelta:
    """An additive change to one (habit, day) statistics row."""

    total_pomodoros: int = 0
    total_duration: int = 0
    completed_habits: int = 0
    failed_habits: int = 0

    @classmethod
    def completed(cls) -> StatsDelta:
        return cls(completed_habits=1)

    @classmethod
    def failed(cls) -> StatsDelta:
        return cls(failed_habits=1)

    @classmethod
    def pomodoro(cls, duration_seconds: int) -> StatsDelta:
        return cls(total_pomodoros=1, total_duration=int(duration_seconds))

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> StatsDelta:
        return cls(
            total_pomodoros=int(d.get("totalPomodoros", d.get("total_pomodoros", 0)) or 0),
            total_duration=int(d.get("totalDuration", d.get("total_duration", 0)) or 0),
            completed_habits=int(d.get("completedHabits", d.get("completed_habits", 0)) or 0),
            failed_habits=int(d.get("failedHabits", d.get("failed_habits", 0)) or 0),
        )


@dataclass
class HabitStatistics:
    habit_id: int | None
    day: date
    total_pomodoros: int = 0
    total_duration: int = 0
    completed_habits: int = 0
    failed_habits: int = 0
    id: int | None = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> HabitStatistics:
        return cls(
            id=int(row["id"]),
            habit_id=row["habit_id"],
            day=parse_day(row["day"]),
            total_pomodoros=int(row["total_pomodoros"]),
            total_duration=int(row["total_duration"]),
            completed_habits=int(row["completed_habits"]),
            failed_habits=int(row["failed_habits"]),
            created_at=row["created_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "habitId": self.habit_id,
            "date": self.day.isoformat(),
            "totalPomodoros": self.total_pomodoros,
            "totalDuration": self.total_duration,
            "completedHabits": self.completed_habits,
            "failedHabits": self.failed_habits,
        }


# ── Read-side views ───────────────────────────────────────────


@dataclass
class RangeResult:
    start: date
    end: date
    events_by_date: dict[str, list[CalendarEvent]] = field(default_factory=dict)
    stats_by_date: dict[str, list[HabitStatistics]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "startDate": self.start.isoformat(),
            "endDate": self.end.isoformat(),
            "eventsByDate": {
                k: [e.to_dict() for e in v] for k, v in self.events_by_date.items()
            },
            "statsByDate": {
                k: [s.to_dict() for s in v] for k, v in self.stats_by_date.items()
            },
        }


@dataclass
class HabitDayStatus:
    habit_id: int
    name: str
    completed: bool = False
    status: str = DAY_NONE
    applicable: bool = True
    checklist: list[ChecklistItem] = field(default_factory=list)
    completed_count: int = 0
    required_items: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.habit_id,
            "name": self.name,
            "completed": self.completed,
            "status": self.status,
            "applicable": self.applicable,
            "checklist": [i.to_dict() for i in self.checklist],
            "completedCount": self.completed_count,
            "requiredItems": self.required_items,
        }


@dataclass
class WeekEntry:
    day: date
    status: str = DAY_NONE

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.day.isoformat(), "status": self.status}


@dataclass
class ProgressEntry:
    day: date
    completed: int = 0
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.day.isoformat(), "completed": self.completed, "total": self.total}
