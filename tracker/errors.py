"""Error taxonomy for the tracker engine.

Every error is a recoverable ``ValueError`` subclass carrying a stable
``code`` and the HTTP status the route layer answers with.
"""

from __future__ import annotations


class TrackerError(ValueError):
    code = "tracker_error"
    status = 400


class InvalidDuration(TrackerError):
    code = "invalid_duration"
    status = 400


class InvalidHabit(TrackerError):
    code = "invalid_habit"
    status = 400


class SessionAlreadyActive(TrackerError):
    code = "session_already_active"
    status = 409

    def __init__(self, active_id: int | None = None):
        self.active_id = active_id
        note = f" (session {active_id})" if active_id is not None else ""
        super().__init__(f"A focus session is already active{note}. Stop it first.")


class SessionNotFound(TrackerError):
    code = "session_not_found"
    status = 404

    def __init__(self, session_id: int):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class SessionNotActive(TrackerError):
    code = "session_not_active"
    status = 409

    def __init__(self, session_id: int, status: str = ""):
        self.session_id = session_id
        self.session_status = status
        note = f" ({status})" if status else ""
        super().__init__(f"Session {session_id} is not active{note}")


class HabitNotFound(TrackerError):
    code = "habit_not_found"
    status = 404

    def __init__(self, habit_id: int):
        self.habit_id = habit_id
        super().__init__(f"Habit not found: {habit_id}")


class ItemNotFound(TrackerError):
    code = "item_not_found"
    status = 404

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Checklist item not found: {item_id}")


class InvalidDelta(TrackerError):
    code = "invalid_delta"
    status = 400
