"""Habit & focus tracker engine.

Public API re-exports for convenient imports:
    from tracker import open_workspace, SessionManager, toggle_checklist_item, ...
"""

# Workspace & configuration
from tracker.workspace import (
    workspace_root,
    config_path,
    db_path,
    hooks_config_path,
    summary_path,
)
from tracker.config import Settings, load_settings, ensure_config
from tracker.context import Workspace, open_workspace
from tracker.clock import Clock, SystemClock, FixedClock, day_of, parse_day
from tracker.logs import setup_logging

# Errors
from tracker.errors import (
    TrackerError,
    InvalidDuration,
    InvalidDelta,
    InvalidHabit,
    SessionAlreadyActive,
    SessionNotFound,
    SessionNotActive,
    HabitNotFound,
    ItemNotFound,
)

# Habits & checklists
from tracker.habits import (
    create_habit,
    get_habit,
    list_habits,
    update_habit,
    delete_habit,
    get_day_state,
)
from tracker.checklist import evaluate, toggle_item, reset
from tracker.checkin import toggle_checklist_item, reset_checklist, mark_day

# Events & statistics
from tracker.stats import (
    append_habit_event,
    append_pomodoro_event,
    upsert_daily_stats,
    query_range,
    query_month,
    query_day,
    daily_summaries,
    rebuild_statistics,
)

# Focus sessions
from tracker.focus import SessionManager
from tracker.timer import FocusTimer

# Streaks & analytics
from tracker.streaks import StreakCalculator
from tracker.analytics import (
    overall_stats,
    habit_stats,
    pomodoro_stats,
    refresh_summary,
    load_summary,
)
from tracker.hooks import run_hooks

# Models
from tracker.models import (
    ChecklistItem,
    Habit,
    DayChecklistState,
    ChecklistResult,
    FocusSession,
    CalendarEvent,
    StatsDelta,
    HabitStatistics,
    RangeResult,
    HabitDayStatus,
    WeekEntry,
    ProgressEntry,
)
