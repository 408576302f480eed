"""SQLite persistence: schema, connections and transactions.

Write transactions start with ``BEGIN IMMEDIATE`` so check-then-act
sequences (single active session, completion flips) are serialized across
threads and processes; SQLite's busy timeout bounds the wait.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
BUSY_TIMEOUT_SECONDS = 30

SCHEMA = """
CREATE TABLE IF NOT EXISTS habits (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT,
    checklist TEXT NOT NULL,
    required_items INTEGER NOT NULL,
    start_date TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS focus_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    habit_id INTEGER REFERENCES habits(id) ON DELETE SET NULL,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    duration INTEGER NOT NULL DEFAULT 0,
    target_duration INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'active'
        CHECK (status IN ('active', 'completed', 'cancelled')),
    created_at TEXT NOT NULL
);

-- At most one active session system-wide.
CREATE UNIQUE INDEX IF NOT EXISTS idx_focus_sessions_one_active
    ON focus_sessions(status) WHERE status = 'active';
CREATE INDEX IF NOT EXISTS idx_focus_sessions_started ON focus_sessions(started_at);

CREATE TABLE IF NOT EXISTS calendar_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    habit_id INTEGER REFERENCES habits(id) ON DELETE SET NULL,
    title TEXT NOT NULL,
    day TEXT NOT NULL,
    kind TEXT NOT NULL DEFAULT 'habit' CHECK (kind IN ('habit', 'pomodoro')),
    completed INTEGER NOT NULL DEFAULT 0,
    duration INTEGER,
    checklist TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_calendar_events_day ON calendar_events(day);
CREATE INDEX IF NOT EXISTS idx_calendar_events_habit_day
    ON calendar_events(habit_id, day, kind);

CREATE TABLE IF NOT EXISTS habit_statistics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    habit_id INTEGER REFERENCES habits(id) ON DELETE SET NULL,
    day TEXT NOT NULL,
    total_pomodoros INTEGER NOT NULL DEFAULT 0,
    total_duration INTEGER NOT NULL DEFAULT 0,
    completed_habits INTEGER NOT NULL DEFAULT 0,
    failed_habits INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    UNIQUE (habit_id, day)
);

CREATE INDEX IF NOT EXISTS idx_habit_statistics_day ON habit_statistics(day);

CREATE TABLE IF NOT EXISTS day_checklists (
    habit_id INTEGER NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
    day TEXT NOT NULL,
    items TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (habit_id, day)
);

-- Latest known completion verdict per (habit, day); read before each
-- completion delta so repeated toggles only count actual flips.
CREATE TABLE IF NOT EXISTS completion_states (
    habit_id INTEGER NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
    day TEXT NOT NULL,
    completed INTEGER NOT NULL,
    event_id INTEGER,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (habit_id, day)
);
"""


def connect(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(path), timeout=BUSY_TIMEOUT_SECONDS, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_SECONDS * 1000};")
    return conn


@contextmanager
def get_db(path: Path, readonly: bool = False) -> Iterator[sqlite3.Connection]:
    """Open a connection wrapped in one transaction.

    Commits on success, rolls back everything on any exception.
    """
    conn = connect(path)
    try:
        conn.execute("BEGIN" if readonly else "BEGIN IMMEDIATE")
        yield conn
        if conn.in_transaction:
            conn.execute("COMMIT")
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


def init_db(path: Path) -> None:
    """Create the database file and schema if needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = connect(path)
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        conn.executescript(SCHEMA)
        if version < SCHEMA_VERSION:
            conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
            logger.info("Initialized tracker schema v%d at %s", SCHEMA_VERSION, path)
    finally:
        conn.close()


def table_counts(conn: sqlite3.Connection) -> dict[str, int]:
    tables = [
        "habits",
        "focus_sessions",
        "calendar_events",
        "habit_statistics",
        "day_checklists",
        "completion_states",
    ]
    return {
        t: conn.execute(f"SELECT COUNT(*) FROM {t}").fetchone()[0]  # noqa: S608
        for t in tables
    }
