"""The opened workspace handed to every engine service."""

from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from tracker.clock import Clock, SystemClock
from tracker.config import Settings, ensure_config, load_settings
from tracker.db import get_db, init_db
from tracker.workspace import db_path, workspace_root


@dataclass
class Workspace:
    root: Path
    settings: Settings
    clock: Clock

    @property
    def db_path(self) -> Path:
        return db_path(self.root)

    def db(self, readonly: bool = False) -> AbstractContextManager[sqlite3.Connection]:
        return get_db(self.db_path, readonly=readonly)

    def today(self) -> date:
        return self.clock.now().date()


def open_workspace(
    root: Path | None = None,
    clock: Clock | None = None,
    settings: Settings | None = None,
) -> Workspace:
    """Resolve the workspace, write default config if missing, init the DB."""
    if root is None:
        root = workspace_root()
    root.mkdir(parents=True, exist_ok=True)
    ensure_config(root)
    if settings is None:
        settings = load_settings(root)
    if clock is None:
        clock = SystemClock(settings.tzinfo())
    init_db(db_path(root))
    return Workspace(root=root, settings=settings, clock=clock)
