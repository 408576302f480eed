"""Shared test fixtures for tracker tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml

from tracker.clock import FixedClock
from tracker.context import Workspace, open_workspace
from tracker.focus import SessionManager
from tracker.habits import create_habit


START = datetime(2026, 2, 11, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture
def workspace(tmp_path: Path, clock: FixedClock, monkeypatch: pytest.MonkeyPatch) -> Workspace:
    """Create a temporary workspace with config.yaml and a fresh database."""
    root = tmp_path / "workspace"
    root.mkdir(parents=True)

    config = {
        "timezone": "UTC",
        "progress_persist_seconds": 10,
        "timer_tick_seconds": 0.05,
        "default_target_minutes": 25,
        "log_level": "DEBUG",
    }
    (root / "config.yaml").write_text(
        yaml.dump(config, default_flow_style=False), encoding="utf-8"
    )

    monkeypatch.setenv("TRACKER_ROOT", str(root))
    return open_workspace(root, clock=clock)


@pytest.fixture
def manager(workspace: Workspace) -> SessionManager:
    return SessionManager(workspace)


@pytest.fixture
def habit(workspace: Workspace):
    """Three-item habit needing two items, started a week before the clock."""
    return create_habit(
        workspace,
        name="Morning routine",
        checklist=[{"id": "1", "label": "Stretch"}, {"id": "2", "label": "Read"}, {"id": "3", "label": "Journal"}],
        required_items=2,
        start_date="2026-02-04",
    )
