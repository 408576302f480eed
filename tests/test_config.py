"""Tests for configuration, workspace setup, logging and the DB layer."""

import logging
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest
import yaml

from tracker.clock import FixedClock, day_of, parse_day
from tracker.config import Settings, ensure_config, load_settings
from tracker.context import open_workspace
from tracker.db import get_db, table_counts
from tracker.logs import setup_logging


def test_settings_defaults():
    s = Settings.from_dict({})
    assert s.timezone == "UTC"
    assert s.progress_persist_seconds == 10
    assert s.timer_tick_seconds == 1.0
    assert s.default_target_minutes == 25
    assert s.log_level == "INFO"


def test_settings_malformed_values_fall_back():
    s = Settings.from_dict({
        "progress_persist_seconds": "soon",
        "default_target_minutes": 500,
        "log_level": "debug",
        "unknown": True,
    })
    assert s.progress_persist_seconds == 10
    assert s.default_target_minutes == 25
    assert s.log_level == "DEBUG"


def test_unknown_timezone_falls_back_to_utc():
    assert str(Settings(timezone="Mars/Olympus").tzinfo()) == "UTC"
    assert str(Settings(timezone="Europe/Berlin").tzinfo()) == "Europe/Berlin"


def test_ensure_config_and_env_override(tmp_path, monkeypatch):
    path = ensure_config(tmp_path)
    assert yaml.safe_load(path.read_text(encoding="utf-8"))["timezone"] == "UTC"
    monkeypatch.setenv("TRACKER_LOG_LEVEL", "warning")
    assert load_settings(tmp_path).log_level == "WARNING"


def test_open_workspace_creates_db(tmp_path):
    root = tmp_path / "fresh"
    clock = FixedClock(datetime(2026, 3, 1, 23, 30, tzinfo=timezone.utc))
    ws = open_workspace(root, clock=clock)
    assert (root / "config.yaml").exists()
    assert ws.db_path.exists()
    assert ws.today().isoformat() == "2026-03-01"
    with ws.db(readonly=True) as conn:
        assert table_counts(conn)["habits"] == 0


def test_workspace_root_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("TRACKER_ROOT", str(tmp_path / "env-root"))
    ws = open_workspace()
    assert ws.root == (tmp_path / "env-root").resolve()


def test_get_db_rolls_back_on_error(workspace):
    with pytest.raises(RuntimeError):
        with get_db(workspace.db_path) as conn:
            conn.execute(
                "INSERT INTO habits (name, checklist, required_items, start_date, created_at, updated_at) "
                "VALUES ('x', '[]', 1, '2026-02-11', 'now', 'now')"
            )
            raise RuntimeError("boom")
    with workspace.db(readonly=True) as conn:
        assert table_counts(conn)["habits"] == 0


def test_day_helpers():
    ts = datetime(2026, 2, 11, 23, 30, tzinfo=timezone.utc)
    assert day_of(ts).isoformat() == "2026-02-11"
    assert day_of(ts, ZoneInfo("Asia/Tokyo")).isoformat() == "2026-02-12"
    assert parse_day("2026-02-11T08:00:00").isoformat() == "2026-02-11"


def test_setup_logging_does_not_stack(tmp_path):
    log_file = tmp_path / "logs" / "tracker.log"
    root = setup_logging("DEBUG", log_file)
    setup_logging("DEBUG", log_file)
    ours = [h for h in root.handlers if getattr(h, "_tracker_handler", False)]
    assert len(ours) == 2
    logging.getLogger("tracker.test").info("hello")
    for h in ours:
        h.flush()
    assert "hello" in log_file.read_text(encoding="utf-8")
    for h in ours:
        root.removeHandler(h)
        h.close()
