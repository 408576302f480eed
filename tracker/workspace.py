"""Workspace root and path helpers."""

from __future__ import annotations

import os
from pathlib import Path


def workspace_root() -> Path:
    """Get the workspace root directory (holds config.yaml and tracker.db)."""
    return Path(
        os.environ.get("TRACKER_ROOT", str(Path.home() / "habit-tracker"))
    ).expanduser().resolve()


# ── Path helpers ──────────────────────────────────────────────

def config_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "config.yaml"


def db_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "tracker.db"


def hooks_config_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "hooks.yaml"


def summary_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "summary.json"
