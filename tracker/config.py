"""Workspace settings loaded from config.yaml.

Unknown keys are ignored; missing or malformed keys use defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tracker.fileio import read_yaml, write_yaml_atomic
from tracker.workspace import config_path, workspace_root

logger = logging.getLogger(__name__)

MIN_TARGET_MINUTES = 5
MAX_TARGET_MINUTES = 240


def _int(value: Any, default: int, minimum: int = 0) -> int:
    try:
        return max(minimum, int(value))
    except (TypeError, ValueError):
        return default


def _float(value: Any, default: float, minimum: float = 0.0) -> float:
    try:
        return max(minimum, float(value))
    except (TypeError, ValueError):
        return default


@dataclass
class Settings:
    timezone: str = "UTC"
    progress_persist_seconds: int = 10
    timer_tick_seconds: float = 1.0
    default_target_minutes: int = 25
    log_level: str = "INFO"
    log_file: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Settings:
        if not d or not isinstance(d, dict):
            return cls()
        target = _int(d.get("default_target_minutes"), 25)
        if not MIN_TARGET_MINUTES <= target <= MAX_TARGET_MINUTES:
            target = 25
        return cls(
            timezone=str(d.get("timezone", "UTC") or "UTC"),
            progress_persist_seconds=_int(d.get("progress_persist_seconds"), 10),
            timer_tick_seconds=_float(d.get("timer_tick_seconds"), 1.0, minimum=0.01),
            default_target_minutes=target,
            log_level=str(d.get("log_level", "INFO") or "INFO").upper(),
            log_file=d.get("log_file") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "timezone": self.timezone,
            "progress_persist_seconds": self.progress_persist_seconds,
            "timer_tick_seconds": self.timer_tick_seconds,
            "default_target_minutes": self.default_target_minutes,
            "log_level": self.log_level,
        }
        if self.log_file:
            d["log_file"] = self.log_file
        return d

    def tzinfo(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, falling back to UTC", self.timezone)
            return ZoneInfo("UTC")


def load_settings(root: Path | None = None) -> Settings:
    """Load config.yaml; TRACKER_LOG_LEVEL overrides the configured level."""
    if root is None:
        root = workspace_root()
    settings = Settings.from_dict(read_yaml(config_path(root)))
    env_level = os.environ.get("TRACKER_LOG_LEVEL", "").strip()
    if env_level:
        settings.log_level = env_level.upper()
    return settings


def ensure_config(root: Path | None = None) -> Path:
    """Write a default config.yaml if the workspace has none."""
    if root is None:
        root = workspace_root()
    path = config_path(root)
    if not path.exists():
        write_yaml_atomic(path, Settings().to_dict())
    return path
