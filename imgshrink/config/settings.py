"""Settings storage for application configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SETTINGS_PATH = Path(
    os.environ.get(
        "IMGSHRINK_SETTINGS_PATH",
        Path.home() / ".config" / "imgshrink" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_COMPRESSION_LEVEL = 9
DEFAULT_LOG_FILE_NAME = "imgshrink.log"

DEFAULT_SETTINGS: dict[str, Any] = {
    "compression_level": DEFAULT_COMPRESSION_LEVEL,
    "zero_fill_enabled": True,
    "log_file_name": DEFAULT_LOG_FILE_NAME,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings() -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    if not SETTINGS_PATH.exists():
        return
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def get_bool(key: str, default: bool = False) -> bool:
    return bool(get_setting(key, default))


def get_int(key: str, default: int = 0) -> int:
    """Read an integer setting, falling back to ``default`` on bad values."""
    try:
        return int(get_setting(key, default))
    except (TypeError, ValueError):
        return default


load_settings()
