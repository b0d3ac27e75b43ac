"""Per-user data and config locations, and path containment."""

from __future__ import annotations

import os
import sys
from pathlib import Path

_APP = "waypoint"


def _app_dir(override_env: str, windows_env: str, windows_default: str, xdg_env: str, xdg_default: Path) -> Path:
    override = os.environ.get(override_env)
    if override:
        return Path(override)
    if sys.platform == "win32":
        return Path(os.environ.get(windows_env, Path.home() / "AppData" / windows_default)) / _APP
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / _APP
    return Path(os.environ.get(xdg_env, xdg_default)) / _APP


def get_config_dir() -> Path:
    """``WAYPOINT_CONFIG_DIR``, else the platform's per-user config directory."""
    return _app_dir("WAYPOINT_CONFIG_DIR", "APPDATA", "Roaming", "XDG_CONFIG_HOME", Path.home() / ".config")


def get_data_dir() -> Path:
    """``WAYPOINT_DATA_DIR``, else where checkpoints and task outputs live by default."""
    return _app_dir("WAYPOINT_DATA_DIR", "LOCALAPPDATA", "Local", "XDG_DATA_HOME", Path.home() / ".local" / "share")


def is_within(path: str | Path, root: str | Path) -> bool:
    """True if ``path`` resolves to ``root`` or somewhere below it."""
    resolved = Path(path).expanduser().resolve()
    base = Path(root).expanduser().resolve()
    return resolved == base or base in resolved.parents
