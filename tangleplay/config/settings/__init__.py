"""Runtime settings: environment, the user settings file and filesystem locations."""

from __future__ import annotations

from . import core, paths, store
from .core import DEFAULT_GATEWAY_URL, PERSISTED_KEYS, Settings, get_settings, update_settings
from .paths import describe_paths, get_player_temp_dir, get_user_settings_path
from .store import load_user_settings, write_user_settings

__all__ = [
    "DEFAULT_GATEWAY_URL",
    "PERSISTED_KEYS",
    "Settings",
    "core",
    "describe_paths",
    "get_player_temp_dir",
    "get_settings",
    "get_user_settings_path",
    "load_user_settings",
    "paths",
    "store",
    "update_settings",
    "write_user_settings",
]
