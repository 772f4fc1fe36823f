from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

_PROJECT_ROOT = Path(__file__).resolve().parents[3]
ENV_FILE = _PROJECT_ROOT / ".env"

# Values already present in the environment win over the file.
load_dotenv(ENV_FILE)

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def expand_env_in_str(value: str) -> str:
    """Expand ``${VAR}`` tokens; unset variables expand to nothing."""

    return _ENV_PATTERN.sub(lambda match: os.getenv(match.group(1), ""), value)


def _override(env_key: str) -> Optional[Path]:
    raw = os.getenv(env_key, "").strip()
    if not raw:
        return None
    return Path(expand_env_in_str(raw)).expanduser()


def _config_home() -> Path:
    xdg = os.getenv("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "tangleplay"
    return Path.home() / ".config" / "tangleplay"


def get_user_settings_path() -> Path:
    return _override("TANGLEPLAY_SETTINGS_FILE") or _config_home() / "settings.json"


def _player_temp_path() -> Path:
    return _override("TANGLEPLAY_TEMP_DIR") or Path(tempfile.gettempdir()) / "tangleplay"


def get_player_temp_dir() -> str:
    """Parent of the per-session scratch directories (IPC socket, subtitles)."""

    path = _player_temp_path()
    path.mkdir(parents=True, exist_ok=True)

    return str(path)


def describe_paths() -> Dict[str, str]:
    return {
        "env_file": str(ENV_FILE),
        "player_temp": str(_player_temp_path()),
        "user_settings": str(get_user_settings_path()),
    }


__all__ = [
    "ENV_FILE",
    "describe_paths",
    "expand_env_in_str",
    "get_player_temp_dir",
    "get_user_settings_path",
]
