from __future__ import annotations

import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dataclasses import dataclass

from tangleplay.backend.common.errors import ConfigError
from tangleplay.backend.common.logging import get_logger

from .paths import get_user_settings_path
from .store import load_user_settings, write_user_settings

log = get_logger(__name__)

_SETTINGS_LOCK = threading.Lock()
_SETTINGS_SINGLETON: Optional["Settings"] = None

DEFAULT_GATEWAY_URL = "http://localhost:1337/"

# Keys persisted in the user settings file, in the order ``settings show`` prints them.
PERSISTED_KEYS = (
    "log_level",
    "verbosity",
    "renderer_command",
    "gateway_url",
    "gateway_username",
    "gateway_password",
    "http_timeout",
)


@dataclass
class Settings:
    app_name: str
    env: str
    log_level: str
    verbosity: int
    renderer_command: str
    gateway_url: str
    gateway_username: str
    gateway_password: str
    http_timeout: float
    user_settings_path: os.PathLike[str]

    @property
    def has_renderer(self) -> bool:
        return bool(self.renderer_command.strip())

    def as_dict(self) -> Dict[str, Any]:
        return {
            "app_name": self.app_name,
            "env": self.env,
            "log_level": self.log_level,
            "verbosity": self.verbosity,
            "renderer_command": self.renderer_command,
            "gateway_url": self.gateway_url,
            "gateway_username": self.gateway_username,
            "gateway_password": "***" if self.gateway_password else "",
            "http_timeout": self.http_timeout,
            "user_settings_path": str(self.user_settings_path),
        }


def _coerce_int(raw: Any, default: int, *, low: int, high: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, value))


def _coerce_float(raw: Any, default: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _build_settings() -> Settings:
    user_cfg = load_user_settings()
    app_name = os.getenv("TANGLEPLAY_APP_NAME", user_cfg.get("app_name", "Tangleplay"))
    env = os.getenv("TANGLEPLAY_ENV", user_cfg.get("env", "production"))
    log_level = os.getenv("TANGLEPLAY_LOG_LEVEL", user_cfg.get("log_level", "INFO")).upper()

    verbosity = _coerce_int(
        os.getenv("TANGLEPLAY_VERBOSITY") or user_cfg.get("verbosity", 5),
        5,
        low=0,
        high=8,
    )
    renderer_command = os.getenv("TANGLEPLAY_RENDERER", user_cfg.get("renderer_command", "")) or ""

    gateway_url = os.getenv("TANGLEPLAY_GATEWAY_URL", user_cfg.get("gateway_url", DEFAULT_GATEWAY_URL)) or DEFAULT_GATEWAY_URL
    gateway_username = os.getenv("TANGLEPLAY_GATEWAY_USERNAME", user_cfg.get("gateway_username", "")) or ""
    gateway_password = os.getenv("TANGLEPLAY_GATEWAY_PASSWORD", user_cfg.get("gateway_password", "")) or ""

    http_timeout = _coerce_float(os.getenv("TANGLEPLAY_HTTP_TIMEOUT") or user_cfg.get("http_timeout"), 20.0)

    return Settings(
        app_name=app_name,
        env=env,
        log_level=log_level,
        verbosity=verbosity,
        renderer_command=renderer_command.strip(),
        gateway_url=gateway_url,
        gateway_username=gateway_username,
        gateway_password=gateway_password,
        http_timeout=http_timeout,
        user_settings_path=get_user_settings_path(),
    )


def get_settings(*, reload: bool = False) -> Settings:
    global _SETTINGS_SINGLETON
    with _SETTINGS_LOCK:
        if _SETTINGS_SINGLETON is None or reload:
            _SETTINGS_SINGLETON = _build_settings()

        return _SETTINGS_SINGLETON


def update_settings(**changes: Any) -> Settings:
    unknown = sorted(set(changes) - set(PERSISTED_KEYS))
    if unknown:
        raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")

    payload = load_user_settings()
    payload.update(changes)
    payload["updated_at"] = datetime.now(timezone.utc).isoformat()
    write_user_settings(payload)
    log.info("settings_updated", extra={"keys": sorted(changes)})

    return get_settings(reload=True)


__all__ = [
    "DEFAULT_GATEWAY_URL",
    "PERSISTED_KEYS",
    "Settings",
    "get_settings",
    "update_settings",
]
