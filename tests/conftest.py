import logging
import os
import time

import pytest

from tangleplay.config.settings import core as settings_core

_ENV_KEYS = (
    "TANGLEPLAY_APP_NAME",
    "TANGLEPLAY_ENV",
    "TANGLEPLAY_LOG_LEVEL",
    "TANGLEPLAY_VERBOSITY",
    "TANGLEPLAY_RENDERER",
    "TANGLEPLAY_GATEWAY_URL",
    "TANGLEPLAY_GATEWAY_USERNAME",
    "TANGLEPLAY_GATEWAY_PASSWORD",
    "TANGLEPLAY_HTTP_TIMEOUT",
    "TANGLEPLAY_TEMP_DIR",
)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Every test gets its own settings file and a clean environment."""

    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    settings_file = tmp_path / "config" / "settings.json"
    monkeypatch.setenv("TANGLEPLAY_SETTINGS_FILE", os.fspath(settings_file))
    settings_core._SETTINGS_SINGLETON = None
    yield settings_file
    settings_core._SETTINGS_SINGLETON = None


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def wait_until(predicate, timeout=3.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
