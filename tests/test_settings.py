import json

import pytest

from tangleplay.backend.common.errors import ConfigError
from tangleplay.config import settings
from tangleplay.config.settings import DEFAULT_GATEWAY_URL, PERSISTED_KEYS
from tangleplay.config.settings.paths import expand_env_in_str


def test_defaults_without_settings_file(isolated_settings):
    cfg = settings.get_settings()

    assert cfg.gateway_url == DEFAULT_GATEWAY_URL
    assert cfg.verbosity == 5
    assert cfg.renderer_command == ""
    assert not cfg.has_renderer
    assert cfg.http_timeout == 20.0
    assert str(cfg.user_settings_path) == str(isolated_settings)


def test_update_persists_and_reloads(isolated_settings):
    updated = settings.update_settings(renderer_command="mpv", verbosity=6)

    assert updated.renderer_command == "mpv"
    assert updated.verbosity == 6
    stored = json.loads(isolated_settings.read_text(encoding="utf-8"))
    assert stored["renderer_command"] == "mpv"
    assert "updated_at" in stored
    assert settings.get_settings() is updated


def test_unknown_key_is_rejected(isolated_settings):
    with pytest.raises(ConfigError):
        settings.update_settings(storage_dir="/tmp")
    assert not isolated_settings.exists()


def test_environment_overrides_settings_file(monkeypatch):
    settings.update_settings(gateway_url="http://stored:1337/")
    monkeypatch.setenv("TANGLEPLAY_GATEWAY_URL", "http://env:1337/")

    assert settings.get_settings(reload=True).gateway_url == "http://env:1337/"


@pytest.mark.parametrize(
    "raw, expected",
    [("loud", 5), ("-3", 0), ("42", 8), ("7", 7)],
)
def test_verbosity_is_clamped(monkeypatch, raw, expected):
    monkeypatch.setenv("TANGLEPLAY_VERBOSITY", raw)

    assert settings.get_settings(reload=True).verbosity == expected


def test_non_positive_timeout_falls_back(monkeypatch):
    monkeypatch.setenv("TANGLEPLAY_HTTP_TIMEOUT", "0")

    assert settings.get_settings(reload=True).http_timeout == 20.0


def test_password_is_masked_in_dict(monkeypatch):
    monkeypatch.setenv("TANGLEPLAY_GATEWAY_PASSWORD", "hunter2")
    cfg = settings.get_settings(reload=True)

    assert cfg.gateway_password == "hunter2"
    assert cfg.as_dict()["gateway_password"] == "***"


def test_corrupt_settings_file_is_ignored(isolated_settings):
    isolated_settings.parent.mkdir(parents=True)
    isolated_settings.write_text("{not json", encoding="utf-8")

    assert settings.get_settings(reload=True).gateway_url == DEFAULT_GATEWAY_URL


def test_persisted_keys_cover_the_gateway_credentials():
    assert {"gateway_url", "gateway_username", "gateway_password"} <= set(PERSISTED_KEYS)


def test_expand_env_in_str(monkeypatch):
    monkeypatch.setenv("TP_HOME", "/srv/tp")

    assert expand_env_in_str("${TP_HOME}/settings.json") == "/srv/tp/settings.json"
    assert expand_env_in_str("${TP_UNSET_VALUE}x") == "x"
