from __future__ import annotations

import pytest

from atsumeru.config import load_settings, settings_as_dict, update_config_file


def test_defaults_point_at_sqlite_in_data_dir(isolated_env):
    settings = load_settings()
    assert settings.app_port == 8000
    assert settings.owner_cookie_max_age_days == 365
    assert settings.owner_cookie_max_age.days == 365
    assert settings.auto_migrate is True
    assert settings.data_dir == isolated_env / "data"
    assert settings.database_url == f"sqlite:///{isolated_env / 'data' / 'atsumeru.db'}"


def test_toml_then_env_layering(isolated_env, monkeypatch):
    config_path = isolated_env / "atsumeru.toml"
    config_path.write_text(
        'app_port = 9000\nowner_cookie_secure = "yes"\n'
        'database_url = "postgresql://db/atsumeru"\n',
        encoding="utf-8",
    )
    settings = load_settings()
    assert settings.app_port == 9000
    assert settings.owner_cookie_secure is True
    assert settings.database_url == "postgresql://db/atsumeru"

    monkeypatch.setenv("ATSUMERU_APP_PORT", "9100")
    monkeypatch.setenv("ATSUMERU_OWNER_COOKIE_SECURE", "off")
    settings = load_settings()
    assert settings.app_port == 9100
    assert settings.owner_cookie_secure is False


def test_invalid_boolean_raises(isolated_env, monkeypatch):
    monkeypatch.setenv("ATSUMERU_OWNER_COOKIE_SECURE", "maybe")
    with pytest.raises(ValueError):
        load_settings()


def test_update_config_file_keeps_known_keys(isolated_env):
    path = isolated_env / "conf" / "atsumeru.toml"
    settings = update_config_file(
        {"app_port": "8123", "log_level": "debug", "unknown": 1}, path=path
    )
    text = path.read_text(encoding="utf-8")
    assert "app_port = 8123" in text
    assert "unknown" not in text
    assert settings.app_port == 8123
    assert settings_as_dict(settings)["log_level"] == "debug"


def test_config_file_round_trips_quoted_strings(isolated_env):
    path = isolated_env / "atsumeru.toml"
    update_config_file({"app_host": 'local "dev" host', "auto_migrate": "off"}, path=path)
    settings = update_config_file({"app_port": 8200}, path=path)
    assert settings.app_host == 'local "dev" host'
    assert settings.auto_migrate is False
    assert settings.app_port == 8200
