from __future__ import annotations

import json

from typer.testing import CliRunner

from atsumeru.cli import app
from atsumeru.config import load_settings

runner = CliRunner()


def test_config_updates_file_and_shows_effective_values(isolated_env):
    result = runner.invoke(app, ["config", "--port", "9100", "--cookie-secure", "--show"])
    assert result.exit_code == 0, result.output
    assert "Updated configuration" in result.output

    settings = load_settings()
    assert settings.app_port == 9100
    assert settings.owner_cookie_secure is True

    shown = runner.invoke(app, ["config"])
    assert shown.exit_code == 0
    effective = json.loads(shown.output)
    assert effective["app_port"] == 9100
    assert effective["config_path"] == str(isolated_env / "atsumeru.toml")


def test_upgrade_db_creates_database(isolated_env):
    result = runner.invoke(app, ["upgrade-db"])
    assert result.exit_code == 0, result.output
    assert "fresh database" in result.output
    assert (isolated_env / "data" / "atsumeru.db").exists()

    again = runner.invoke(app, ["upgrade-db"])
    assert again.exit_code == 0, again.output
    assert "Backup created" in again.output
