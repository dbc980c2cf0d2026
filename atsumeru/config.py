"""Global configuration for Atsumeru."""

from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable

DEFAULTS: dict[str, Any] = {
    "app_host": "0.0.0.0",
    "app_port": 8000,
    "log_level": "info",
    "owner_cookie_secure": False,
    "owner_cookie_max_age_days": 365,
    "auto_migrate": True,
}


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    data_dir: Path
    database_url: str
    app_host: str
    app_port: int
    log_level: str
    owner_cookie_secure: bool
    owner_cookie_max_age_days: int
    auto_migrate: bool
    config_path: Path

    @property
    def owner_cookie_max_age(self) -> timedelta:
        return timedelta(days=self.owner_cookie_max_age_days)


def _boolify(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Cannot parse boolean value from {value!r}")


_CASTERS: dict[str, Callable[[Any], Any]] = {
    "app_port": int,
    "owner_cookie_max_age_days": int,
    "owner_cookie_secure": _boolify,
    "auto_migrate": _boolify,
}


def _cast_value(key: str, value: Any) -> Any:
    return _CASTERS.get(key, str)(value)


def _load_toml_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        return tomllib.load(handle)


def _layered_values(toml_config: dict[str, Any]) -> dict[str, Any]:
    """Resolve every key in DEFAULTS, environment first, then the TOML file."""
    values: dict[str, Any] = {}
    for key, default in DEFAULTS.items():
        raw = os.environ.get(f"ATSUMERU_{key.upper()}", toml_config.get(key))
        values[key] = default if raw is None else _cast_value(key, raw)
    return values


def _resolve_paths(
    *,
    base_dir: Path,
    data_dir: str | Path | None,
    database_url: str | None,
) -> tuple[Path, Path, str]:
    resolved_base = Path(base_dir)
    resolved_data = Path(data_dir) if data_dir else resolved_base / "data"
    if not resolved_data.is_absolute():
        resolved_data = resolved_base / resolved_data
    resolved_url = database_url or f"sqlite:///{resolved_data / 'atsumeru.db'}"
    return resolved_base, resolved_data, resolved_url


def load_settings(config_override: Path | None = None) -> Settings:
    base_dir = Path(os.getenv("ATSUMERU_BASE_DIR", Path.cwd()))
    env_config = os.getenv("ATSUMERU_CONFIG")
    config_path = Path(config_override or env_config or base_dir / "atsumeru.toml")
    toml_config = _load_toml_config(config_path)

    base_dir_value, data_dir_value, database_url_value = _resolve_paths(
        base_dir=base_dir,
        data_dir=os.getenv("ATSUMERU_DATA_DIR", toml_config.get("data_dir")),
        database_url=os.getenv("ATSUMERU_DATABASE_URL", toml_config.get("database_url")),
    )

    return Settings(
        base_dir=base_dir_value,
        data_dir=data_dir_value,
        database_url=database_url_value,
        **_layered_values(toml_config),
        config_path=config_path,
    )


def settings_as_dict(settings: Settings) -> dict[str, Any]:
    values = {key: getattr(settings, key) for key in DEFAULTS}
    return {
        "base_dir": str(settings.base_dir),
        "data_dir": str(settings.data_dir),
        "database_url": settings.database_url,
        **values,
    }


def write_config_file(config: dict[str, Any], *, path: Path) -> None:
    # JSON scalars are valid TOML for the bool, int and str values kept here.
    body = "".join(f"{key} = {json.dumps(config[key])}\n" for key in sorted(config))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("# Atsumeru configuration\n" + body, encoding="utf-8")


def update_config_file(updates: dict[str, Any], *, path: Path) -> Settings:
    """Merge known keys into the TOML file at ``path`` and reload settings."""
    existing = _load_toml_config(path)
    merged = {
        **existing,
        **{k: _cast_value(k, v) for k, v in updates.items() if k in DEFAULTS},
    }
    write_config_file(merged, path=path)
    return load_settings(path)
