"""Schema management via Alembic."""

from __future__ import annotations

import shutil
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect
from sqlalchemy.engine import Engine


def _alembic_config(engine: Engine) -> Config:
    package_dir = Path(__file__).resolve().parent
    script_location = package_dir / "alembic"

    config = Config()
    config.set_main_option("script_location", str(script_location))
    config.set_main_option(
        "sqlalchemy.url", engine.url.render_as_string(hide_password=False)
    )
    return config


def _sqlite_file(engine: Engine) -> Path | None:
    if engine.dialect.name != "sqlite":
        return None
    database = engine.url.database
    if not database or database == ":memory:":
        return None
    return Path(database)


def upgrade_database(engine: Engine, *, make_backup: bool = True) -> list[str]:
    """Upgrade the database schema in-place.

    Returns a list of applied actions.
    """
    actions: list[str] = []
    db_path = _sqlite_file(engine)

    if make_backup and db_path is not None and db_path.exists():
        backup_path = db_path.with_suffix(db_path.suffix + ".bak")
        shutil.copy(db_path, backup_path)
        actions.append(f"Backup created at {backup_path}")

    inspector = inspect(engine)
    has_alembic = inspector.has_table("alembic_version")
    has_events = inspector.has_table("events")
    config = _alembic_config(engine)

    with engine.begin() as connection:
        config.attributes["connection"] = connection
        if not has_alembic and not has_events:
            command.upgrade(config, "head")
            actions.append("Ran Alembic upgrade to head (fresh database)")
        elif not has_alembic:
            # Tables created outside Alembic: baseline them.
            command.stamp(config, "head")
            actions.append("Stamped existing database to Alembic head")
        else:
            command.upgrade(config, "head")
            actions.append("Applied Alembic migrations to head")

    return actions
