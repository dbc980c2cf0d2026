"""Typer CLI for Atsumeru."""

from __future__ import annotations

import json
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .config import load_settings, settings_as_dict, update_config_file
from .database import build_engine
from .storage import upgrade_database

app = typer.Typer(help="Atsumeru command-line interface")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of a SQLite database before upgrading",
    ),
) -> None:
    """Upgrade the database schema if needed."""
    settings = load_settings()
    engine = build_engine(settings.database_url)
    try:
        actions = upgrade_database(engine, make_backup=not no_backup)
    except OperationalError as exc:
        message = str(getattr(exc, "orig", exc)).lower()
        if "readonly" in message or "read-only" in message:
            typer.secho(
                "Unable to upgrade because the database is read-only. "
                f"Ensure write access to {settings.database_url}.",
                err=True,
                fg=typer.colors.RED,
            )
            raise typer.Exit(code=1)
        raise
    finally:
        engine.dispose()

    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("runserver")
def runserver(
    host: str | None = typer.Option(None, "--host", help="Host to bind"),
    port: int | None = typer.Option(None, "--port", help="Port to bind"),
):
    """Start the API server."""
    settings = load_settings()
    host = host or settings.app_host
    port = port or settings.app_port
    config = uvicorn.Config(
        "atsumeru.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=False,
        log_level=settings.log_level,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    typer.echo(f"Starting Atsumeru on {host}:{port}")
    server.run()


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    log_level: str | None = typer.Option(
        None, "--log-level", help="uvicorn log level (debug, info, warning, ...)"
    ),
    cookie_secure: bool | None = typer.Option(
        None,
        "--cookie-secure/--no-cookie-secure",
        help="Mark the owner-token cookie Secure (HTTPS only)",
    ),
    cookie_max_age_days: int | None = typer.Option(
        None,
        "--cookie-max-age-days",
        min=1,
        help="Lifetime of the owner-token cookie in days",
    ),
    auto_migrate: bool | None = typer.Option(
        None,
        "--auto-migrate/--no-auto-migrate",
        help="Run migrations when the server starts",
    ),
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Path to atsumeru.toml (default: ./atsumeru.toml)"
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "app_host": host,
        "app_port": port,
        "log_level": log_level,
        "owner_cookie_secure": cookie_secure,
        "owner_cookie_max_age_days": cookie_max_age_days,
        "auto_migrate": auto_migrate,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}

    current = load_settings(config_path)
    target_path = config_path or current.config_path
    if clean_updates:
        current = update_config_file(clean_updates, path=target_path)
        typer.echo(f"Updated configuration in {target_path}")
    if show or not clean_updates:
        effective = settings_as_dict(current)
        effective["config_path"] = str(target_path)
        typer.echo(json.dumps(effective, indent=2))


if __name__ == "__main__":
    app()
