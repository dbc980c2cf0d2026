"""Shared pytest fixtures for Atsumeru."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from atsumeru.api import create_app
from atsumeru.config import Settings
from atsumeru.database import build_session_factory
from atsumeru.models import Base


@pytest.fixture(scope="session")
def engine():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def clean_database(engine):
    """Reset all tables between tests to guarantee isolation."""

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        base_dir=tmp_path,
        data_dir=tmp_path / "data",
        database_url="sqlite+pysqlite:///:memory:",
        app_host="127.0.0.1",
        app_port=8000,
        log_level="info",
        owner_cookie_secure=False,
        owner_cookie_max_age_days=365,
        auto_migrate=False,
        config_path=tmp_path / "atsumeru.toml",
    )


@pytest.fixture()
def session(engine):
    db = build_session_factory(engine)()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(settings, engine):
    app = create_app(settings, engine=engine)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def isolated_env(monkeypatch, tmp_path):
    """Point configuration at an empty base directory."""

    for key in [
        "ATSUMERU_CONFIG",
        "ATSUMERU_DATA_DIR",
        "ATSUMERU_DATABASE_URL",
        "ATSUMERU_APP_PORT",
        "ATSUMERU_LOG_LEVEL",
        "ATSUMERU_OWNER_COOKIE_SECURE",
        "ATSUMERU_AUTO_MIGRATE",
    ]:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("ATSUMERU_BASE_DIR", str(tmp_path))
    return tmp_path
