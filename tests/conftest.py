"""Shared fixtures: isolated settings, throwaway SQLite databases, API client."""
import dataclasses
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Iterator

# Must run before cloudview.api.main is imported anywhere: it configures logging on import
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="cloudview-test-logs-"))
os.environ["APP_ENV"] = "development"

import pytest
from sqlalchemy import create_engine, text

from cloudview.core.config import ENV_CREDENTIAL_KEYS, Settings, get_settings
from cloudview.database.connection_manager import reset_connection_manager
from cloudview.api.dependencies import reset_resolver


def create_sqlite_db(path: Path, statements: Iterable[str]) -> Path:
    """Create a SQLite file and run the given DDL/DML statements in it."""
    engine = create_engine(f"sqlite:///{path}")
    with engine.begin() as conn:
        for statement in statements:
            conn.execute(text(statement))
    engine.dispose()
    return path


def sqlite_params(path: Path) -> Dict[str, str]:
    """Request query parameters for a SQLite database file."""
    return {
        "db_connection": "sqlite",
        "db_host": "localhost",
        "db_port": "0",
        "db_database": str(path),
        "db_username": "reader",
        "db_password": "s3cret!",
    }


def reset_state() -> None:
    get_settings.cache_clear()
    reset_resolver()
    reset_connection_manager()


@pytest.fixture
def default_db(tmp_path: Path) -> Path:
    return create_sqlite_db(
        tmp_path / "default.db",
        [
            "CREATE TABLE default_items (id INTEGER PRIMARY KEY, label TEXT)",
            "INSERT INTO default_items (id, label) VALUES (1, 'from default')",
        ],
    )


@pytest.fixture
def app_db(tmp_path: Path) -> Path:
    """A database shaped like a framework app: user tables plus bookkeeping tables."""
    return create_sqlite_db(
        tmp_path / "app.db",
        [
            "CREATE TABLE users (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT)",
            "INSERT INTO users (id, name) VALUES (1, 'Ann')",
            "CREATE TABLE orders (id INTEGER PRIMARY KEY, user_id INTEGER, total NUMERIC)",
            "CREATE TABLE migrations (id INTEGER PRIMARY KEY, migration TEXT)",
            "CREATE TABLE failed_jobs (id INTEGER PRIMARY KEY)",
            "CREATE TABLE sessions (id TEXT PRIMARY KEY)",
            "CREATE TABLE cache_locks (key TEXT PRIMARY KEY)",
            "CREATE TABLE telescope_entries (id INTEGER PRIMARY KEY)",
        ],
    )


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, default_db: Path) -> Iterator[Settings]:
    """Settings pointing at a temporary default database and no ambient credentials."""
    monkeypatch.setenv("APP_ENV", "development")
    monkeypatch.setenv("SECRET_KEY", "test-secret-key")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{default_db}")
    monkeypatch.setenv("CLOUDVIEW_CREDENTIALS_FILE", str(tmp_path / "absent.env"))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    for key in ENV_CREDENTIAL_KEYS:
        monkeypatch.delenv(key, raising=False)

    reset_state()
    yield get_settings()
    reset_state()


@pytest.fixture
def make_settings(settings: Settings):
    def _make(**overrides) -> Settings:
        return dataclasses.replace(settings, **overrides)
    return _make


@pytest.fixture
def client(settings: Settings):
    from fastapi.testclient import TestClient
    from cloudview.api.main import create_app

    with TestClient(create_app(settings)) as test_client:
        yield test_client
