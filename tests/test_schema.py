"""Tests for table listing and the bookkeeping-table denylist."""
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError

from cloudview.core.exceptions import IntrospectionError, TableNotFound
from cloudview.database.connection_manager import ConnectionManager
from cloudview.database.credentials import ConnectionParameters
from cloudview.database.schema import SchemaInspector, is_denylisted


class StubDriver:
    name = "stub"

    def __init__(self, names=None, error=None):
        self.names = names or []
        self.error = error

    def list_table_names(self, connection):
        if self.error is not None:
            raise self.error
        return list(self.names)


class StubResolved:
    def __init__(self, driver):
        self.driver = driver
        self.connection = object()

    def describe(self) -> str:
        return "stub@h:1/d"


@pytest.fixture
def resolved(settings, app_db: Path):
    manager = ConnectionManager(settings)
    parameters = ConnectionParameters("sqlite", "localhost", "0", str(app_db), "reader", "pw")
    with manager.open(parameters) as handle:
        yield handle
    manager.close_all()


@pytest.mark.parametrize(
    "name, hidden",
    [
        ("migrations", True),
        ("failed_jobs", True),
        ("personal_access_tokens", True),
        ("sessions", True),
        ("telescope_entries", True),
        ("horizon_jobs", True),
        ("jobs", True),
        ("job_batches", True),
        ("cache", True),
        ("cache_locks", True),
        ("users", False),
        ("user_sessions", False),
        ("orders", False),
    ],
)
def test_is_denylisted(name: str, hidden: bool) -> None:
    assert is_denylisted(name) is hidden


def test_sqlite_listing_hides_bookkeeping_tables(resolved) -> None:
    tables = SchemaInspector(resolved).list_tables()

    assert sorted(tables) == ["orders", "users"]
    # AUTOINCREMENT creates sqlite_sequence, which is internal
    assert "sqlite_sequence" not in tables


def test_listing_keeps_engine_order() -> None:
    driver = StubDriver(["zeta", "migrations", "alpha", "jobs", "beta"])
    assert SchemaInspector(StubResolved(driver)).list_tables() == ["zeta", "alpha", "beta"]


def test_metadata_failure_becomes_introspection_error() -> None:
    error = OperationalError("SHOW TABLES", {}, Exception("access denied for user 'reader'"))
    inspector = SchemaInspector(StubResolved(StubDriver(error=error)))

    with pytest.raises(IntrospectionError) as excinfo:
        inspector.list_tables()

    assert excinfo.value.message == "Could not retrieve table list."
    assert "reader" not in str(excinfo.value.to_dict())


def test_require_table(resolved) -> None:
    inspector = SchemaInspector(resolved)

    assert inspector.require_table("users") == "users"
    with pytest.raises(TableNotFound):
        inspector.require_table("no_such_table")


def test_require_table_rejects_hidden_tables(resolved) -> None:
    with pytest.raises(TableNotFound):
        SchemaInspector(resolved).require_table("migrations")
