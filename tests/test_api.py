"""End-to-end tests for the HTTP API against SQLite databases."""
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from cloudview.api.main import create_app
from cloudview.core.config import ENV_CREDENTIAL_KEYS, get_settings

from tests.conftest import create_sqlite_db, reset_state, sqlite_params


class TestTables:

    def test_list_tables_with_request_parameters(self, client: TestClient, app_db: Path) -> None:
        response = client.get("/api/cloudview/tables", params=sqlite_params(app_db))

        assert response.status_code == 200
        assert response.json() == ["users", "orders"]

    def test_listing_is_stable_across_calls(self, client: TestClient, app_db: Path) -> None:
        first = client.get("/api/cloudview/tables", params=sqlite_params(app_db)).json()
        second = client.get("/api/cloudview/tables", params=sqlite_params(app_db)).json()

        assert first == second == ["users", "orders"]

    def test_parameters_are_remembered_for_the_session(self, client: TestClient, app_db: Path) -> None:
        client.get("/api/cloudview/tables", params=sqlite_params(app_db))

        # Same cookie, no parameters: the stored set is used
        response = client.get("/api/cloudview/tables")

        assert response.json() == ["users", "orders"]

    def test_session_cookie_does_not_expose_password(self, client: TestClient, app_db: Path) -> None:
        client.get("/api/cloudview/tables", params=sqlite_params(app_db))

        cookie = client.cookies.get("cloudview_session")
        assert cookie
        assert "s3cret!" not in cookie

    def test_no_credentials_uses_default_connection(self, client: TestClient) -> None:
        response = client.get("/api/cloudview/tables")

        assert response.status_code == 200
        assert response.json() == ["default_items"]

    def test_partial_parameters_fall_back_to_default(self, client: TestClient, app_db: Path) -> None:
        params = sqlite_params(app_db)
        del params["db_password"]

        response = client.get("/api/cloudview/tables", params=params)

        assert response.json() == ["default_items"]

    def test_table_rows(self, client: TestClient, app_db: Path) -> None:
        response = client.get("/api/cloudview/table/users", params=sqlite_params(app_db))

        assert response.status_code == 200
        assert response.json() == [{"id": 1, "name": "Ann"}]

    def test_unknown_table_is_404(self, client: TestClient, app_db: Path) -> None:
        response = client.get("/api/cloudview/table/nope", params=sqlite_params(app_db))

        assert response.status_code == 404
        assert response.json()["error"] == "table_not_found"
        assert response.json()["message"] == "Table not found."

    def test_hidden_table_is_404(self, client: TestClient, app_db: Path) -> None:
        response = client.get("/api/cloudview/table/migrations", params=sqlite_params(app_db))
        assert response.status_code == 404

    def test_unreachable_database_is_500_without_driver_text(self, client: TestClient, tmp_path: Path) -> None:
        missing = tmp_path / "missing" / "dir" / "x.db"

        response = client.get("/api/cloudview/tables", params=sqlite_params(missing))

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "connection_error"
        assert str(missing) not in response.text
        assert "s3cret!" not in response.text

    def test_missing_sqlite_file_is_500_and_not_created(self, client: TestClient, tmp_path: Path) -> None:
        missing = tmp_path / "never_existed.db"

        response = client.get("/api/cloudview/tables", params=sqlite_params(missing))

        assert response.status_code == 500
        assert response.json()["error"] == "connection_error"
        assert not missing.exists()

    def test_non_ascii_digit_port_is_400(self, client: TestClient) -> None:
        params = {
            "db_connection": "pgsql",
            "db_host": "h",
            "db_port": "²",
            "db_database": "d",
            "db_username": "u",
            "db_password": "p",
        }
        response = client.get("/api/cloudview/tables", params=params)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_unknown_driver_is_400(self, client: TestClient) -> None:
        params = {
            "db_connection": "nosuchdb",
            "db_host": "h",
            "db_port": "1234",
            "db_database": "d",
            "db_username": "u",
            "db_password": "p",
        }
        response = client.get("/api/cloudview/tables", params=params)

        assert response.status_code == 400
        assert response.json()["error"] == "unsupported_driver"


class TestExport:

    def test_export_csv(self, client: TestClient, app_db: Path) -> None:
        response = client.get("/api/cloudview/table/users/export/csv", params=sqlite_params(app_db))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == 'attachment; filename="users.csv"'
        assert response.content == b"id,name\n1,Ann\n"

    def test_csv_header_matches_row_keys(self, client: TestClient, app_db: Path) -> None:
        rows = client.get("/api/cloudview/table/users", params=sqlite_params(app_db)).json()
        export = client.get("/api/cloudview/table/users/export/csv", params=sqlite_params(app_db))

        header = export.text.splitlines()[0]
        assert header == ",".join(rows[0].keys())

    def test_export_hidden_table_is_404(self, client: TestClient, app_db: Path) -> None:
        response = client.get("/api/cloudview/table/sessions/export/csv", params=sqlite_params(app_db))

        assert response.status_code == 404
        assert response.json()["error"] == "table_not_found"

    def test_export_releases_connections(self, client: TestClient, app_db: Path) -> None:
        from cloudview.database.connection_manager import get_connection_manager

        for _ in range(3):
            client.get("/api/cloudview/table/users/export/csv", params=sqlite_params(app_db))
        client.get("/api/cloudview/table/nope/export/csv", params=sqlite_params(app_db))

        assert get_connection_manager().stats()["connections_in_use"] == 0

    def test_empty_table_export(self, client: TestClient, app_db: Path) -> None:
        response = client.get("/api/cloudview/table/orders/export/csv", params=sqlite_params(app_db))

        assert response.status_code == 200
        assert response.content == b""


class TestConnectionStatus:

    def test_status_reports_source_without_password(self, client: TestClient, app_db: Path) -> None:
        response = client.get("/api/cloudview/connection", params=sqlite_params(app_db))

        body = response.json()
        assert body["source"] == "session"
        assert body["is_default"] is False
        assert body["stored_in_session"] is True
        assert body["parameters"]["password"] == "***"
        assert "s3cret!" not in response.text

    def test_forget_returns_to_default(self, client: TestClient, app_db: Path) -> None:
        client.get("/api/cloudview/tables", params=sqlite_params(app_db))

        forget = client.delete("/api/cloudview/connection")
        assert forget.json()["forgotten"] is True

        assert client.get("/api/cloudview/tables").json() == ["default_items"]
        assert client.get("/api/cloudview/connection").json()["source"] == "default"
        assert client.delete("/api/cloudview/connection").json()["forgotten"] is False


def test_request_parameters_beat_environment(
    settings, monkeypatch: pytest.MonkeyPatch, tmp_path: Path, app_db: Path
) -> None:
    env_db = create_sqlite_db(tmp_path / "env.db", ["CREATE TABLE env_only (id INTEGER)"])
    for key, value in zip(ENV_CREDENTIAL_KEYS, ["sqlite", "localhost", "0", str(env_db), "env", "pw"]):
        monkeypatch.setenv(key, value)
    reset_state()

    with TestClient(create_app(get_settings())) as client:
        assert client.get("/api/cloudview/tables").json() == ["env_only"]
        assert client.get("/api/cloudview/tables", params=sqlite_params(app_db)).json() == ["users", "orders"]


def test_security_headers(client: TestClient) -> None:
    response = client.get("/api/cloudview/tables")

    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["cache-control"] == "no-store"


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_readiness_reports_stats(client: TestClient) -> None:
    response = client.get("/health/ready")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ready"
    assert body["details"]["connections_in_use"] == 0
