"""
Driver Strategies - everything that differs between database engines.

Each strategy knows how to:
- Build the SQLAlchemy URL for a set of connection parameters
- Supply driver-specific connect options (charset, TLS preference, timeouts)
- List user tables through the engine's own metadata store

The strategy is chosen once, when the connection manager opens a handle,
and travels with that handle. Nothing downstream branches on driver names.
"""
from typing import Any, Dict, List
from urllib.parse import quote

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, URL

from cloudview.core.config import Settings
from cloudview.core.exceptions import ValidationError
from cloudview.core.logging_config import get_logger
from cloudview.core.validators import validate_port
from cloudview.database.credentials import ConnectionParameters

logger = get_logger(__name__)


def _port(parameters: ConnectionParameters) -> int:
    is_valid, error = validate_port(parameters.port)
    if not is_valid:
        raise ValidationError(error, field="db_port")
    return int(parameters.port)


class DriverStrategy:
    """
    Base strategy. Subclasses set name/sqlalchemy_driver and the metadata query.

    Attributes:
        name: Canonical driver identifier (sqlite, mysql, pgsql, sqlsrv)
        sqlalchemy_driver: SQLAlchemy "dialect+dbapi" name
        table_query: SQL returning one table name per row in column 0
    """
    name = "generic"
    sqlalchemy_driver = ""
    table_query = ""

    def build_url(self, parameters: ConnectionParameters, settings: Settings) -> URL:
        return URL.create(
            self.sqlalchemy_driver,
            username=parameters.username,
            password=parameters.password,
            host=parameters.host,
            port=_port(parameters),
            database=parameters.database,
            query=self.url_query(settings),
        )

    def url_query(self, settings: Settings) -> Dict[str, str]:
        return {}

    def connect_args(self, settings: Settings) -> Dict[str, Any]:
        return {}

    def list_table_names(self, connection: Connection) -> List[str]:
        result = connection.execute(text(self.table_query))
        return [row[0] for row in result]

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"


class SqliteDriver(DriverStrategy):
    """
    SQLite: database is a file path; host, port and user are not used.

    The file is opened read-only through a SQLite URI, so a missing file is
    a connection error instead of a freshly created empty database.
    """
    name = "sqlite"
    sqlalchemy_driver = "sqlite"
    table_query = "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"

    def build_url(self, parameters: ConnectionParameters, settings: Settings) -> URL:
        # URI filenames treat ?, # and % specially
        return URL.create(
            self.sqlalchemy_driver,
            database=f"file:{quote(parameters.database)}",
            query={"mode": "ro", "uri": "true"},
        )

    def connect_args(self, settings: Settings) -> Dict[str, Any]:
        # Handles are opened in one worker thread and drained in another by exports
        return {"check_same_thread": False, "timeout": settings.connect_timeout_seconds}


class MySqlDriver(DriverStrategy):
    name = "mysql"
    sqlalchemy_driver = "mysql+pymysql"
    table_query = "SHOW TABLES"

    def url_query(self, settings: Settings) -> Dict[str, str]:
        return {"charset": "utf8mb4"}

    def connect_args(self, settings: Settings) -> Dict[str, Any]:
        return {"connect_timeout": settings.connect_timeout_seconds}


class PostgresDriver(DriverStrategy):
    name = "pgsql"
    sqlalchemy_driver = "postgresql+psycopg2"
    table_query = "SELECT tablename FROM pg_tables WHERE schemaname = 'public'"

    def connect_args(self, settings: Settings) -> Dict[str, Any]:
        # Use TLS when the server offers it, plain TCP otherwise
        return {"sslmode": "prefer", "connect_timeout": settings.connect_timeout_seconds}


class SqlServerDriver(DriverStrategy):
    name = "sqlsrv"
    sqlalchemy_driver = "mssql+pyodbc"
    table_query = "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES WHERE TABLE_TYPE = 'BASE TABLE'"

    def url_query(self, settings: Settings) -> Dict[str, str]:
        return {
            "driver": settings.mssql_odbc_driver,
            "TrustServerCertificate": "yes",
        }

    def connect_args(self, settings: Settings) -> Dict[str, Any]:
        return {"timeout": settings.connect_timeout_seconds}


class GenericDriver(DriverStrategy):
    """
    Fallback for drivers without a dedicated strategy.

    The driver name is handed to SQLAlchemy as the URL scheme, and tables
    are listed through SQLAlchemy's inspector.
    """

    def __init__(self, name: str):
        self.name = name
        self.sqlalchemy_driver = name

    def list_table_names(self, connection: Connection) -> List[str]:
        return inspect(connection).get_table_names()


_STRATEGIES = {
    "sqlite": SqliteDriver,
    "sqlite3": SqliteDriver,
    "mysql": MySqlDriver,
    "mariadb": MySqlDriver,
    "pgsql": PostgresDriver,
    "postgres": PostgresDriver,
    "postgresql": PostgresDriver,
    "sqlsrv": SqlServerDriver,
    "mssql": SqlServerDriver,
    "sqlserver": SqlServerDriver,
}

# Engine dialect names as reported by SQLAlchemy for the default connection
_DIALECTS = {
    "sqlite": SqliteDriver,
    "mysql": MySqlDriver,
    "mariadb": MySqlDriver,
    "postgresql": PostgresDriver,
    "mssql": SqlServerDriver,
}


def get_driver(name: str) -> DriverStrategy:
    """
    Strategy for a driver name from connection parameters.

    Unknown names get a GenericDriver rather than an error; whether
    SQLAlchemy can load it is only known when the engine is created.
    """
    strategy = _STRATEGIES.get(name.lower())
    if strategy is None:
        logger.debug(f"No dedicated strategy for driver '{name}', using generic")
        return GenericDriver(name.lower())
    return strategy()


def driver_for_dialect(dialect_name: str) -> DriverStrategy:
    """Strategy for an already-created engine, looked up by dialect name."""
    strategy = _DIALECTS.get(dialect_name)
    if strategy is None:
        return GenericDriver(dialect_name)
    return strategy()
