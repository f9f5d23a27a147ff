"""
Configuration management via environment variables.

This module loads configuration from a .env file using python-dotenv.
All configuration values are accessed through the Settings class.

The default database connection (DATABASE_URL) is what requests fall back to
when no credential source yields a complete connection parameter set.
"""
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


PROJECT_ROOT = Path(__file__).parent.parent.parent

# Load .env file from project root
# This must happen before accessing os.environ
load_dotenv(PROJECT_ROOT / ".env")

# Only ever used when APP_ENV=development and SECRET_KEY is unset
DEVELOPMENT_SECRET_KEY = "cloudview-development-secret-key"

# Environment keys of the tier 2 credential set, in ConnectionParameters order
ENV_CREDENTIAL_KEYS = (
    "CLOUDVIEW_DB_CONNECTION",
    "CLOUDVIEW_DB_HOST",
    "CLOUDVIEW_DB_PORT",
    "CLOUDVIEW_DB_DATABASE",
    "CLOUDVIEW_DB_USERNAME",
    "CLOUDVIEW_DB_PASSWORD",
)


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    frozen=True makes the dataclass immutable, preventing accidental
    modification of settings at runtime.

    Attributes:
        app_name: Application identifier for logging
        app_env: Environment name (development, staging, production)
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for daily log files
        secret_key: Signs the session cookie and keys the credential cipher
        database_url: Default connection used when no credentials resolve
        env_credentials: Raw CLOUDVIEW_DB_* values (tier 2), None when unset
        credentials_file: Local override file for tier 3 (dotenv format)
        connect_timeout_seconds: Network connect timeout for target engines
        max_connections: Process-wide cap on simultaneously open handles
        acquire_timeout_seconds: How long a request waits for a free handle
        engine_idle_minutes: Cached engines idle longer than this are disposed
        export_yield_per: Rows fetched per round-trip by the export cursor
        export_flush_bytes: Size of each CSV chunk handed to the response
        mssql_odbc_driver: ODBC driver name used for SQL Server
        session_cookie: Name of the signed session cookie
        enable_audit_logging: Log every request through AuditMiddleware
    """
    # Application settings
    app_name: str
    app_env: str
    log_level: str
    log_dir: Path
    secret_key: str

    # Default connection
    database_url: str

    # Credential sources
    env_credentials: tuple
    credentials_file: Path

    # Connection handling
    connect_timeout_seconds: int
    max_connections: int
    acquire_timeout_seconds: float
    engine_idle_minutes: int
    mssql_odbc_driver: str

    # Export streaming
    export_yield_per: int
    export_flush_bytes: int

    # HTTP
    session_cookie: str
    enable_audit_logging: bool

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env.lower() == "development"

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"


def _get_env(key: str, default: Optional[str] = None) -> str:
    """
    Get environment variable with optional default.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Environment variable value

    Raises:
        ValueError: If required variable is not set and no default provided
    """
    value = os.environ.get(key, default)
    if value is None:
        raise ValueError(
            f"Required environment variable '{key}' is not set. "
            f"Please check your .env file."
        )
    return value


def _get_bool(key: str, default: str) -> bool:
    return _get_env(key, default).strip().lower() in ("1", "true", "yes", "on")


def _get_secret_key(app_env: str) -> str:
    secret_key = os.environ.get("SECRET_KEY")
    if secret_key:
        return secret_key
    if app_env.lower() == "development":
        return DEVELOPMENT_SECRET_KEY
    raise ValueError(
        "SECRET_KEY must be set outside development: it signs session "
        "cookies and encrypts stored connection credentials."
    )


def _normalize_database_url(database_url: str) -> str:
    # Heroku-style URLs still use the retired postgres:// scheme
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    if database_url.startswith("mysql://"):
        database_url = database_url.replace("mysql://", "mysql+pymysql://", 1)
    return database_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are read once per process; tests call get_settings.cache_clear()
    after changing the environment.

    Returns:
        Settings instance with all configuration values

    Raises:
        ValueError: If required environment variables are missing
    """
    app_env = _get_env("APP_ENV", "development")

    return Settings(
        # Application
        app_name=_get_env("APP_NAME", "CloudView"),
        app_env=app_env,
        log_level=_get_env("LOG_LEVEL", "INFO"),
        log_dir=Path(_get_env("LOG_DIR", str(PROJECT_ROOT / "logs"))),
        secret_key=_get_secret_key(app_env),

        # Default connection
        database_url=_normalize_database_url(
            _get_env("DATABASE_URL", "sqlite:///./cloudview.db")
        ),

        # Credential sources
        env_credentials=tuple(os.environ.get(key) for key in ENV_CREDENTIAL_KEYS),
        credentials_file=Path(
            _get_env("CLOUDVIEW_CREDENTIALS_FILE", str(PROJECT_ROOT / ".cloudview.env"))
        ),

        # Connection handling
        connect_timeout_seconds=int(_get_env("DB_CONNECT_TIMEOUT", "10")),
        max_connections=int(_get_env("DB_MAX_CONNECTIONS", "20")),
        acquire_timeout_seconds=float(_get_env("DB_ACQUIRE_TIMEOUT", "5")),
        engine_idle_minutes=int(_get_env("DB_ENGINE_IDLE_MINUTES", "30")),
        mssql_odbc_driver=_get_env("MSSQL_ODBC_DRIVER", "ODBC Driver 18 for SQL Server"),

        # Export streaming
        export_yield_per=int(_get_env("EXPORT_YIELD_PER", "500")),
        export_flush_bytes=int(_get_env("EXPORT_FLUSH_BYTES", "65536")),

        # HTTP
        session_cookie=_get_env("SESSION_COOKIE", "cloudview_session"),
        enable_audit_logging=_get_bool("ENABLE_AUDIT_LOGGING", "true"),
    )
