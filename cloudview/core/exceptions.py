"""
Custom Exceptions - Application-specific error classes.

This module defines a hierarchy of exceptions for clean error handling:
- Each exception has a status code and error code
- Used by the API layer for consistent error responses
- Driver error text is logged where it happens and never carried here

CredentialIncomplete and CredentialDecryptError never reach a client: the
credential resolver catches them and moves on to the next source.
"""
from typing import Optional


class CloudviewException(Exception):
    """
    Base exception for all CloudView errors.

    Subclass this for specific error types.
    """
    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Convert to error response dict."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details
        }


class CredentialIncomplete(CloudviewException):
    """Raised by a credential source that has no complete parameter set."""
    error_code = "credential_incomplete"

    def __init__(self, source: str, missing: Optional[list] = None):
        missing = missing or []
        super().__init__(
            message=f"No complete credential set from {source}",
            details=f"missing={','.join(missing)}" if missing else None
        )
        self.source = source
        self.missing = missing


class CredentialDecryptError(CloudviewException):
    """Raised when a stored credential token cannot be decrypted."""
    error_code = "credential_undecryptable"

    def __init__(self, message: str = "Stored credentials could not be decrypted"):
        super().__init__(message)


class ValidationError(CloudviewException):
    """Raised when input validation fails."""
    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details=f"field={field}" if field else None)
        self.field = field


class UnsupportedDriver(CloudviewException):
    """Raised when no SQLAlchemy dialect can be loaded for a driver name."""
    status_code = 400
    error_code = "unsupported_driver"

    def __init__(self, driver: str):
        super().__init__(
            message=f"Unsupported database driver: {driver}",
            details=f"driver={driver}"
        )
        self.driver = driver


class DatabaseConnectionError(CloudviewException):
    """Raised when a database handle could not be established."""
    status_code = 500
    error_code = "connection_error"

    def __init__(self, message: str = "Could not connect to the database."):
        super().__init__(message)


class ConnectionLimitExceeded(CloudviewException):
    """Raised when every connection slot stays busy past the acquire timeout."""
    status_code = 503
    error_code = "connection_limit"

    def __init__(self, limit: int, timeout_seconds: float):
        super().__init__(
            message="Too many open database connections. Please retry shortly.",
            details=f"limit={limit} timeout={timeout_seconds}s"
        )
        self.limit = limit
        self.timeout_seconds = timeout_seconds


class IntrospectionError(CloudviewException):
    """Raised when the table list could not be read."""
    status_code = 500
    error_code = "introspection_error"

    def __init__(self, message: str = "Could not retrieve table list."):
        super().__init__(message)


class TableNotFound(CloudviewException):
    """Raised when a table is not in the current introspection result."""
    status_code = 404
    error_code = "table_not_found"

    def __init__(self, table_name: str):
        super().__init__(message="Table not found.", details=f"table={table_name}")
        self.table_name = table_name


class RowFetchError(CloudviewException):
    """Raised when reading a table's rows fails."""
    status_code = 500
    error_code = "row_fetch_error"

    def __init__(self, table_name: str):
        super().__init__(message="Error fetching table data.", details=f"table={table_name}")
        self.table_name = table_name


class StreamAbort(CloudviewException):
    """Raised when the engine fails while export output is being produced."""
    status_code = 500
    error_code = "stream_abort"

    def __init__(self, table_name: str, rows_written: int = 0):
        super().__init__(
            message="Error exporting CSV.",
            details=f"table={table_name} rows_written={rows_written}"
        )
        self.table_name = table_name
        self.rows_written = rows_written
