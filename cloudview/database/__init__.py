"""
Database module - read-only browsing of arbitrary databases.

This module handles:
- Credential resolution across session, environment, file and request
- Per-request connection handles over per-credential engines
- Driver-specific table introspection
- Row reads and streamed CSV export
"""
from cloudview.database.credentials import (
    ConnectionParameters,
    CredentialResolver,
    RequestContext,
    Resolution,
    SessionCredentialStore,
    create_resolver,
)
from cloudview.database.drivers import DriverStrategy, get_driver, driver_for_dialect
from cloudview.database.connection_manager import (
    ConnectionManager,
    ResolvedConnection,
    get_connection_manager,
    reset_connection_manager,
)
from cloudview.database.schema import SchemaInspector, DENYLIST_PREFIXES
from cloudview.database.reader import RowReader, CsvExporter, CsvExportStream

__all__ = [
    # Credentials
    "ConnectionParameters",
    "CredentialResolver",
    "RequestContext",
    "Resolution",
    "SessionCredentialStore",
    "create_resolver",
    # Drivers
    "DriverStrategy",
    "get_driver",
    "driver_for_dialect",
    # Connections
    "ConnectionManager",
    "ResolvedConnection",
    "get_connection_manager",
    "reset_connection_manager",
    # Schema
    "SchemaInspector",
    "DENYLIST_PREFIXES",
    # Reader
    "RowReader",
    "CsvExporter",
    "CsvExportStream",
]
