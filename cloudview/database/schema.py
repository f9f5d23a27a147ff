"""
Schema Inspector - Discover which tables a connection exposes.

Table names come from the engine's own metadata store through the driver
strategy bound to the connection. Framework bookkeeping tables (migrations,
queues, sessions, telemetry, cache) are filtered out by prefix, and the
remaining names keep the order the engine returned them in.

The result is never cached beyond one call: every validation re-reads the
table list from the connection the request is actually bound to.
"""
from typing import List

from cloudview.core.exceptions import IntrospectionError, TableNotFound
from cloudview.core.logging_config import get_logger
from cloudview.database.connection_manager import ResolvedConnection

logger = get_logger(__name__)

# Any table whose name starts with one of these is hidden
DENYLIST_PREFIXES = (
    "migrations",
    "failed_jobs",
    "personal_access_tokens",
    "sessions",
    "telescope_",
    "horizon_",
    "jobs",
    "job_batches",
    "cache",
)


def is_denylisted(table_name: str) -> bool:
    return table_name.startswith(DENYLIST_PREFIXES)


class SchemaInspector:
    """
    Lists user tables on an open connection.

    Example:
        >>> with manager.open(parameters) as resolved:
        ...     SchemaInspector(resolved).list_tables()
        ['orders', 'users']
    """

    def __init__(self, resolved: ResolvedConnection):
        self.resolved = resolved

    def list_tables(self) -> List[str]:
        """
        Get the user table names, in engine order.

        Returns:
            Table names with denylisted tables removed

        Raises:
            IntrospectionError: If the metadata query fails for any reason
        """
        try:
            names = self.resolved.driver.list_table_names(self.resolved.connection)
        except Exception as e:
            logger.error(f"Table fetch error on {self.resolved.describe()}: {e}")
            raise IntrospectionError() from e

        tables = [name for name in names if not is_denylisted(name)]
        logger.info(
            f"Found {len(tables)} tables on {self.resolved.describe()} "
            f"({len(names) - len(tables)} hidden)"
        )
        return tables

    def require_table(self, table_name: str) -> str:
        """
        Check a table name against a fresh introspection result.

        Returns:
            The table name, unchanged

        Raises:
            TableNotFound: If the name is not among the listed tables
            IntrospectionError: If the table list cannot be read
        """
        if table_name not in self.list_tables():
            logger.warning(f"Rejected unknown table on {self.resolved.describe()}")
            raise TableNotFound(table_name)
        return table_name
