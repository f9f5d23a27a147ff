"""
Row Reader / Export Streamer - read table contents.

Two paths over the same validated table name:
- RowReader.list_rows(): eager fetch for interactive display
- CsvExporter.open(): forward-only server-side cursor turned into CSV bytes,
  holding at most one flush buffer of rows in memory

CSV output follows RFC 4180 quoting (stdlib csv, minimal quoting, embedded
quotes doubled) with "\\n" line endings and UTF-8 encoding. The header is
taken from the first row; every later row is written positionally under it.
"""
import base64
import csv
import io
import math
import threading
import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import quote

from sqlalchemy import literal_column, select, table
from sqlalchemy.engine import CursorResult, Row
from sqlalchemy.exc import SQLAlchemyError

from cloudview.core.exceptions import RowFetchError, StreamAbort
from cloudview.core.logging_config import get_logger
from cloudview.database.connection_manager import ResolvedConnection
from cloudview.database.schema import SchemaInspector

logger = get_logger(__name__)

CSV_MEDIA_TYPE = "text/csv"


def select_all(table_name: str):
    """SELECT * FROM <table>, identifier quoted by the target dialect."""
    return select(literal_column("*")).select_from(table(table_name))


def to_json_safe(value: Any) -> Any:
    """Coerce a column value to something JSON can carry without loss."""
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Decimal):
        # Keep full precision; JSON numbers would round through float
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, (uuid.UUID, timedelta)):
        return str(value)
    return str(value)


def to_csv_field(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return str(value)


def content_disposition(table_name: str) -> str:
    """
    Attachment header naming the file <table_name>.csv.

    Non-ASCII names additionally get an RFC 5987 filename* parameter.
    """
    filename = f"{table_name}.csv"
    fallback = filename.encode("ascii", "replace").decode("ascii")
    fallback = fallback.replace("\\", "\\\\").replace('"', '\\"')
    header = f'attachment; filename="{fallback}"'
    if fallback != filename:
        header += f"; filename*=UTF-8''{quote(filename)}"
    return header


class RowReader:
    """
    Eager row fetch for bounded, interactive display.

    Example:
        >>> with manager.open(parameters) as resolved:
        ...     RowReader(resolved).list_rows("users")
        [{'id': 1, 'name': 'Ann'}]
    """

    def __init__(self, resolved: ResolvedConnection):
        self.resolved = resolved
        self.inspector = SchemaInspector(resolved)

    def list_rows(self, table_name: str) -> List[Dict[str, Any]]:
        """
        Fetch every row of a table.

        Raises:
            TableNotFound: If the table is not in the current table list
            IntrospectionError: If the table list cannot be read
            RowFetchError: If the SELECT fails
        """
        self.inspector.require_table(table_name)

        try:
            result = self.resolved.connection.execute(select_all(table_name))
            rows = [
                {column: to_json_safe(value) for column, value in row._mapping.items()}
                for row in result
            ]
        except SQLAlchemyError as e:
            logger.error(f"Data fetch error for {table_name} on {self.resolved.describe()}: {e}")
            raise RowFetchError(table_name) from e

        logger.info(f"Fetched {len(rows)} rows from {table_name}")
        return rows


class CsvExportStream:
    """
    Byte iterator over one table export.

    Owns the ResolvedConnection it reads from and closes it when iteration
    ends, fails, or is abandoned. close() may be called from any thread and
    any number of times; an unfinished stream invalidates its connection so
    the driver does not drain the remaining rows first.
    """
    media_type = CSV_MEDIA_TYPE

    def __init__(
        self,
        table_name: str,
        resolved: ResolvedConnection,
        result: CursorResult,
        first_row: Optional[Row],
        flush_bytes: int = 65536
    ):
        self.table_name = table_name
        self.rows_written = 0
        self._resolved = resolved
        self._result = result
        self._first_row = first_row
        self._flush_bytes = flush_bytes
        self._exhausted = first_row is None
        self._closed = False
        self._lock = threading.Lock()

    @property
    def filename(self) -> str:
        return f"{self.table_name}.csv"

    @property
    def closed(self) -> bool:
        return self._closed

    def headers(self) -> Dict[str, str]:
        return {"Content-Disposition": content_disposition(self.table_name)}

    def __iter__(self) -> Iterator[bytes]:
        return self._generate()

    def _generate(self) -> Iterator[bytes]:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")

        try:
            if self._first_row is None:
                return

            first_row, self._first_row = self._first_row, None
            writer.writerow(list(first_row._mapping.keys()))
            writer.writerow([to_csv_field(value) for value in first_row])
            self.rows_written = 1

            try:
                for row in self._result:
                    writer.writerow([to_csv_field(value) for value in row])
                    self.rows_written += 1
                    if buffer.tell() >= self._flush_bytes:
                        yield self._drain(buffer)
            except SQLAlchemyError as e:
                logger.error(
                    f"CSV export error for {self.table_name} after "
                    f"{self.rows_written} rows: {e}"
                )
                raise StreamAbort(self.table_name, self.rows_written) from e

            self._exhausted = True
            if buffer.tell():
                yield self._drain(buffer)

            logger.info(f"Exported {self.rows_written} rows from {self.table_name}")
        finally:
            self.close()

    @staticmethod
    def _drain(buffer: io.StringIO) -> bytes:
        chunk = buffer.getvalue()
        buffer.seek(0)
        buffer.truncate(0)
        return chunk.encode("utf-8")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True

        try:
            if self._exhausted:
                self._result.close()
            else:
                logger.warning(
                    f"CSV export of {self.table_name} stopped after "
                    f"{self.rows_written} rows; discarding its connection"
                )
                self._resolved.connection.invalidate()
        except SQLAlchemyError as e:
            logger.error(f"Error releasing export cursor for {self.table_name}: {e}")
        finally:
            self._resolved.close()


class CsvExporter:
    """
    Opens CSV export streams.

    Example:
        >>> stream = CsvExporter(manager.open(parameters)).open("users")
        >>> b"".join(stream)
        b'id,name\\n1,Ann\\n'
    """

    def __init__(
        self,
        resolved: ResolvedConnection,
        yield_per: int = 500,
        flush_bytes: int = 65536
    ):
        self.resolved = resolved
        self.yield_per = yield_per
        self.flush_bytes = flush_bytes
        self.inspector = SchemaInspector(resolved)

    def open(self, table_name: str) -> CsvExportStream:
        """
        Validate the table and start a server-side cursor over it.

        The first row is fetched here, so failures that happen before any
        output is produced surface as a plain error response. Ownership of
        the connection passes to the returned stream.

        Raises:
            TableNotFound: If the table is not in the current table list
            IntrospectionError: If the table list cannot be read
            StreamAbort: If the SELECT fails before the first row
        """
        self.inspector.require_table(table_name)

        statement = select_all(table_name).execution_options(
            stream_results=True,
            yield_per=self.yield_per,
        )
        try:
            result = self.resolved.connection.execute(statement)
            first_row = result.fetchone()
        except SQLAlchemyError as e:
            logger.error(f"CSV export error for {table_name} on {self.resolved.describe()}: {e}")
            raise StreamAbort(table_name) from e

        logger.info(f"Streaming CSV export of {table_name} from {self.resolved.describe()}")
        return CsvExportStream(
            table_name,
            self.resolved,
            result,
            first_row,
            flush_bytes=self.flush_bytes,
        )
