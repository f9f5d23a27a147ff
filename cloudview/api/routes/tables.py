"""
Table Routes - list tables, read rows, export CSV.

Endpoints:
- GET /api/cloudview/tables                          : table names
- GET /api/cloudview/table/{table_name}              : all rows of a table
- GET /api/cloudview/table/{table_name}/export/csv   : streamed CSV download

Each accepts the optional db_* query parameters; when all six are present
they are used (and remembered for the session), otherwise the credential
chain decides.
"""
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from cloudview.core.config import Settings, get_settings
from cloudview.core.logging_config import get_logger
from cloudview.database.connection_manager import ResolvedConnection
from cloudview.database.reader import CSV_MEDIA_TYPE, CsvExporter, RowReader
from cloudview.database.schema import SchemaInspector
from cloudview.api.dependencies import (
    checked_table_name,
    get_connection,
    open_connection,
)
from cloudview.models.browser import ErrorResponse

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/cloudview",
    tags=["Tables"],
    responses={500: {"model": ErrorResponse}},
)


@router.get(
    "/tables",
    response_model=List[str],
    summary="List tables",
    description="""
    Returns the user tables of the resolved database, in the order the
    engine reports them. Framework tables (migrations, jobs, sessions,
    cache, telescope/horizon) are hidden.
    """
)
def list_tables(resolved: ResolvedConnection = Depends(get_connection)) -> List[str]:
    return SchemaInspector(resolved).list_tables()


@router.get(
    "/table/{table_name}",
    summary="Get table rows",
    description="Returns every row of a table as a JSON object per row.",
    responses={404: {"model": ErrorResponse}},
)
def get_table_rows(
    table_name: str = Depends(checked_table_name),
    resolved: ResolvedConnection = Depends(get_connection),
) -> JSONResponse:
    rows = RowReader(resolved).list_rows(table_name)
    return JSONResponse(content=rows)


@router.get(
    "/table/{table_name}/export/csv",
    summary="Export table to CSV",
    description="""
    Streams the table as a CSV attachment named <table_name>.csv.

    Rows are read through a server-side cursor and sent in chunks, so tables
    of any size export in constant memory. If the database fails part-way,
    the download is cut short; bytes already sent are not retracted.
    """,
    response_class=StreamingResponse,
    responses={
        200: {"content": {CSV_MEDIA_TYPE: {}}},
        404: {"model": ErrorResponse},
    },
)
def export_table_csv(
    table_name: str = Depends(checked_table_name),
    settings: Settings = Depends(get_settings),
    # Declared last so no later dependency can fail while it is held.
    # The stream, not the request, owns this handle
    resolved: ResolvedConnection = Depends(open_connection),
) -> StreamingResponse:
    try:
        stream = CsvExporter(
            resolved,
            yield_per=settings.export_yield_per,
            flush_bytes=settings.export_flush_bytes,
        ).open(table_name)
    except BaseException:
        resolved.close()
        raise

    return StreamingResponse(
        stream,
        media_type=CSV_MEDIA_TYPE,
        headers=stream.headers(),
        # Runs after the body is sent; releases the handle if iteration never finished
        background=BackgroundTask(stream.close),
    )
