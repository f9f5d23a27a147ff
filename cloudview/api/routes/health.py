"""
Health Routes - liveness and readiness checks.

/health never touches a database. /health/ready opens the default
connection and reports connection manager usage alongside the result.
"""
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from cloudview import __version__
from cloudview.core.logging_config import get_logger
from cloudview.database.connection_manager import ConnectionManager
from cloudview.api.dependencies import get_manager
from cloudview.models.browser import HealthResponse

logger = get_logger(__name__)

router = APIRouter(
    prefix="/health",
    tags=["Health"],
)


@router.get(
    "",
    response_model=HealthResponse,
    summary="Liveness check",
    description="200 while the process is serving requests."
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="healthy", version=__version__, timestamp=datetime.utcnow())


@router.get(
    "/ready",
    response_model=HealthResponse,
    summary="Readiness check",
    description="""
    Runs SELECT 1 on the default connection. Responds 503 with the same
    body shape when that fails, so orchestrators stop routing traffic here.
    `details` carries engine, session and open-connection counts.
    """
)
def readiness_check(manager: ConnectionManager = Depends(get_manager)):
    ready = manager.check_default()
    payload = HealthResponse(
        status="ready" if ready else "unavailable",
        version=__version__,
        timestamp=datetime.utcnow(),
        details=manager.stats(),
    )

    if not ready:
        logger.warning("Readiness check failed: default connection unavailable")
        return JSONResponse(status_code=503, content=payload.model_dump(mode="json"))
    return payload
