"""
Connection Routes - inspect and clear the session's stored credentials.

These endpoints allow users to:
- See which credential source their requests currently resolve to
- Forget the encrypted credential set stored in their session
"""
from fastapi import APIRouter, Depends, Request

from cloudview.core.logging_config import get_logger
from cloudview.database.connection_manager import ConnectionManager
from cloudview.database.credentials import CredentialResolver, RequestContext, Resolution
from cloudview.api.dependencies import (
    SESSION_ID_KEY,
    get_manager,
    get_resolver,
    request_context,
    resolve_credentials,
)
from cloudview.models.browser import ConnectionForgetResponse, ConnectionStatusResponse

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/cloudview/connection",
    tags=["Connection"],
)


@router.get(
    "",
    response_model=ConnectionStatusResponse,
    summary="Get connection status",
    description="""
    Resolves credentials exactly like the table endpoints do, without
    opening a connection. The password is never returned.
    """
)
def get_connection_status(
    context: RequestContext = Depends(request_context),
    resolution: Resolution = Depends(resolve_credentials),
    resolver: CredentialResolver = Depends(get_resolver),
) -> ConnectionStatusResponse:
    stored = resolver.store is not None and resolver.store.has_credentials(context.session)
    return ConnectionStatusResponse(
        source=resolution.source,
        is_default=resolution.is_default,
        stored_in_session=stored,
        parameters=resolution.parameters.redacted() if resolution.parameters else None,
    )


@router.delete(
    "",
    response_model=ConnectionForgetResponse,
    summary="Forget stored credentials",
    description="Clear the encrypted credential set kept in this session."
)
def forget_connection(
    request: Request,
    resolver: CredentialResolver = Depends(get_resolver),
    manager: ConnectionManager = Depends(get_manager),
) -> ConnectionForgetResponse:
    forgotten = resolver.forget(RequestContext(payload={}, session=request.session))

    slot = request.session.get(SESSION_ID_KEY)
    if slot:
        manager.release_slot(slot)

    if forgotten:
        logger.info("Session credentials forgotten")
        return ConnectionForgetResponse(forgotten=True, message="Stored credentials cleared")
    return ConnectionForgetResponse(forgotten=False, message="No stored credentials found")
