"""
Request-scoped dependencies.

Every browser endpoint runs the same chain:
resolve credentials -> open a handle for this request -> operate -> close.

The handle is passed explicitly to the database layer; there is no
process-wide "current connection" to swap.
"""
import threading
import uuid
from typing import Iterator, Optional

from fastapi import Depends, Request

from cloudview.core.config import get_settings
from cloudview.core.exceptions import ValidationError
from cloudview.core.validators import validate_table_name
from cloudview.database.connection_manager import (
    ConnectionManager,
    ResolvedConnection,
    get_connection_manager,
)
from cloudview.database.credentials import (
    CredentialResolver,
    RequestContext,
    Resolution,
    create_resolver,
)
from cloudview.models.browser import ConnectionQuery

SESSION_ID_KEY = "cloudview.session_id"

_resolver: Optional[CredentialResolver] = None
_resolver_lock = threading.Lock()


def get_resolver() -> CredentialResolver:
    """Get or create the credential resolver for the current settings."""
    global _resolver
    with _resolver_lock:
        if _resolver is None:
            _resolver = create_resolver(get_settings())
        return _resolver


def reset_resolver() -> None:
    global _resolver
    with _resolver_lock:
        _resolver = None


def get_manager() -> ConnectionManager:
    return get_connection_manager()


def session_slot(request: Request) -> str:
    """Stable identifier of the caller's session, created on first use."""
    slot = request.session.get(SESSION_ID_KEY)
    if not slot:
        slot = str(uuid.uuid4())
        request.session[SESSION_ID_KEY] = slot
    return slot


def request_context(request: Request, query: ConnectionQuery = Depends()) -> RequestContext:
    return RequestContext(payload=query.as_payload(), session=request.session)


def resolve_credentials(
    request: Request,
    context: RequestContext = Depends(request_context),
    resolver: CredentialResolver = Depends(get_resolver),
) -> Resolution:
    resolution = resolver.resolve(context)
    # Picked up by AuditMiddleware
    request.state.credential_source = resolution.source
    return resolution


def open_connection(
    request: Request,
    resolution: Resolution = Depends(resolve_credentials),
    manager: ConnectionManager = Depends(get_manager),
) -> ResolvedConnection:
    """
    Open a handle the caller owns.

    The export route depends on this and hands the handle to its stream,
    which closes it once the download ends.
    """
    return manager.open(resolution.parameters, slot=session_slot(request))


def get_connection(
    resolved: ResolvedConnection = Depends(open_connection),
) -> Iterator[ResolvedConnection]:
    """Handle that is closed when the request finishes."""
    try:
        yield resolved
    finally:
        resolved.close()


def checked_table_name(table_name: str) -> str:
    is_valid, error = validate_table_name(table_name)
    if not is_valid:
        raise ValidationError(error, field="table_name")
    return table_name
