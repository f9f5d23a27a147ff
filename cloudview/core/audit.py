"""
HTTP middleware: per-request audit lines and response hardening headers.

An audit line records method, path, status, duration, client address and
the credential tier that served the request. Query strings are left out
on purpose because they carry db_password.
"""
import time
from typing import Callable, Dict

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from cloudview.core.logging_config import get_logger

logger = get_logger(__name__)

# Health checks hit these every few seconds; keep them out of INFO output
QUIET_PATHS = frozenset({"/health", "/health/ready"})

SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def _level_for(status_code: int) -> Callable[..., None]:
    if status_code >= 500:
        return logger.error
    if status_code >= 400:
        return logger.warning
    return logger.info


class AuditMiddleware(BaseHTTPMiddleware):
    """
    Writes one audit line per request.

    For CSV exports the duration is measured up to the response headers;
    the exporter logs the row count once the body has been sent.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        client = request.client.host if request.client else "unknown"
        where = f"{request.method} {request.url.path}"

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - started
            logger.error(f"AUDIT {where} failed after {elapsed:.3f}s client={client} error={type(e).__name__}")
            raise

        elapsed = time.perf_counter() - started
        response.headers["X-Response-Time"] = f"{elapsed:.3f}s"

        if request.url.path in QUIET_PATHS:
            logger.debug(f"AUDIT {where} status={response.status_code} duration={elapsed:.3f}s")
            return response

        source = getattr(request.state, "credential_source", "-")
        _level_for(response.status_code)(
            f"AUDIT {where} status={response.status_code} duration={elapsed:.3f}s "
            f"client={client} source={source}"
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds SECURITY_HEADERS to every response.

    Also sets Cache-Control: no-store unless a route chose its own policy,
    so table contents never land in shared caches.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        response.headers.setdefault("Cache-Control", "no-store")
        return response
