"""
CloudView application factory.

create_app() wires settings, logging, the middleware stack (CORS, signed
session cookie, audit log, security headers), error handlers and routers.
Shutdown disposes every cached database engine.

Run with: uvicorn cloudview.api.main:app --reload
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from cloudview import __version__
from cloudview.core.audit import AuditMiddleware, SecurityHeadersMiddleware
from cloudview.core.config import Settings, get_settings
from cloudview.core.exceptions import CloudviewException
from cloudview.core.logging_config import get_logger, setup_logging
from cloudview.database.connection_manager import reset_connection_manager
from cloudview.api.routes import connection_router, health_router, tables_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log effective settings on startup (never credentials); dispose engines on shutdown."""
    settings: Settings = app.state.settings
    logger.info(f"Starting {settings.app_name} {__version__} in {settings.app_env} mode")
    logger.info(f"Max connections: {settings.max_connections}, audit logging: {settings.enable_audit_logging}")

    yield

    logger.info(f"Shutting down {settings.app_name}")
    reset_connection_manager()


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(CloudviewException)
    async def cloudview_exception_handler(request: Request, exc: CloudviewException):
        """Handle all custom CloudView exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict()
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        # Logged with traceback, never returned: driver errors echo hostnames, usernames and SQL
        logger.exception(f"Unhandled exception on {request.url.path}: {type(exc).__name__}")

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "An unexpected error occurred",
                "details": None,
            }
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use; defaults to get_settings()

    Returns:
        Configured FastAPI instance
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_dir)

    app = FastAPI(
        title="CloudView API",
        description="""
        Browse any relational database through one API.

        - **List tables** of SQLite, MySQL, PostgreSQL and SQL Server databases
        - **Read rows** of a table as JSON
        - **Export** a table as a streamed CSV download

        Connection parameters may be sent with each request (`db_connection`,
        `db_host`, `db_port`, `db_database`, `db_username`, `db_password`);
        a complete set is remembered, encrypted, for the rest of the session.
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings

    # ============================================================
    # Middleware Configuration (last added runs first)
    # ============================================================

    app.add_middleware(SecurityHeadersMiddleware)

    if settings.enable_audit_logging:
        app.add_middleware(AuditMiddleware)
        logger.info("Audit logging middleware enabled")

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        session_cookie=settings.session_cookie,
        same_site="lax",
        https_only=settings.is_production(),
    )

    if settings.is_development():
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        logger.warning("CORS configured for development (all origins allowed)")

    register_exception_handlers(app)

    # ============================================================
    # Routers
    # ============================================================

    app.include_router(health_router)
    app.include_router(tables_router)
    app.include_router(connection_router)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "CloudView API",
            "version": __version__,
            "documentation": "/docs",
            "health": "/health"
        }

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "cloudview.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development()
    )


if __name__ == "__main__":
    run()
