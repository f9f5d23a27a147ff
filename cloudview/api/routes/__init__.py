"""
API Routes module - Endpoint definitions.

Each file in this module defines routes for a specific domain:
- tables.py     : Table listing, row reads and CSV export
- connection.py : Credential status and forgetting stored credentials
- health.py     : Health check endpoints
"""
from cloudview.api.routes.tables import router as tables_router
from cloudview.api.routes.connection import router as connection_router
from cloudview.api.routes.health import router as health_router

__all__ = [
    "tables_router",
    "connection_router",
    "health_router",
]
