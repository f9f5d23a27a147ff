"""
Models module - Pydantic schemas for data validation.

This module defines:
- Request models: Input validation for API endpoints
- Response models: Output formatting for API responses
"""
from cloudview.models.browser import (
    ConnectionQuery,
    ConnectionStatusResponse,
    ConnectionForgetResponse,
    HealthResponse,
    ErrorResponse,
)

__all__ = [
    "ConnectionQuery",
    "ConnectionStatusResponse",
    "ConnectionForgetResponse",
    "HealthResponse",
    "ErrorResponse",
]
