"""
Request and Response models for the browser API.

These Pydantic models define the contract between client and server.
Table lists and row lists are returned as bare JSON arrays, so only the
connection, health and error payloads need models here.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ConnectionQuery(BaseModel):
    """
    Optional connection parameters carried with a request.

    All six must be present for them to be used; a partial set is ignored.
    Field names match the query parameters the frontend sends.
    """
    db_connection: Optional[str] = Field(
        default=None,
        description="Driver: sqlite, mysql, pgsql or sqlsrv (other SQLAlchemy dialect names are tried as-is)",
        examples=["pgsql"]
    )
    db_host: Optional[str] = Field(default=None, description="Database host address")
    db_port: Optional[str] = Field(default=None, description="Database port", examples=["5432"])
    db_database: Optional[str] = Field(default=None, description="Database name (file path for SQLite)")
    db_username: Optional[str] = Field(default=None, description="Database username")
    db_password: Optional[str] = Field(default=None, description="Database password")

    def as_payload(self) -> Dict[str, Optional[str]]:
        return self.model_dump()


class ConnectionStatusResponse(BaseModel):
    """Which credential source the current request resolved to."""
    source: str = Field(..., description="session, environment, file, request or default")
    is_default: bool
    stored_in_session: bool = Field(
        default=False,
        description="Whether the session holds an encrypted credential set"
    )
    parameters: Optional[Dict[str, str]] = Field(
        default=None,
        description="Resolved parameters with the password masked"
    )


class ConnectionForgetResponse(BaseModel):
    """Response for clearing stored session credentials."""
    forgotten: bool
    message: str


class HealthResponse(BaseModel):
    """Response model for the /health endpoint."""
    status: str = Field(default="healthy")
    version: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str
    message: str
    details: Optional[str] = None
