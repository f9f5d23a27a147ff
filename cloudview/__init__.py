"""
CloudView - browse any relational database through one API.

This package contains all application source code organized by responsibility:
- api/       : FastAPI routes and HTTP handling
- core/      : Configuration, logging, errors and cross-cutting utilities
- database/  : Credential resolution, connections, introspection, row reads
- models/    : Pydantic models for request/response schemas
"""
__version__ = "1.0.0"
