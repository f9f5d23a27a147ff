"""
Core module - Configuration and cross-cutting concerns.

This module provides:
- config.py         : Environment-based configuration management
- logging_config.py : Centralized logging setup with secret redaction
- exceptions.py     : Error hierarchy mapped to HTTP status codes
- crypto.py         : Encryption of stored connection credentials
- limits.py         : Cap on concurrently open database handles
"""
from cloudview.core.config import get_settings, Settings
from cloudview.core.logging_config import setup_logging, get_logger, LoggerMixin

__all__ = [
    "get_settings",
    "Settings",
    "setup_logging",
    "get_logger",
    "LoggerMixin",
]
