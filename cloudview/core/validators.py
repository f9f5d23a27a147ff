"""
Input Validators - Sanitization and validation utilities.

This module provides light, security-focused input checks:
- Connection field sanitization
- Port validation
- Table name shape checks

Table names are authorised separately: only names present in the current
introspection result are ever passed to the engine.
"""
import re
from typing import Optional, Tuple

from cloudview.core.logging_config import get_logger

logger = get_logger(__name__)

MAX_FIELD_LENGTH = 1024
MAX_TABLE_NAME_LENGTH = 255

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_field(value: Optional[str], max_length: int = MAX_FIELD_LENGTH) -> Optional[str]:
    """
    Sanitize a single connection field.

    - Converts non-strings (e.g. an int port from a settings file) to str
    - Strips leading/trailing whitespace
    - Removes control characters
    - Treats blank and over-long values as missing

    Values are never shortened: a cut-down host or file path would name a
    different database.

    Passwords should not go through this; leading or trailing spaces may be
    part of them.

    Args:
        value: Raw field value
        max_length: Maximum allowed length

    Returns:
        Sanitized value, or None when nothing usable remains
    """
    if value is None:
        return None

    cleaned = _CONTROL_CHARS.sub("", str(value)).strip()
    if not cleaned:
        return None

    if len(cleaned) > max_length:
        logger.warning(f"Connection field of {len(cleaned)} characters rejected (max {max_length})")
        return None

    return cleaned


def validate_port(port: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a TCP port given as text.

    Args:
        port: Port value

    Returns:
        Tuple of (is_valid, error_message)
    """
    # isdigit() alone admits superscripts and other non-ASCII digits int() rejects
    if not port or not (port.isascii() and port.isdigit()):
        return False, f"Invalid port: {port!r} (must be a number)"

    if not 0 < int(port) < 65536:
        return False, f"Invalid port: {port} (must be between 1 and 65535)"

    return True, None


def validate_table_name(table_name: str) -> Tuple[bool, Optional[str]]:
    """
    Reject table names that cannot possibly be a real identifier.

    Args:
        table_name: Table name from the request path

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not table_name or not table_name.strip():
        return False, "Table name cannot be empty"

    if len(table_name) > MAX_TABLE_NAME_LENGTH:
        return False, f"Table name too long (max {MAX_TABLE_NAME_LENGTH} characters)"

    if _CONTROL_CHARS.search(table_name):
        logger.warning("Table name with control characters rejected")
        return False, "Table name contains control characters"

    return True, None
