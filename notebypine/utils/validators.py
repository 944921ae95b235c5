"""
Input validation utilities.

Cheap checks run before a request reaches PocketBase (MCP pre-validation,
login form). Each returns (is_valid, error_message).
"""

import re
from typing import Any, Tuple

TITLE_MAX_LENGTH = 200
QUERY_MAX_LENGTH = 500


def validate_email(email: str) -> Tuple[bool, str]:
    """
    Validate email format.

    Args:
        email: Email address to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not email:
        return False, "Email is required"

    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'

    if not re.match(pattern, email):
        return False, "Invalid email format"

    return True, ""


def validate_title(title: Any) -> Tuple[bool, str]:
    """
    Validate an incident title.

    Args:
        title: Title to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(title, str) or not title.strip():
        return False, "Title is required"

    if len(title) > TITLE_MAX_LENGTH:
        return False, f"Title must be {TITLE_MAX_LENGTH} characters or less"

    return True, ""


def validate_query(query: Any) -> Tuple[bool, str]:
    """Validate a search query string."""
    if not isinstance(query, str) or not query.strip():
        return False, "Query is required"

    if len(query) > QUERY_MAX_LENGTH:
        return False, f"Query must be {QUERY_MAX_LENGTH} characters or less"

    return True, ""


def validate_limit(limit: Any, minimum: int = 1, maximum: int = 100) -> Tuple[bool, str]:
    """Validate a result limit (None means use the default)."""
    if limit is None:
        return True, ""

    if isinstance(limit, bool) or not isinstance(limit, int):
        return False, "Limit must be an integer"

    if not minimum <= limit <= maximum:
        return False, f"Limit must be between {minimum} and {maximum}"

    return True, ""


def validate_record_id(record_id: Any) -> Tuple[bool, str]:
    """PocketBase ids are 15 lowercase alphanumerics; accept any safe token."""
    if not isinstance(record_id, str) or not record_id:
        return False, "ID is required"

    if not re.match(r'^[A-Za-z0-9_-]{1,64}$', record_id):
        return False, "Invalid ID format"

    return True, ""
