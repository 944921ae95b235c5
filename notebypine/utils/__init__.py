"""
Utility modules package.
"""

from notebypine.utils.errors import AppError, NotFoundError, ValidationError
from notebypine.utils.validators import validate_email, validate_query, validate_title

__all__ = [
    "AppError",
    "NotFoundError",
    "ValidationError",
    "validate_email",
    "validate_query",
    "validate_title",
]
