"""
Application error types.

Every failure the knowledge operations can raise is an AppError carrying an
HTTP status and a stable machine-readable code. The REST API renders them
through a single exception handler; the MCP server turns them into isError
tool results.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional


class AppError(Exception):
    """Base error with an HTTP status and error code."""

    status_code = 500
    code = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class NotFoundError(AppError):
    status_code = 404
    code = "RECORD_NOT_FOUND"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"


class DatabaseError(AppError):
    """PocketBase is unreachable or answered with an unexpected error."""

    status_code = 503
    code = "DATABASE_ERROR"


class PocketBaseError(Exception):
    """Raw non-2xx response from the PocketBase REST API."""

    def __init__(self, status: int, message: str, data: Optional[dict] = None):
        super().__init__(f"PocketBase error {status}: {message}")
        self.status = status
        self.message = message
        self.data = data or {}


def translate_pocketbase_error(exc: PocketBaseError, resource: str = "Record") -> AppError:
    """Map an upstream PocketBase failure onto the AppError hierarchy.

    Args:
        exc: The PocketBase error.
        resource: Human name of what was being accessed, for 404 messages.

    Returns:
        The matching AppError instance (not raised).
    """
    if exc.status == 404:
        return NotFoundError(f"{resource} not found")
    if exc.status == 400:
        return ValidationError(exc.message or "Invalid data", details=exc.data)
    if exc.status in (401, 403):
        return DatabaseError("PocketBase rejected the admin credentials", status_code=502)
    return DatabaseError(exc.message or "PocketBase request failed", status_code=502)


@contextmanager
def pocketbase_errors(resource: str = "Record") -> Iterator[None]:
    """Re-raise PocketBaseError inside the block as the matching AppError."""
    try:
        yield
    except PocketBaseError as e:
        raise translate_pocketbase_error(e, resource) from e
