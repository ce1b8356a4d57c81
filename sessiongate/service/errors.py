from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Routine authentication failures never take this path; they travel as
    ``Redirect`` outcomes. These exceptions cover administrative operations
    whose failures the user-management pages report back:
    - validation_error (400)
    - forbidden (403)
    - not_found (404)
    - conflict (409)
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class ValidationError(ServiceError):
    """Submitted user fields failed validation (400)."""
    status_code = 400
    error_code = "validation_error"


class ForbiddenError(ServiceError):
    """Operation not permitted for the acting user (403)."""
    status_code = 403
    error_code = "forbidden"


class NotFoundError(ServiceError):
    """Target user does not exist (404)."""
    status_code = 404
    error_code = "not_found"


class ConflictError(ServiceError):
    """Duplicate username or user still referenced by sessions (409)."""
    status_code = 409
    error_code = "conflict"


__all__ = [
    "ServiceError",
    "ValidationError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
]
