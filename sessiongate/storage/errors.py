from __future__ import annotations

from typing import Any, Dict, Optional


class ConstraintViolation(Exception):
    """Raised when a storage-layer uniqueness or FK constraint is violated."""

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class UniqueConstraintViolation(ConstraintViolation):
    """A unique column (username, session token) already holds the value."""


class ReferentialIntegrityViolation(ConstraintViolation):
    """A row is still referenced (user with sessions) or references a missing row."""


class StoreUnavailable(Exception):
    """The backing datastore could not be reached or failed mid-operation."""

    def __init__(self, message: str, *, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation


__all__ = [
    "ConstraintViolation",
    "UniqueConstraintViolation",
    "ReferentialIntegrityViolation",
    "StoreUnavailable",
]
