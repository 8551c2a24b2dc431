"""Exceptions raised by the compound repository and translated by the API layer."""
from __future__ import annotations

from typing import Dict, Optional


class CompoundError(Exception):
    """Base class for compound repository failures."""


class CompoundValidationError(CompoundError):
    """Raised before any I/O when an identifier or document is malformed."""

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field_errors = field_errors or {}


class CompoundConflictError(CompoundError):
    """Raised when an update carries a stale ``updatedAt`` value."""


class CompoundStorageError(CompoundError):
    """Raised when a database statement fails; the transaction has been rolled back."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


__all__ = [
    "CompoundConflictError",
    "CompoundError",
    "CompoundStorageError",
    "CompoundValidationError",
]
