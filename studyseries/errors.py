"""Error taxonomy shared by the lifecycle service and the HTTP boundary."""
from __future__ import annotations


class StudyError(Exception):
    """Base error carrying a stable code the boundary can expose to clients."""

    code = "study_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(StudyError, ValueError):
    """Raised when input is rejected before any mutation takes place."""

    code = "validation_error"


class ConflictError(StudyError):
    """Raised when an operation contradicts the current state of a series."""

    code = "conflict"


class NotFoundError(StudyError, LookupError):
    """Raised for unknown series or session identifiers."""

    code = "not_found"


__all__ = ["ConflictError", "NotFoundError", "StudyError", "ValidationError"]
