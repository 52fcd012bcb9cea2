"""Error taxonomy shared by the scoring engine, services and API layer."""
from typing import Any, Dict, Optional


class ReviewError(Exception):
    """Base error carrying a machine-checkable kind and a readable message."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "details": self.details}


class ValidationError(ReviewError):
    """Malformed or out-of-range input; the caller can correct it."""
    kind = "validation"
    status_code = 400


class OutOfRangeError(ValidationError):
    """Raw score outside a criterion's [min_score, max_score] bounds."""


class InvalidRubricLevelError(ValidationError):
    """Raw score or level that matches no defined rubric level."""


class InvalidApplicationError(ValidationError):
    """Application does not belong to the target program."""


class NotFoundError(ReviewError):
    kind = "not_found"
    status_code = 404


class ForbiddenError(ReviewError):
    kind = "forbidden"
    status_code = 403


class ConflictError(ReviewError):
    """Requested change would violate a stored-state invariant."""
    kind = "conflict"
    status_code = 409


class InternalError(ReviewError):
    kind = "internal"
    status_code = 500
