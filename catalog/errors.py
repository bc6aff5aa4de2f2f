"""
Error taxonomy for the book review platform.

Every error carries an HTTP status code and the envelope status derived from
it: "fail" for client errors, "error" for server errors.
"""

from typing import Optional


class AppError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = 500
    default_message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class NotFoundError(AppError):
    """Referenced entity does not exist."""
    status_code = 404
    default_message = "Resource not found"


class ValidationFailure(AppError):
    """Missing or invalid input."""
    status_code = 400
    default_message = "Invalid input data"


class DuplicateConflict(AppError):
    """A unique constraint was violated."""
    status_code = 400
    default_message = "Duplicate value"


class AuthorizationFailure(AppError):
    """The acting identity lacks the rights for the action."""
    status_code = 403
    default_message = "You do not have permission to perform this action"


class AuthenticationRequired(AppError):
    """No identity, or an invalid one, was presented."""
    status_code = 401
    default_message = "You are not logged in. Please log in to get access"


class RatingRecomputeError(AppError):
    """Rating statistics of a book could not be recomputed."""
    status_code = 500
    default_message = "Failed to update book rating statistics"
