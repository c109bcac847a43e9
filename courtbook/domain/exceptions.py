"""
Domain-specific exception hierarchy for the booking engine.
"""


class CourtbookError(Exception):
    """Base class for all application-level errors."""


class ValidationError(CourtbookError, ValueError):
    """Raised for malformed input such as start >= end or an empty selection."""


class InvalidStateTransition(ValidationError):
    """Raised when a reservation cannot move to the requested status."""


class InvariantViolation(CourtbookError):
    """Raised when an edit would break pricing-tier coverage of working hours."""


class NotFoundError(CourtbookError):
    """Raised for unknown facilities, day types, intervals or reservations."""


class ConflictError(CourtbookError):
    """Raised when a run overlaps an existing reservation at commit time."""

    def __init__(self, message: str, run=None):
        super().__init__(message)
        self.run = run


class StorageError(CourtbookError):
    """Raised when the reservation store cannot be read or written."""
