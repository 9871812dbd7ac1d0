"""Exception classes for the activity ledger."""

from typing import Optional

from fastapi import status


class LedgerError(Exception):
    """Base exception for the activity ledger."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(LedgerError):
    """Raised when an activity or resource does not exist."""
    status_code = status.HTTP_404_NOT_FOUND


class UnauthorizedError(LedgerError):
    """Raised when the caller lacks permission."""
    status_code = status.HTTP_403_FORBIDDEN


class ValidationError(LedgerError):
    """Raised for bad enum values, malformed field maps or pagination bounds."""
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(LedgerError):
    """Raised when live state diverged from what an activity recorded."""
    status_code = status.HTTP_409_CONFLICT


class ChainIntegrityError(LedgerError):
    """Raised when a stored hash does not match its recomputed value."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, entry_id: Optional[str] = None, position: Optional[int] = None):
        self.entry_id = entry_id
        self.position = position
        super().__init__(message)


class TransactionError(LedgerError):
    """Raised when the underlying store fails mid-transaction."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
