"""
Exceptions Package for KumaSync

Provides the exception hierarchy for error handling
throughout the application.
"""

from exceptions.base import (
    KumaSyncException,
    UnauthorizedError,
)

from exceptions.database import (
    DatabaseException,
    DatabaseConnectionError,
    PersistenceError,
    NotFoundError,
    ConflictError,
)

from exceptions.validation import (
    ValidationException,
    InvalidURLError,
    InvalidIntervalError,
    MissingFieldError,
    InvalidFormatError,
)

from exceptions.remote import (
    RemoteException,
    RemoteError,
    SyncTimeoutError,
)

__all__ = [
    # Base exceptions
    "KumaSyncException",
    "UnauthorizedError",

    # Database exceptions
    "DatabaseException",
    "DatabaseConnectionError",
    "PersistenceError",
    "NotFoundError",
    "ConflictError",

    # Validation exceptions
    "ValidationException",
    "InvalidURLError",
    "InvalidIntervalError",
    "MissingFieldError",
    "InvalidFormatError",

    # Remote exceptions
    "RemoteException",
    "RemoteError",
    "SyncTimeoutError",
]
