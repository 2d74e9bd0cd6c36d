"""
Database Exception Classes for KumaSync

Provides specialized exceptions for persistence errors including
connection issues, missing records, and uniqueness conflicts.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import KumaSyncException


class DatabaseException(KumaSyncException):
    """
    Base Database Exception

    Parent class for all database-related exceptions.
    """

    default_error_code = 2000

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize database exception.

        Args:
            message: Error message
            table: The database table involved
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if table:
            self.details["table"] = table


class DatabaseConnectionError(DatabaseException):
    """
    Database Connection Error

    Raised when unable to establish or maintain database connection.
    """

    default_error_code = 2001

    def __init__(
        self,
        message: str = "Unable to connect to database",
        host: Optional[str] = None,
        database: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if host:
            self.details["host"] = host

        if database:
            self.details["database"] = database


class PersistenceError(DatabaseException):
    """
    Persistence Error

    Raised when a write to the durable store fails. Inside the sync
    pipeline this is caught and logged for bookkeeping writes
    (history, metrics, cache) and propagated for reconciliation.
    """

    default_error_code = 2002

    def __init__(
        self,
        message: str = "Database operation failed",
        operation: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if operation:
            self.details["operation"] = operation


class NotFoundError(DatabaseException):
    """
    Not Found Error

    Raised when a requested record is not found in the database.
    """

    default_error_code = 2003
    http_status = 404

    def __init__(
        self,
        message: str = "Record not found",
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize not found error.

        Args:
            message: Error message
            entity_type: Type of entity not found (Source, Monitor, ...)
            entity_id: ID of the entity
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if entity_type:
            self.details["entity_type"] = entity_type

        if entity_id is not None:
            self.details["entity_id"] = str(entity_id)


class ConflictError(DatabaseException):
    """
    Conflict Error

    Raised when an insert or update violates a uniqueness constraint,
    such as two sources sharing the same URL and slug.
    """

    default_error_code = 2004
    http_status = 409

    def __init__(
        self,
        message: str = "Record already exists",
        entity_type: Optional[str] = None,
        constraint: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if entity_type:
            self.details["entity_type"] = entity_type

        if constraint:
            self.details["constraint"] = constraint
