"""
Base Exception Classes for KumaSync

Provides the foundation exception hierarchy from which all
other exceptions inherit.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class KumaSyncException(Exception):
    """
    Base Exception Class

    All custom exceptions in the application inherit from this class.
    Provides common functionality for error handling and logging.

    Attributes:
        message: Human-readable error message
        error_code: Numeric error code for categorization
        details: Additional error details as dictionary
        cause: The underlying exception, if any
        http_status: Status code used by the administrative surface
    """

    default_error_code: int = 1000

    # Status code served when this error reaches the HTTP surface
    http_status: int = 500

    def __init__(
        self,
        message: str = "An error occurred",
        error_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            error_code: Numeric error code
            details: Additional error details
            cause: The underlying exception that caused this one
        """
        super().__init__(message)

        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.cause = cause

    @property
    def full_message(self) -> str:
        """Get full error message with code."""
        return f"[{self.error_code}] {self.message}"

    def log_format(self) -> str:
        """
        Format exception for logging.

        Returns:
            Formatted string for logging
        """
        parts = [
            f"Exception: {self.__class__.__name__}",
            f"Code: {self.error_code}",
            f"Message: {self.message}"
        ]

        if self.details:
            parts.append(f"Details: {self.details}")

        if self.cause:
            parts.append(f"Cause: {self.cause}")

        return " | ".join(parts)

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code}, "
            f"details={self.details})"
        )


class UnauthorizedError(KumaSyncException):
    """
    Unauthorized Error

    Raised when a mutating administrative request carries no valid
    bearer token while one is configured.
    """

    default_error_code = 1400
    http_status = 401

    def __init__(
        self,
        message: str = "Unauthorized",
        action: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if action:
            self.details["action"] = action
