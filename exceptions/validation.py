"""
Validation Exception Classes for KumaSync

Provides specialized exceptions for input validation errors
raised by the administrative surface and the source validator.
"""

from __future__ import annotations

from typing import Any, List, Optional

from exceptions.base import KumaSyncException


class ValidationException(KumaSyncException):
    """
    Base Validation Exception

    Parent class for all validation-related exceptions.
    """

    default_error_code = 3000
    http_status = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize validation exception.

        Args:
            message: Error message
            field: The field that failed validation
            value: The invalid value (sanitized)
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if field:
            self.details["field"] = field

        if value is not None:
            self.details["value"] = self._sanitize_value(value)

    @staticmethod
    def _sanitize_value(value: Any) -> str:
        """Truncate long values for logging."""
        str_value = str(value)

        if len(str_value) > 100:
            str_value = str_value[:100] + "..."

        return str_value


class InvalidURLError(ValidationException):
    """
    Invalid URL Error

    Raised when a source base URL is invalid or malformed.
    """

    default_error_code = 3001

    def __init__(
        self,
        message: str = "Invalid URL format",
        url: Optional[str] = None,
        reason: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="url", value=url, **kwargs)

        if reason:
            self.details["reason"] = reason


class InvalidIntervalError(ValidationException):
    """
    Invalid Interval Error

    Raised when a requested scheduler interval is below the floor.
    """

    default_error_code = 3002

    def __init__(
        self,
        message: str = "Invalid interval",
        interval: Optional[Any] = None,
        min_interval: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="interval", value=interval, **kwargs)

        if min_interval is not None:
            self.details["min_interval"] = min_interval


class MissingFieldError(ValidationException):
    """
    Missing Field Error

    Raised when one or more required fields are missing.
    """

    default_error_code = 3004

    def __init__(
        self,
        message: str = "Required field is missing",
        fields: Optional[List[str]] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if fields:
            self.details["fields"] = list(fields)


class InvalidFormatError(ValidationException):
    """
    Invalid Format Error

    Raised when a field has an unexpected type or shape.
    """

    default_error_code = 3006

    def __init__(
        self,
        message: str = "Invalid format",
        field: Optional[str] = None,
        expected: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field=field, **kwargs)

        if expected:
            self.details["expected"] = expected
