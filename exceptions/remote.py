"""
Remote Exception Classes for KumaSync

Errors raised while talking to a remote status page.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import KumaSyncException


class RemoteException(KumaSyncException):
    """
    Base Remote Exception

    Parent class for failures of the remote status client.
    """

    default_error_code = 4000
    http_status = 502

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        slug: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if url:
            self.details["url"] = url

        if slug:
            self.details["slug"] = slug


class RemoteError(RemoteException):
    """
    Remote Error

    Raised for non-2xx responses, connection failures and payloads
    that cannot be decoded.
    """

    default_error_code = 4001

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        self.status_code = status_code
        if status_code is not None:
            self.details["status_code"] = status_code


class SyncTimeoutError(RemoteException):
    """
    Sync Timeout Error

    Raised when a remote request exceeds its total deadline.
    """

    default_error_code = 4002
    http_status = 504

    def __init__(
        self,
        message: str = "Remote request timed out",
        timeout_ms: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if timeout_ms is not None:
            self.details["timeout_ms"] = timeout_ms
