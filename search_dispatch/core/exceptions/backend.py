"""
Search Backend Exceptions

All exceptions raised by search backend clients. The retry executor
classifies these into retryable (network, timeout, 5xx, 429) and terminal
(everything else).

Author: System Architect
Date: 2025-12-14
"""

from typing import Any

from search_dispatch.core.exceptions.base import DispatchBaseError


class BackendError(DispatchBaseError):
    """Base exception for search backend errors."""

    def __init__(
        self,
        message: str,
        backend_id: str | None = None,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, request_id=request_id, details=details)
        self.backend_id = backend_id
        if backend_id is not None:
            self.details.setdefault("backend_id", backend_id)


class NetworkError(BackendError):
    """
    Raised when the backend cannot be reached.

    Common causes:
    - Connection reset or refused
    - DNS resolution failure
    - TLS handshake failure
    """
    pass


class BackendTimeoutError(BackendError):
    """Raised when a single backend attempt exceeds its timeout."""
    pass


class RateLimitedError(BackendError):
    """
    Raised when the backend answers HTTP 429.

    ``retry_after`` carries the backend's Retry-After hint in seconds, when given.
    """

    status_code = 429

    def __init__(
        self,
        message: str,
        backend_id: str | None = None,
        retry_after: float | None = None,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, backend_id=backend_id, request_id=request_id, details=details)
        self.retry_after = retry_after
        if retry_after is not None:
            self.details.setdefault("retry_after", retry_after)


class BackendHTTPError(BackendError):
    """Raised when the backend answers with a non-success HTTP status."""

    def __init__(
        self,
        message: str,
        status_code: int,
        backend_id: str | None = None,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, backend_id=backend_id, request_id=request_id, details=details)
        self.status_code = status_code
        self.details.setdefault("status_code", status_code)


class InvalidResponseError(BackendError):
    """
    Raised when the backend response cannot be parsed.

    Not retryable: the same request will produce the same payload.
    """
    pass
