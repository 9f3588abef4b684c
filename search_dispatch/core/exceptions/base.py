"""
Base Exception Class

This module contains ONLY the base exception class that all other exceptions inherit from.
All specialized exceptions are in their respective themed modules.

Author: System Architect
Date: 2025-12-14
"""

from typing import Any


class DispatchBaseError(Exception):
    """
    Base exception for all search dispatch errors.

    All custom exceptions inherit from this class to enable:
    - Consistent error handling
    - Request ID correlation
    - Structured error logging

    Attributes:
        message: Error message
        request_id: Request ID for correlation (if available)
        details: Additional error details (dict)

    Example:
        raise BackendHTTPError(
            "arxiv returned 503",
            status_code=503,
            request_id="search-42:arxiv",
            details={"backend_id": "arxiv", "attempt": 2}
        )
    """

    def __init__(
        self, message: str, request_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.request_id = request_id
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging/API responses.

        Returns:
            Dict with error_type, message, request_id, and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "request_id": self.request_id,
            "details": self.details,
        }

    def with_suggestion(self, suggestion: str) -> "DispatchBaseError":
        """
        Add a suggestion to help callers fix the error.

        Returns:
            Self (for method chaining)
        """
        self.details["suggestion"] = suggestion
        return self

    def with_context(self, **context) -> "DispatchBaseError":
        """
        Add additional context to the error details.

        Returns:
            Self (for method chaining)
        """
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        """
        Return detailed string representation for debugging.

        Example:
            >>> error = QueueTimeoutError(
            ...     "Queued too long", request_id="s-1:wiki", details={"timeout": 30}
            ... )
            >>> repr(error)
            "QueueTimeoutError(message='Queued too long', request_id='s-1:wiki', details={'timeout': 30})"
        """
        details_str = f", details={self.details}" if self.details else ""
        request_id_str = f", request_id='{self.request_id}'" if self.request_id else ""
        return f"{self.__class__.__name__}(message='{self.message}'{request_id_str}{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        request_id: str | None = None,
        **details
    ) -> "DispatchBaseError":
        """
        Create an error from another exception.

        Useful for wrapping third-party exceptions (httpx, asyncio) with
        additional context.

        Example:
            >>> try:
            ...     await client.get(url)
            ... except httpx.ConnectError as e:
            ...     raise NetworkError.from_exception(e, backend_id="arxiv")
        """
        error_message = message or str(exc)
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, request_id=request_id, details=error_details)


# Configuration exception (kept here as it's fundamental)
class ConfigurationError(DispatchBaseError):
    """Raised when configuration is invalid or missing."""
    pass
