"""
Concurrency Queue Exceptions

All exceptions related to admission into the bounded concurrency queue.

Author: System Architect
Date: 2025-12-14
"""

from search_dispatch.core.exceptions.base import DispatchBaseError


class QueueError(DispatchBaseError):
    """Base exception for concurrency queue errors."""
    pass


class QueueFullError(QueueError):
    """
    Raised when the wait queue is full (backpressure).

    This indicates the system is under heavy load and cannot accept more work.
    Clients should back off and retry.
    """
    pass


class QueueTimeoutError(QueueError):
    """Raised when a request waited longer than its queue timeout for a slot."""
    pass


class RequestCancelledError(QueueError):
    """Raised for a queued request removed by cancel_request() or clear_queue()."""
    pass
