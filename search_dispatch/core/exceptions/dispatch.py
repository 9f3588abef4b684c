"""
Dispatch Exceptions

Systemic failures surfaced to the caller of Dispatcher.search().

Author: System Architect
Date: 2025-12-14
"""

from search_dispatch.core.exceptions.base import DispatchBaseError


class DispatchError(DispatchBaseError):
    """Base exception for dispatcher errors."""
    pass


class NoBackendsAvailableError(DispatchError):
    """
    Raised when no registered backend is currently usable.

    Every backend is either disabled or classified Unhealthy. This is a
    critical error; individual backend failures never raise it.
    """
    pass
