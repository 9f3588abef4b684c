"""
Exception Module

Structured exception hierarchy for the search dispatch layer.
All exceptions are organized by theme for better maintainability.

Module Structure:
-----------------
- **base.py**: DispatchBaseError base class + ConfigurationError
- **backend.py**: Errors raised by backend clients (network, timeout, HTTP, 429)
- **queue.py**: Concurrency queue admission errors
- **dispatch.py**: Systemic dispatcher errors
- **validation.py**: Request validation errors

Propagation:
------------
Backend errors never escape Dispatcher.search(); they are recorded against
backend health and turned into "zero results from that backend". Only
NoBackendsAvailableError, QueueFullError and ValidationError reach the caller.

Usage:
------
```python
from search_dispatch.core.exceptions import BackendHTTPError, QueueFullError
```

Author: System Architect
Date: 2025-12-14
"""

# Base exception
from search_dispatch.core.exceptions.base import ConfigurationError, DispatchBaseError

# Backend exceptions
from search_dispatch.core.exceptions.backend import (
    BackendError,
    BackendHTTPError,
    BackendTimeoutError,
    InvalidResponseError,
    NetworkError,
    RateLimitedError,
)

# Dispatch exceptions
from search_dispatch.core.exceptions.dispatch import DispatchError, NoBackendsAvailableError

# Queue exceptions
from search_dispatch.core.exceptions.queue import (
    QueueError,
    QueueFullError,
    QueueTimeoutError,
    RequestCancelledError,
)

# Validation exceptions
from search_dispatch.core.exceptions.validation import InvalidQueryError, ValidationError

__all__ = [
    # Base
    "DispatchBaseError",
    "ConfigurationError",
    # Backend
    "BackendError",
    "NetworkError",
    "BackendTimeoutError",
    "RateLimitedError",
    "BackendHTTPError",
    "InvalidResponseError",
    # Dispatch
    "DispatchError",
    "NoBackendsAvailableError",
    # Queue
    "QueueError",
    "QueueFullError",
    "QueueTimeoutError",
    "RequestCancelledError",
    # Validation
    "ValidationError",
    "InvalidQueryError",
]
