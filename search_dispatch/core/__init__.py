"""
Core Module

Foundational components: configuration, logging, exceptions, events and
the resilience primitives the dispatcher composes.
"""

from .exceptions import (
    BackendError,
    ConfigurationError,
    DispatchBaseError,
    InvalidQueryError,
    NoBackendsAvailableError,
    QueueFullError,
    QueueTimeoutError,
    ValidationError,
)
from .logging import (
    clear_request_id,
    get_logger,
    get_request_id,
    log_stage,
    set_request_id,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "set_request_id",
    "get_request_id",
    "clear_request_id",
    "log_stage",
    "DispatchBaseError",
    "ConfigurationError",
    "BackendError",
    "NoBackendsAvailableError",
    "QueueFullError",
    "QueueTimeoutError",
    "ValidationError",
    "InvalidQueryError",
]
