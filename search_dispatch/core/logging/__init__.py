"""
Logging Module

structlog based structured logging with request ID correlation.

Author: System Architect
Date: 2025-12-14
"""

from search_dispatch.core.logging.logger import (
    clear_request_id,
    get_logger,
    get_request_id,
    log_stage,
    redact_text,
    set_request_id,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "log_stage",
    "redact_text",
    "set_request_id",
    "get_request_id",
    "clear_request_id",
]
