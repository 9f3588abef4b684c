"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the search dispatch layer.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for thresholds and decay factors
- Type-safe enums for state management
- Named retry presets for backends with unusual quota behaviour

Author: System Architect
Date: 2025-12-14
"""

from enum import Enum
from typing import Any

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Search processing stages used as the ``stage`` field of log entries.

    Format: {SEQUENCE}_{DESCRIPTIVE_NAME}
    - Main lifecycle stages are numbered 0.0 - 6.0
    - Cross-cutting components use an alphabetic prefix (RL, HM, LB, R, Q)
    """

    # Main Search Lifecycle (Sequential 0.0 - 6.0)
    INITIALIZATION = "0.0_INITIALIZATION"
    QUERY_VALIDATION = "1.0_QUERY_VALIDATION"
    CACHE_LOOKUP = "2.0_CACHE_LOOKUP"
    BACKEND_SELECTION = "3.0_BACKEND_SELECTION"
    DISPATCH = "4.0_DISPATCH"
    MERGE = "5.0_MERGE"
    CLEANUP = "6.0_CLEANUP"

    # Cross-Cutting Concerns (Alphabetic Prefixes)
    RATE_LIMIT = "RL_RATE_LIMIT"
    HEALTH = "HM_HEALTH_MONITOR"
    LOAD_BALANCER = "LB_LOAD_BALANCER"
    RETRY = "R_RETRY_LOGIC"
    QUEUE = "Q_CONCURRENCY_QUEUE"


# ============================================================================
# Backend Health States
# ============================================================================


class HealthState(str, Enum):
    """
    Coarse backend health classification.

    HEALTHY: Normal operation, preferred for selection
    DEGRADED: Usable but deprioritized by the load balancer
    UNHEALTHY: Excluded from selection until it recovers
    """

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


# ============================================================================
# Load Balancing Strategies
# ============================================================================


class LoadBalancingStrategy(str, Enum):
    """Backend selection strategies understood by the load balancer."""

    ROUND_ROBIN = "round-robin"
    WEIGHTED = "weighted"
    LEAST_CONNECTIONS = "least-connections"
    HEALTH_BASED = "health-based"


# ============================================================================
# Rate Limiting
# ============================================================================

ADAPTIVE_MULTIPLIER_MIN = 0.5
ADAPTIVE_MULTIPLIER_MAX = 2.0
ADAPTIVE_INCREASE_FACTOR = 1.1
ADAPTIVE_DECREASE_FACTOR = 0.9
ADAPTIVE_MIN_SAMPLES = 10  # Samples needed in the window before adjusting
RATE_LIMIT_COUNTER_RETENTION = 0.8  # Share of success/failure counts kept on rollover
RATE_LIMIT_IDLE_WINDOWS = 2  # Caller-scoped entries idle this many windows are dropped

# ============================================================================
# Health Monitoring
# ============================================================================

HEALTH_DEGRADED_CONSECUTIVE_ERRORS = 3
HEALTH_UNHEALTHY_CONSECUTIVE_ERRORS = 6
HEALTH_FAILOVER_ERROR_RATE = 0.5
HEALTH_MIN_SAMPLES = 10
HEALTH_COUNTER_DECAY = 0.5  # Rolling counters are halved at each window reset
HEALTH_RESPONSE_TIME_ALPHA = 0.1  # EMA smoothing factor
HEALTH_PROBE_QUERY = "health check"

# ============================================================================
# Concurrency Queue
# ============================================================================

MAX_CONCURRENT_REQUESTS = 5
MAX_QUEUE_SIZE = 100
QUEUE_REQUEST_TIMEOUT = 30.0  # Seconds a request may wait for a slot

# ============================================================================
# Retry settings
# ============================================================================

MAX_RETRIES = 3  # Maximum retry attempts (after the initial one)
RETRY_BASE_DELAY = 1.0  # Base delay for exponential backoff (seconds)
RETRY_MAX_DELAY = 30.0  # Maximum delay for exponential backoff (seconds)
RETRY_BACKOFF_MULTIPLIER = 2.0
RETRY_JITTER_RATIO = 0.5  # +/- 50%

# Per-backend retry presets. Keys mirror RetryPolicy fields; "retry_on" narrows
# the retry condition ("http_only" retries only 5xx and 429 responses).
BACKEND_RETRY_PRESETS: dict[str, dict[str, Any]] = {
    "arxiv": {
        "max_retries": 5,
        "base_delay": 2.0,
        "backoff_multiplier": 2.0,
        "max_delay": 30.0,
        "timeout": 20.0,
    },
    "pubmed": {
        "max_retries": 3,
        "base_delay": 1.0,
        "backoff_multiplier": 2.0,
        "max_delay": 10.0,
        "timeout": 15.0,
    },
    "github": {
        "max_retries": 2,
        "base_delay": 1.0,
        "backoff_multiplier": 2.0,
        "max_delay": 5.0,
        "timeout": 10.0,
        "retry_on": "http_only",
    },
    "searx": {
        "max_retries": 4,
        "base_delay": 1.0,
        "backoff_multiplier": 1.5,
        "max_delay": 10.0,
        "timeout": 20.0,
    },
    "default": {
        "max_retries": 3,
        "base_delay": 1.0,
        "backoff_multiplier": 2.0,
        "max_delay": 15.0,
        "timeout": 15.0,
    },
}

# ============================================================================
# Load balancing / dispatch
# ============================================================================

DEFAULT_MAX_SOURCES = 3
MAX_QUERY_LENGTH = 2048
SEARCH_DEADLINE = 30.0  # Overall search deadline (seconds)
RESULT_SOURCE_TAG = "search-dispatch"

# ============================================================================
# Result cache
# ============================================================================

RESULT_CACHE_MAX_SIZE = 1000
RESULT_CACHE_TTL = 300

# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_REQUEST_ID = "X-Request-ID"
