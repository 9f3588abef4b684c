"""
Resilience Module - Core Resilience Components

The five primitives the dispatcher composes for every backend call:

COMPONENTS:
===========
- RateLimiter: per-backend fixed window quota with burst and adaptive multiplier
- HealthMonitor: HEALTHY / DEGRADED / UNHEALTHY classification and probing
- LoadBalancer: backend selection strategies and failover choice
- RetryExecutor: per-attempt timeout and exponential backoff (tenacity)
- ConcurrencyQueue: global in-flight cap with a priority wait queue

All components are plain instances injected into the Dispatcher; none is a
module-level singleton.

Author: System Architect
Date: 2025-12-17
"""

from .concurrency_queue import ConcurrencyQueue, QueuedRequest
from .health_monitor import HealthMonitor, HealthRecord, HealthThresholds, classify
from .load_balancer import LoadBalancer
from .rate_limiter import RateLimitEntry, RateLimiter
from .retry_executor import (
    RetryExecutor,
    RetryPolicy,
    default_retry_condition,
    http_status_retry_condition,
)

__all__ = [
    "ConcurrencyQueue",
    "QueuedRequest",
    "HealthMonitor",
    "HealthRecord",
    "HealthThresholds",
    "classify",
    "LoadBalancer",
    "RateLimiter",
    "RateLimitEntry",
    "RetryExecutor",
    "RetryPolicy",
    "default_retry_condition",
    "http_status_retry_condition",
]
