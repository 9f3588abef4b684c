"""
Configuration Module

Centralized, type-safe configuration management for the search dispatch layer.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Stage identifiers, health states, strategies and numeric defaults

Usage:
------
```python
from search_dispatch.core.config import get_settings
from search_dispatch.core.config.constants import HealthState, Stage

settings = get_settings()
limit = settings.concurrency.MAX_CONCURRENT_REQUESTS
wiki = settings.BACKENDS["wikipedia"]
```

Environment Variables:
---------------------
```bash
BACKENDS='{"wikipedia": {"priority": 10, "rate_limit": 100, "timeout": 5, "retry_attempts": 2}}'
MAX_CONCURRENT_REQUESTS=10
LB_STRATEGY=weighted
LOG_LEVEL=INFO
LOG_FORMAT=json
```

Author: System Architect
Date: 2025-12-14
"""

from search_dispatch.core.config.constants import (
    BACKEND_RETRY_PRESETS,
    DEFAULT_MAX_SOURCES,
    HEADER_REQUEST_ID,
    MAX_CONCURRENT_REQUESTS,
    MAX_QUEUE_SIZE,
    MAX_RETRIES,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
    HealthState,
    LoadBalancingStrategy,
    Stage,
)
from search_dispatch.core.config.settings import (
    BackendSettings,
    Settings,
    get_settings,
    reload_settings,
)

__all__ = [
    # Settings
    "Settings",
    "BackendSettings",
    "get_settings",
    "reload_settings",
    # Enums
    "Stage",
    "HealthState",
    "LoadBalancingStrategy",
    # Defaults
    "BACKEND_RETRY_PRESETS",
    "DEFAULT_MAX_SOURCES",
    "MAX_CONCURRENT_REQUESTS",
    "MAX_QUEUE_SIZE",
    "MAX_RETRIES",
    "RETRY_BASE_DELAY",
    "RETRY_MAX_DELAY",
    # HTTP headers
    "HEADER_REQUEST_ID",
]
