"""
Adaptive Per-Backend Rate Limiter

Keeps each backend within its request quota using a fixed window counter
with a burst allowance and an adaptive multiplier driven by observed
success rate.

Algorithm (per key, where key is ``backend_id`` or ``backend_id:caller``):
1. Roll the window if ``now >= window_start + window_seconds``
   (count and burst reset; success/failure counters keep 80%)
2. Effective limit = max(1, floor(base_limit * adaptive_multiplier))
3. Below the limit: admit and count
4. At the limit: admit from burst allowance while it lasts (burst also counts)
5. Otherwise reject, log and publish ``rate_limit_exceeded``

Adaptive mode: once a window has at least 10 recorded outcomes, a success
rate at or above the threshold multiplies the limit by 1.1 (cap 2.0),
anything lower by 0.9 (floor 0.5).

``allow()`` never awaits, so check-and-increment is atomic with respect to
other tasks on the same event loop.

Author: System Architect
Date: 2025-12-15
"""

import math
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from search_dispatch.core.config.constants import (
    ADAPTIVE_DECREASE_FACTOR,
    ADAPTIVE_INCREASE_FACTOR,
    ADAPTIVE_MIN_SAMPLES,
    ADAPTIVE_MULTIPLIER_MAX,
    ADAPTIVE_MULTIPLIER_MIN,
    RATE_LIMIT_COUNTER_RETENTION,
    RATE_LIMIT_IDLE_WINDOWS,
    Stage,
)
from search_dispatch.core.logging.logger import get_logger
from search_dispatch.core.observability.events import EventBus, EventType

logger = get_logger(__name__)


@dataclass
class RateLimitEntry:
    """Window state for one backend (or backend/caller pair)."""

    base_limit: int
    window_seconds: float
    burst_allowance: int
    window_start: float
    count: int = 0
    burst_used: int = 0
    adaptive_multiplier: float = 1.0
    success_count: int = 0
    failure_count: int = 0
    last_request: float = 0.0

    @property
    def effective_limit(self) -> int:
        return max(1, math.floor(self.base_limit * self.adaptive_multiplier))

    @property
    def remaining(self) -> int:
        """Admissions left in this window, unused burst included."""
        headroom = max(0, self.effective_limit - self.count)
        return headroom + max(0, self.burst_allowance - self.burst_used)


@dataclass(frozen=True)
class _BackendQuota:
    rate_limit: int
    window_seconds: float
    burst_allowance: int


class RateLimiter:
    """
    In-process adaptive rate limiter.

    Usage:
        limiter = RateLimiter(event_bus=bus)
        limiter.configure_backend("arxiv", rate_limit=30, window_seconds=60)

        if limiter.allow("arxiv"):
            ...
            limiter.record_result("arxiv", success=True)
    """

    def __init__(
        self,
        default_window_seconds: float = 60.0,
        default_burst_allowance: int = 10,
        default_rate_limit: int = 60,
        adaptive_enabled: bool = True,
        adaptive_threshold: float = 0.8,
        event_bus: EventBus | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_window_seconds = default_window_seconds
        self.default_burst_allowance = default_burst_allowance
        self.default_rate_limit = default_rate_limit
        self.adaptive_enabled = adaptive_enabled
        self.adaptive_threshold = adaptive_threshold
        self._event_bus = event_bus
        self._clock = clock

        self._quotas: dict[str, _BackendQuota] = {}
        self._entries: dict[str, RateLimitEntry] = {}

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure_backend(
        self,
        backend_id: str,
        rate_limit: int,
        window_seconds: float | None = None,
        burst_allowance: int | None = None,
    ) -> None:
        """
        Register (or replace) the quota for a backend.

        STAGE-RL.0: Quota registration

        Existing entries for the backend keep their counters but pick up the
        new quota.
        """
        quota = _BackendQuota(
            rate_limit=max(1, int(rate_limit)),
            window_seconds=window_seconds or self.default_window_seconds,
            burst_allowance=(
                self.default_burst_allowance if burst_allowance is None else burst_allowance
            ),
        )
        self._quotas[backend_id] = quota

        for key, entry in self._entries.items():
            if self._backend_of(key) == backend_id:
                entry.base_limit = quota.rate_limit
                entry.window_seconds = quota.window_seconds
                entry.burst_allowance = quota.burst_allowance

        logger.debug(
            "Rate limit configured",
            stage="RL.0",
            backend_id=backend_id,
            rate_limit=quota.rate_limit,
            window_seconds=quota.window_seconds,
            burst_allowance=quota.burst_allowance,
        )

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def allow(self, backend_id: str, caller: str | None = None) -> bool:
        """
        Decide whether one more request to ``backend_id`` may be sent now.

        STAGE-RL.1: Admission check

        Returns:
            bool: True if admitted (the request is counted), False if rejected
        """
        key = self._key(backend_id, caller)
        now = self._clock()
        entry = self._get_entry(key, backend_id, now)
        self._roll_window(entry, now)
        entry.last_request = now

        limit = entry.effective_limit

        if entry.count < limit:
            entry.count += 1
            return True

        if entry.burst_used < entry.burst_allowance:
            entry.burst_used += 1
            entry.count += 1
            logger.debug(
                "Burst allowance used",
                stage="RL.2",
                backend_id=backend_id,
                key=key,
                burst_used=entry.burst_used,
                burst_allowance=entry.burst_allowance,
            )
            return True

        reset_in = max(0.0, entry.window_start + entry.window_seconds - now)
        logger.warning(
            "Rate limit exceeded",
            stage=Stage.RATE_LIMIT.value,
            backend_id=backend_id,
            key=key,
            count=entry.count,
            limit=limit,
            reset_in=round(reset_in, 3),
        )
        if self._event_bus is not None:
            self._event_bus.publish(
                EventType.RATE_LIMIT_EXCEEDED,
                backend_id,
                key=key,
                count=entry.count,
                limit=limit,
                reset_in=reset_in,
            )
        return False

    def record_result(self, backend_id: str, success: bool, caller: str | None = None) -> None:
        """
        Feed one request outcome into the adaptive multiplier.

        STAGE-RL.3: Adaptive adjustment
        """
        key = self._key(backend_id, caller)
        now = self._clock()
        entry = self._get_entry(key, backend_id, now)
        self._roll_window(entry, now)

        if success:
            entry.success_count += 1
        else:
            entry.failure_count += 1

        if not self.adaptive_enabled:
            return

        total = entry.success_count + entry.failure_count
        if total < ADAPTIVE_MIN_SAMPLES:
            return

        previous = entry.adaptive_multiplier
        success_rate = entry.success_count / total
        if success_rate >= self.adaptive_threshold:
            entry.adaptive_multiplier = min(
                ADAPTIVE_MULTIPLIER_MAX, entry.adaptive_multiplier * ADAPTIVE_INCREASE_FACTOR
            )
        else:
            entry.adaptive_multiplier = max(
                ADAPTIVE_MULTIPLIER_MIN, entry.adaptive_multiplier * ADAPTIVE_DECREASE_FACTOR
            )

        if entry.adaptive_multiplier != previous:
            logger.debug(
                "Adaptive multiplier adjusted",
                stage="RL.3",
                backend_id=backend_id,
                success_rate=round(success_rate, 3),
                multiplier=round(entry.adaptive_multiplier, 4),
                effective_limit=entry.effective_limit,
            )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_remaining(self, backend_id: str, caller: str | None = None) -> int:
        """Requests allow() would still admit in the current window."""
        key = self._key(backend_id, caller)
        now = self._clock()
        entry = self._get_entry(key, backend_id, now)
        self._roll_window(entry, now)
        return entry.remaining

    def get_reset_time(self, backend_id: str, caller: str | None = None) -> float:
        """Seconds until the current window rolls over."""
        key = self._key(backend_id, caller)
        now = self._clock()
        entry = self._get_entry(key, backend_id, now)
        self._roll_window(entry, now)
        return max(0.0, entry.window_start + entry.window_seconds - now)

    def get_entry(self, backend_id: str, caller: str | None = None) -> RateLimitEntry | None:
        return self._entries.get(self._key(backend_id, caller))

    def get_stats(self, backend_id: str | None = None) -> dict[str, Any]:
        """
        Snapshot of limiter state.

        Returns:
            Per-key entry fields plus the effective limit, optionally filtered
            to one backend (including its caller-scoped keys).
        """
        stats: dict[str, Any] = {}
        for key, entry in self._entries.items():
            if backend_id is not None and self._backend_of(key) != backend_id:
                continue
            data = asdict(entry)
            data["effective_limit"] = entry.effective_limit
            data["remaining"] = entry.remaining
            stats[key] = data
        return stats

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup_expired(self) -> int:
        """
        Drop caller-scoped entries idle for more than two windows.

        STAGE-RL.4: Entry cleanup

        Backend-level entries are kept since they carry the adaptive state.

        Returns:
            int: Number of entries removed
        """
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if ":" in key
            and now - entry.last_request > entry.window_seconds * RATE_LIMIT_IDLE_WINDOWS
        ]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.debug("Expired rate limit entries removed", stage="RL.4", removed=len(expired))
        return len(expired)

    def reset(self, backend_id: str | None = None) -> None:
        """Forget counters for one backend or for all of them."""
        if backend_id is None:
            self._entries.clear()
            return
        for key in [k for k in self._entries if self._backend_of(k) == backend_id]:
            del self._entries[key]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _key(backend_id: str, caller: str | None) -> str:
        return f"{backend_id}:{caller}" if caller else backend_id

    @staticmethod
    def _backend_of(key: str) -> str:
        return key.split(":", 1)[0]

    def _get_entry(self, key: str, backend_id: str, now: float) -> RateLimitEntry:
        entry = self._entries.get(key)
        if entry is not None:
            return entry

        quota = self._quotas.get(backend_id)
        if quota is None:
            logger.debug(
                "Rate limit requested for unconfigured backend, using defaults",
                stage="RL.0",
                backend_id=backend_id,
            )
            quota = _BackendQuota(
                rate_limit=self.default_rate_limit,
                window_seconds=self.default_window_seconds,
                burst_allowance=self.default_burst_allowance,
            )
            self._quotas[backend_id] = quota

        entry = RateLimitEntry(
            base_limit=quota.rate_limit,
            window_seconds=quota.window_seconds,
            burst_allowance=quota.burst_allowance,
            window_start=now,
            last_request=now,
        )
        self._entries[key] = entry
        return entry

    @staticmethod
    def _roll_window(entry: RateLimitEntry, now: float) -> None:
        if now < entry.window_start + entry.window_seconds:
            return
        entry.count = 0
        entry.burst_used = 0
        entry.window_start = now
        entry.success_count = math.floor(entry.success_count * RATE_LIMIT_COUNTER_RETENTION)
        entry.failure_count = math.floor(entry.failure_count * RATE_LIMIT_COUNTER_RETENTION)
