#!/usr/bin/env python3
"""
Backend Health Monitor

Tracks per-backend outcomes and classifies each backend as HEALTHY,
DEGRADED or UNHEALTHY. The load balancer prefers healthy backends and never
selects unhealthy ones.

Classification (pure function of the record):
- UNHEALTHY  consecutive_errors >= unhealthy_threshold (6)
- DEGRADED   consecutive_errors >= degraded_threshold (3), or at least
             min_samples outcomes in the window with error rate > failover_threshold
- HEALTHY    otherwise

Recovery:
- Any success resets consecutive_errors to 0
- Rolling success/error counters are halved whenever the evaluation window
  rolls over, so old failures stop dominating the error rate
- Degraded and unhealthy backends are probed periodically through
  SearchBackend.health_check()

Every state transition publishes ``backend_state_changed``; a transition back
to HEALTHY also publishes ``backend_recovered``. Recording never raises.

Author: System Architect
Date: 2025-12-16
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from search_dispatch.backends.base import SearchBackend
from search_dispatch.core.config.constants import (
    HEALTH_COUNTER_DECAY,
    HEALTH_DEGRADED_CONSECUTIVE_ERRORS,
    HEALTH_FAILOVER_ERROR_RATE,
    HEALTH_MIN_SAMPLES,
    HEALTH_RESPONSE_TIME_ALPHA,
    HEALTH_UNHEALTHY_CONSECUTIVE_ERRORS,
    HealthState,
    Stage,
)
from search_dispatch.core.logging.logger import get_logger
from search_dispatch.core.observability.events import EventBus, EventType

logger = get_logger(__name__)


@dataclass(frozen=True)
class HealthThresholds:
    degraded_threshold: int = HEALTH_DEGRADED_CONSECUTIVE_ERRORS
    unhealthy_threshold: int = HEALTH_UNHEALTHY_CONSECUTIVE_ERRORS
    failover_threshold: float = HEALTH_FAILOVER_ERROR_RATE
    min_samples: int = HEALTH_MIN_SAMPLES


@dataclass
class HealthRecord:
    """Mutable health bookkeeping for one backend."""

    backend_id: str
    window_start: float
    state: HealthState = HealthState.HEALTHY
    consecutive_errors: int = 0
    success_count: int = 0
    error_count: int = 0
    total_requests: int = 0
    average_response_time: float = 0.0
    last_success_at: float | None = None
    last_error_at: float | None = None
    last_error: str | None = None
    last_probe_at: float | None = None

    @property
    def samples(self) -> int:
        return self.success_count + self.error_count

    @property
    def error_rate(self) -> float:
        return self.error_count / self.samples if self.samples else 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        data["error_rate"] = round(self.error_rate, 4)
        return data


def classify(record: HealthRecord, thresholds: HealthThresholds = HealthThresholds()) -> HealthState:
    """Derive the health state from the record's counters."""
    if record.consecutive_errors >= thresholds.unhealthy_threshold:
        return HealthState.UNHEALTHY
    if record.consecutive_errors >= thresholds.degraded_threshold:
        return HealthState.DEGRADED
    if record.samples >= thresholds.min_samples and record.error_rate > thresholds.failover_threshold:
        return HealthState.DEGRADED
    return HealthState.HEALTHY


class HealthMonitor:
    """
    In-process backend health tracker.

    STAGE-HM: Health monitoring

    Usage:
        monitor = HealthMonitor(event_bus=bus)
        monitor.register_backend(backend)

        monitor.record_success("arxiv", response_time=0.42)
        monitor.record_error("arxiv", BackendTimeoutError("..."))

        healthy = monitor.get_healthy_backends()
    """

    def __init__(
        self,
        thresholds: HealthThresholds | None = None,
        window_seconds: float = 60.0,
        check_interval: float = 30.0,
        event_bus: EventBus | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.thresholds = thresholds or HealthThresholds()
        self.window_seconds = window_seconds
        self.check_interval = check_interval
        self._event_bus = event_bus
        self._clock = clock

        self._backends: dict[str, SearchBackend] = {}
        self._records: dict[str, HealthRecord] = {}
        self._monitor_task: asyncio.Task | None = None
        self._probe_count = 0

        logger.info(
            "Health monitor initialized",
            stage="HM.0",
            degraded_threshold=self.thresholds.degraded_threshold,
            unhealthy_threshold=self.thresholds.unhealthy_threshold,
            failover_threshold=self.thresholds.failover_threshold,
        )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_backend(self, backend: SearchBackend) -> None:
        """Track a backend; cold start is HEALTHY."""
        self._backends[backend.id] = backend
        if backend.id not in self._records:
            self._records[backend.id] = HealthRecord(
                backend_id=backend.id, window_start=self._clock()
            )

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(
        self,
        backend_id: str,
        success: bool,
        response_time: float | None = None,
        error: BaseException | str | None = None,
    ) -> None:
        if success:
            self.record_success(backend_id, response_time)
        else:
            self.record_error(backend_id, error)

    def record_success(self, backend_id: str, response_time: float | None = None) -> None:
        """
        Record a successful attempt.

        STAGE-HM.1: Success recording
        """
        record = self._get_record(backend_id)
        if record is None:
            return

        self._maybe_decay(record)
        record.consecutive_errors = 0
        record.success_count += 1
        record.total_requests += 1
        record.last_success_at = time.time()

        if response_time is not None:
            if record.average_response_time == 0.0:
                record.average_response_time = response_time
            else:
                record.average_response_time = (
                    HEALTH_RESPONSE_TIME_ALPHA * response_time
                    + (1 - HEALTH_RESPONSE_TIME_ALPHA) * record.average_response_time
                )

        self._update_state(record)

    def record_error(self, backend_id: str, error: BaseException | str | None = None) -> None:
        """
        Record a failed attempt.

        STAGE-HM.2: Error recording
        """
        record = self._get_record(backend_id)
        if record is None:
            return

        self._maybe_decay(record)
        record.consecutive_errors += 1
        record.error_count += 1
        record.total_requests += 1
        record.last_error_at = time.time()
        if error is not None:
            record.last_error = error if isinstance(error, str) else f"{type(error).__name__}: {error}"

        self._update_state(record)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def classify(self, record: HealthRecord) -> HealthState:
        return classify(record, self.thresholds)

    def get_state(self, backend_id: str) -> HealthState | None:
        record = self._records.get(backend_id)
        if record is None:
            return None
        self._maybe_decay(record)
        self._update_state(record)
        return record.state

    def get_record(self, backend_id: str) -> HealthRecord | None:
        return self._records.get(backend_id)

    def is_healthy(self, backend_id: str) -> bool:
        return self.get_state(backend_id) == HealthState.HEALTHY

    def get_healthy_backends(self) -> list[SearchBackend]:
        """All enabled, registered backends that are not UNHEALTHY (registration order)."""
        return [
            backend
            for backend_id, backend in self._backends.items()
            if backend.config.enabled and self.get_state(backend_id) != HealthState.UNHEALTHY
        ]

    def get_health_metrics(self) -> dict[str, dict[str, Any]]:
        return {backend_id: record.to_dict() for backend_id, record in self._records.items()}

    def get_monitoring_stats(self) -> dict[str, Any]:
        states = [self.get_state(backend_id) for backend_id in self._records]
        return {
            "total_backends": len(self._records),
            "healthy": sum(1 for s in states if s == HealthState.HEALTHY),
            "degraded": sum(1 for s in states if s == HealthState.DEGRADED),
            "unhealthy": sum(1 for s in states if s == HealthState.UNHEALTHY),
            "monitoring_active": self.is_monitoring,
            "check_interval": self.check_interval,
            "probes_run": self._probe_count,
        }

    def reset_backend_health(self, backend_id: str) -> None:
        """Forget all history for a backend and mark it HEALTHY."""
        record = self._records.get(backend_id)
        if record is None:
            return
        previous = record.state
        self._records[backend_id] = HealthRecord(backend_id=backend_id, window_start=self._clock())
        logger.info("Backend health reset", stage="HM.5", backend_id=backend_id)
        if previous != HealthState.HEALTHY:
            self._publish_transition(self._records[backend_id], previous)

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    async def perform_health_check(self) -> dict[str, HealthState]:
        """
        Probe every DEGRADED or UNHEALTHY backend once.

        STAGE-HM.3: Active health probe

        Returns:
            Mapping of probed backend id to its state after the probe
        """
        targets = [
            self._backends[backend_id]
            for backend_id, record in self._records.items()
            if backend_id in self._backends
            and self._backends[backend_id].config.enabled
            and self.get_state(backend_id) != HealthState.HEALTHY
        ]
        if not targets:
            return {}

        await asyncio.gather(*(self._probe(backend) for backend in targets))
        return {backend.id: self._records[backend.id].state for backend in targets}

    async def _probe(self, backend: SearchBackend) -> None:
        self._probe_count += 1
        record = self._records[backend.id]
        record.last_probe_at = time.time()
        started = self._clock()
        try:
            await asyncio.wait_for(backend.health_check(), timeout=backend.config.timeout)
        except asyncio.TimeoutError:
            logger.info("Health probe timed out", stage="HM.3", backend_id=backend.id)
            self.record_error(backend.id, f"health probe timed out after {backend.config.timeout}s")
        except Exception as e:
            logger.info(
                "Health probe failed", stage="HM.3", backend_id=backend.id, error=str(e)
            )
            self.record_error(backend.id, e)
        else:
            self.record_success(backend.id, self._clock() - started)
            logger.info(
                "Health probe succeeded",
                stage="HM.3",
                backend_id=backend.id,
                state=record.state.value,
            )

    def start_monitoring(self, interval: float | None = None) -> None:
        """
        Start periodic probing on the running event loop.

        STAGE-HM.4: Background monitoring
        """
        if self.is_monitoring:
            return
        if interval is not None:
            self.check_interval = interval
        self._monitor_task = asyncio.create_task(self._monitor_loop())
        logger.info("Health monitoring started", stage="HM.4", interval=self.check_interval)

    async def stop_monitoring(self) -> None:
        task, self._monitor_task = self._monitor_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Health monitoring stopped", stage="HM.4")

    @property
    def is_monitoring(self) -> bool:
        return self._monitor_task is not None and not self._monitor_task.done()

    async def _monitor_loop(self) -> None:
        while True:
            await asyncio.sleep(self.check_interval)
            try:
                await self.perform_health_check()
            except Exception as e:
                logger.error("Health check cycle failed", stage="HM.4", error=str(e))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_record(self, backend_id: str) -> HealthRecord | None:
        record = self._records.get(backend_id)
        if record is None:
            logger.debug(
                "Outcome for unknown backend ignored", stage=Stage.HEALTH.value, backend_id=backend_id
            )
        return record

    def _maybe_decay(self, record: HealthRecord) -> None:
        now = self._clock()
        if now < record.window_start + self.window_seconds:
            return
        record.success_count = int(record.success_count * HEALTH_COUNTER_DECAY)
        record.error_count = int(record.error_count * HEALTH_COUNTER_DECAY)
        record.window_start = now

    def _update_state(self, record: HealthRecord) -> None:
        new_state = self.classify(record)
        if new_state == record.state:
            return
        previous = record.state
        record.state = new_state
        self._publish_transition(record, previous)

    def _publish_transition(self, record: HealthRecord, previous: HealthState) -> None:
        level = "info" if record.state == HealthState.HEALTHY else "warning"
        getattr(logger, level)(
            "Backend health changed",
            stage="HM.2",
            backend_id=record.backend_id,
            previous=previous.value,
            state=record.state.value,
            consecutive_errors=record.consecutive_errors,
            error_rate=round(record.error_rate, 4),
        )
        if self._event_bus is None:
            return
        self._event_bus.publish(
            EventType.BACKEND_STATE_CHANGED,
            record.backend_id,
            previous=previous.value,
            state=record.state.value,
        )
        if record.state == HealthState.HEALTHY:
            self._event_bus.publish(
                EventType.BACKEND_RECOVERED, record.backend_id, previous=previous.value
            )
