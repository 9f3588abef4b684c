#!/usr/bin/env python3
"""
Bounded Concurrency Queue

Caps the number of backend calls in flight across all searches and queues
the excess in priority order.

MECHANISM:
----------
1. **Admission**: a task runs immediately when ``active_count < max_concurrent``
   and nobody is waiting. Otherwise it joins the wait queue, ordered by
   (priority, arrival) with lower priority values served first. A full wait
   queue rejects with QueueFullError (backpressure).

2. **Hand-off**: when a running task finishes, its slot passes directly to
   the head of the queue. The slot is reserved at grant time, so a newcomer
   can never overtake a waiter and there is no polling.

3. **Timeouts**: each waiter carries a timer; if it fires before a slot is
   granted the waiter is removed and fails with QueueTimeoutError. An
   optional execution timeout bounds the task itself once it runs.

4. **Accounting**: every started task releases its slot exactly once, in a
   ``finally`` block, whatever the outcome (success, error, cancellation).

Author: System Architect
Date: 2025-12-17
"""

import asyncio
import bisect
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from search_dispatch.core.config.constants import (
    MAX_CONCURRENT_REQUESTS,
    MAX_QUEUE_SIZE,
    QUEUE_REQUEST_TIMEOUT,
    Stage,
)
from search_dispatch.core.exceptions import (
    QueueFullError,
    QueueTimeoutError,
    RequestCancelledError,
)
from search_dispatch.core.logging.logger import get_logger
from search_dispatch.core.observability.events import EventBus, EventType

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class QueuedRequest:
    """A task waiting for a concurrency slot."""

    id: str
    priority: int
    sequence: int
    enqueued_at: float
    timeout: float
    future: asyncio.Future = field(repr=False)
    label: str | None = None
    timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.priority, self.sequence)


class ConcurrencyQueue:
    """
    Priority queue in front of a fixed number of execution slots.

    STAGE-Q: Concurrency control

    Usage:
        queue = ConcurrencyQueue(max_concurrent=5, max_queue_size=100)
        results = await queue.execute(lambda: backend.search(q, opts), priority=0)
    """

    def __init__(
        self,
        max_concurrent: int = MAX_CONCURRENT_REQUESTS,
        max_queue_size: int = MAX_QUEUE_SIZE,
        request_timeout: float = QUEUE_REQUEST_TIMEOUT,
        task_timeout: float | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.max_concurrent = max_concurrent
        self.max_queue_size = max_queue_size
        self.request_timeout = request_timeout
        self.task_timeout = task_timeout
        self._event_bus = event_bus
        self._clock = clock

        self._queue: list[QueuedRequest] = []
        self._active = 0
        self._active_requests: dict[str, dict[str, Any]] = {}
        self._sequence = 0

        # Statistics
        self._total_started = 0
        self._total_completed = 0
        self._total_failed = 0
        self._total_rejected = 0
        self._total_timeouts = 0
        self._total_cancelled = 0
        self._total_wait_time = 0.0
        self._total_exec_time = 0.0

        logger.info(
            "Concurrency queue initialized",
            stage="Q.0",
            max_concurrent=max_concurrent,
            max_queue_size=max_queue_size,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        task: Callable[[], Awaitable[T]],
        priority: int = 0,
        timeout: float | None = None,
        request_id: str | None = None,
        label: str | None = None,
        success_of: Callable[[T], bool] | None = None,
    ) -> T:
        """
        Run ``task`` under the concurrency cap.

        STAGE-Q.1: Admission

        Args:
            task: Zero-argument coroutine factory
            priority: Lower values are served first
            timeout: Maximum queue wait in seconds (defaults to request_timeout)
            request_id: Identifier for cancel_request() and logs
            label: Free-form tag (the dispatcher passes the backend id)
            success_of: Judges a returned value; tasks that report failure
                by value rather than by raising are counted and published
                as failed

        Raises:
            QueueFullError: The wait queue is at capacity
            QueueTimeoutError: No slot was granted within ``timeout``, or the
                task exceeded the execution timeout
            RequestCancelledError: Removed from the queue by cancel_request()
        """
        request_id = request_id or str(uuid.uuid4())

        if self._active < self.max_concurrent and not self._queue:
            self._active += 1
            return await self._run(request_id, task, label, waited=0.0, success_of=success_of)

        if len(self._queue) >= self.max_queue_size:
            self._total_rejected += 1
            logger.warning(
                "Queue full, request rejected",
                stage=Stage.QUEUE.value,
                request_id=request_id,
                queue_depth=len(self._queue),
                max_queue_size=self.max_queue_size,
            )
            raise QueueFullError(
                "Concurrency queue is full",
                request_id=request_id,
                details={"queue_depth": len(self._queue), "max_queue_size": self.max_queue_size},
            )

        loop = asyncio.get_running_loop()
        self._sequence += 1
        entry = QueuedRequest(
            id=request_id,
            priority=priority,
            sequence=self._sequence,
            enqueued_at=self._clock(),
            timeout=timeout if timeout is not None else self.request_timeout,
            future=loop.create_future(),
            label=label,
        )
        bisect.insort(self._queue, entry, key=lambda e: e.sort_key)
        entry.timer = loop.call_later(entry.timeout, self._expire, entry)

        logger.debug(
            "Request queued",
            stage="Q.1",
            request_id=request_id,
            priority=priority,
            queue_depth=len(self._queue),
        )
        self._publish(
            EventType.REQUEST_QUEUED,
            label,
            request_id=request_id,
            priority=priority,
            queue_depth=len(self._queue),
        )

        try:
            await entry.future
        except asyncio.CancelledError:
            if entry.future.done() and not entry.future.cancelled() and entry.future.exception() is None:
                # Slot was granted before the cancellation landed
                self._release_slot()
            else:
                self._discard(entry)
            raise

        return await self._run(
            request_id,
            task,
            label,
            waited=self._clock() - entry.enqueued_at,
            success_of=success_of,
        )

    async def _run(
        self,
        request_id: str,
        task: Callable[[], Awaitable[T]],
        label: str | None,
        waited: float,
        success_of: Callable[[T], bool] | None = None,
    ) -> T:
        """Execute a task whose slot is already reserved."""
        started = self._clock()
        self._total_started += 1
        self._total_wait_time += waited
        self._active_requests[request_id] = {"label": label, "started_at": started, "waited": waited}
        success = False
        try:
            if self.task_timeout is not None:
                try:
                    result = await asyncio.wait_for(task(), timeout=self.task_timeout)
                except asyncio.TimeoutError as e:
                    self._total_timeouts += 1
                    raise QueueTimeoutError(
                        f"Task exceeded execution timeout of {self.task_timeout}s",
                        request_id=request_id,
                        details={"task_timeout": self.task_timeout},
                    ) from e
            else:
                result = await task()
            success = success_of(result) if success_of is not None else True
            return result
        finally:
            elapsed = self._clock() - started
            self._total_exec_time += elapsed
            if success:
                self._total_completed += 1
            else:
                self._total_failed += 1
            self._active_requests.pop(request_id, None)
            self._release_slot()
            self._publish(
                EventType.REQUEST_COMPLETED,
                label,
                request_id=request_id,
                success=success,
                duration=elapsed,
                queue_depth=len(self._queue),
            )

    # ------------------------------------------------------------------
    # Slot management
    # ------------------------------------------------------------------

    def _release_slot(self) -> None:
        self._active = max(0, self._active - 1)
        self._dispatch_next()

    def _dispatch_next(self) -> None:
        """Hand free slots to queued waiters in (priority, arrival) order."""
        while self._active < self.max_concurrent and self._queue:
            entry = self._queue.pop(0)
            if entry.timer is not None:
                entry.timer.cancel()
            if entry.future.done():
                continue
            self._active += 1
            entry.future.set_result(None)
            logger.debug(
                "Slot granted",
                stage="Q.2",
                request_id=entry.id,
                waited=round(self._clock() - entry.enqueued_at, 4),
            )

    def _expire(self, entry: QueuedRequest) -> None:
        if entry.future.done():
            return
        self._remove(entry)
        self._total_timeouts += 1
        logger.warning(
            "Queued request timed out",
            stage="Q.3",
            request_id=entry.id,
            timeout=entry.timeout,
        )
        entry.future.set_exception(
            QueueTimeoutError(
                f"Request waited more than {entry.timeout}s for a slot",
                request_id=entry.id,
                details={"timeout": entry.timeout},
            )
        )

    def _remove(self, entry: QueuedRequest) -> bool:
        try:
            self._queue.remove(entry)
        except ValueError:
            return False
        return True

    def _discard(self, entry: QueuedRequest) -> None:
        self._remove(entry)
        if entry.timer is not None:
            entry.timer.cancel()

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def cancel_request(self, request_id: str) -> bool:
        """
        Remove a queued (not yet running) request.

        STAGE-Q.4: Request cancellation

        Returns:
            bool: True if the request was waiting and has been cancelled
        """
        for entry in self._queue:
            if entry.id == request_id:
                self._cancel_entry(entry)
                return True
        return False

    def clear_queue(self) -> int:
        """Cancel every queued request. Running tasks are unaffected."""
        entries = list(self._queue)
        for entry in entries:
            self._cancel_entry(entry)
        if entries:
            logger.info("Queue cleared", stage="Q.4", cancelled=len(entries))
        return len(entries)

    def _cancel_entry(self, entry: QueuedRequest) -> None:
        self._discard(entry)
        self._total_cancelled += 1
        if not entry.future.done():
            entry.future.set_exception(
                RequestCancelledError("Queued request cancelled", request_id=entry.id)
            )

    def update_config(
        self, max_concurrent: int | None = None, max_queue_size: int | None = None
    ) -> None:
        if max_concurrent is not None:
            if max_concurrent < 1:
                raise ValueError("max_concurrent must be >= 1")
            self.max_concurrent = max_concurrent
        if max_queue_size is not None:
            self.max_queue_size = max_queue_size
        logger.info(
            "Concurrency queue reconfigured",
            stage="Q.5",
            max_concurrent=self.max_concurrent,
            max_queue_size=self.max_queue_size,
        )
        self._dispatch_next()

    def get_queued_requests(self) -> list[dict[str, Any]]:
        now = self._clock()
        return [
            {
                "id": entry.id,
                "priority": entry.priority,
                "label": entry.label,
                "waiting": round(now - entry.enqueued_at, 4),
                "timeout": entry.timeout,
            }
            for entry in self._queue
        ]

    def get_active_requests(self) -> list[dict[str, Any]]:
        now = self._clock()
        return [
            {"id": request_id, "label": info["label"], "running": round(now - info["started_at"], 4)}
            for request_id, info in self._active_requests.items()
        ]

    def get_stats(self) -> dict[str, Any]:
        started = self._total_started
        return {
            "active_count": self._active,
            "queue_depth": len(self._queue),
            "max_concurrent": self.max_concurrent,
            "max_queue_size": self.max_queue_size,
            "total_started": started,
            "total_completed": self._total_completed,
            "total_failed": self._total_failed,
            "total_rejected": self._total_rejected,
            "total_timeouts": self._total_timeouts,
            "total_cancelled": self._total_cancelled,
            "average_wait_time": self._total_wait_time / started if started else 0.0,
            "average_execution_time": self._total_exec_time / started if started else 0.0,
        }

    def get_health_status(self) -> dict[str, Any]:
        utilization = len(self._queue) / self.max_queue_size if self.max_queue_size else 0.0
        if self.max_queue_size and len(self._queue) >= self.max_queue_size:
            status = "overloaded"
        elif utilization > 0.8:
            status = "degraded"
        else:
            status = "healthy"
        return {
            "status": status,
            "queue_utilization": round(utilization, 4),
            "slot_utilization": round(self._active / self.max_concurrent, 4),
        }

    def _publish(self, event_type: EventType, backend_id: str | None, **data: Any) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event_type, backend_id, **data)
