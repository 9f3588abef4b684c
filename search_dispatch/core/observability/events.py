"""
Dispatch Event Bus

Components report notable transitions (rate-limit rejections, backend
failures and recoveries, queue admissions and completions) as DispatchEvent
records on an in-process EventBus. Observers turn them into metrics, logs or
an asyncio queue an external collaborator drains.

Architectural Decision: explicit observer registry instead of a global emitter
- Components receive the bus they publish to (no module-level singletons)
- Publishing is synchronous and never blocks: observers must not await
- A failing observer is logged and skipped; it cannot break a search

Author: System Architect
Date: 2025-12-15
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from search_dispatch.core.logging.logger import get_logger

logger = get_logger(__name__)


class EventType(str, Enum):
    """Kinds of events published by the dispatch components."""

    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    BACKEND_FAILED = "backend_failed"
    BACKEND_RECOVERED = "backend_recovered"
    BACKEND_STATE_CHANGED = "backend_state_changed"
    REQUEST_QUEUED = "request_queued"
    REQUEST_COMPLETED = "request_completed"


@dataclass(frozen=True)
class DispatchEvent:
    """
    Immutable event record.

    Attributes:
        type: Event kind
        backend_id: Backend the event concerns, if any
        data: Event specific payload (e.g. queue depth, new health state)
        timestamp: Wall clock time of publication (epoch seconds)
    """

    type: EventType
    backend_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "backend_id": self.backend_id,
            "data": dict(self.data),
            "timestamp": self.timestamp,
        }


@runtime_checkable
class EventObserver(Protocol):
    """Anything with a synchronous on_event(event) method."""

    def on_event(self, event: DispatchEvent) -> None: ...


class EventBus:
    """
    Fan-out of DispatchEvents to registered observers.

    Usage:
        bus = EventBus()
        bus.subscribe(PrometheusEventObserver())
        bus.publish(EventType.BACKEND_FAILED, "arxiv", error="timeout")
    """

    def __init__(self):
        self._observers: list[EventObserver] = []
        self._published = 0

    def subscribe(self, observer: EventObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def unsubscribe(self, observer: EventObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    @property
    def observers(self) -> list[EventObserver]:
        return list(self._observers)

    @property
    def published_count(self) -> int:
        return self._published

    def publish(
        self, event_type: EventType, backend_id: str | None = None, **data: Any
    ) -> DispatchEvent:
        """
        Build and deliver an event to every observer.

        Observer exceptions are logged and do not propagate.
        """
        event = DispatchEvent(type=event_type, backend_id=backend_id, data=data)
        self._published += 1

        for observer in list(self._observers):
            try:
                observer.on_event(event)
            except Exception as e:
                logger.warning(
                    "Event observer failed",
                    stage="EV.1",
                    observer=type(observer).__name__,
                    event_type=event_type.value,
                    error=str(e),
                )
        return event


class EventChannel:
    """
    Observer that buffers events on a bounded asyncio.Queue.

    An external consumer drains it with ``await channel.get()`` or
    ``channel.drain()``. When the buffer is full new events are dropped and
    counted rather than blocking the publisher.
    """

    def __init__(self, maxsize: int = 1000, event_types: set[EventType] | None = None):
        self._queue: asyncio.Queue[DispatchEvent] = asyncio.Queue(maxsize=maxsize)
        self._event_types = event_types
        self.dropped = 0

    def on_event(self, event: DispatchEvent) -> None:
        if self._event_types is not None and event.type not in self._event_types:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1

    async def get(self) -> DispatchEvent:
        return await self._queue.get()

    def drain(self) -> list[DispatchEvent]:
        """Return and remove every buffered event."""
        events = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def qsize(self) -> int:
        return self._queue.qsize()
