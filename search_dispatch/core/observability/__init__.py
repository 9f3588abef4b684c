"""
Observability Module

In-process event bus for dispatch lifecycle events.
"""

from .events import DispatchEvent, EventBus, EventChannel, EventObserver, EventType

__all__ = [
    "DispatchEvent",
    "EventBus",
    "EventChannel",
    "EventObserver",
    "EventType",
]
