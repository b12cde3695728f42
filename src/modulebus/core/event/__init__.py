"""
Event system for modulebus.

Purpose
-------
Provides the in-process dispatch engine (``CoreEventBus``), the supervising
``EventBusSystem`` and the records and errors they share. No global
instance is created; build one per application with the factories.
"""

from .bus import CoreEventBus, create_event_bus
from .context import apply_event_log_context
from .errors import (
    ErrorCodes,
    ErrorSeverity,
    EventError,
    EventInitializationError,
    EventOperationError,
    EventShutdownError,
    EventValidationError,
)
from .metrics import EventMetrics, MetricsRecorder
from .registry import SubscriptionRegistry
from .router import EventRouter
from .system import EventBusSystem, NoOpErrorSystem, create_event_bus_system
from .types import (
    EmitOptions,
    Event,
    EventPayload,
    ExactMatch,
    HandlerType,
    LifecycleStatus,
    SegmentMatch,
    Subscription,
    UniversalMatch,
)

__all__ = [
    "CoreEventBus",
    "create_event_bus",
    "EventBusSystem",
    "NoOpErrorSystem",
    "create_event_bus_system",
    "Event",
    "EventPayload",
    "EmitOptions",
    "Subscription",
    "ExactMatch",
    "UniversalMatch",
    "SegmentMatch",
    "HandlerType",
    "LifecycleStatus",
    "EventRouter",
    "SubscriptionRegistry",
    "EventMetrics",
    "MetricsRecorder",
    "ErrorCodes",
    "ErrorSeverity",
    "EventError",
    "EventInitializationError",
    "EventValidationError",
    "EventOperationError",
    "EventShutdownError",
    "apply_event_log_context",
]
