"""
modulebus: in-process async pub/sub for decoupled modules.

Purpose
-------
Modules publish domain events on dot-delimited topics and other modules
subscribe by exact topic, ``*`` or segment wildcard, without holding
references to one another.

Public API
----------
- CoreEventBus / create_event_bus: the dispatch engine
- EventBusSystem / create_event_bus_system: supervised lifecycle around it
- Event, EmitOptions: records handed to and accepted from callers
- EventError, ErrorCodes: the error family
- ConfigManager: layered configuration
"""

from modulebus.core.config.manager import ConfigManager, resolve_setting
from modulebus.core.event import (
    CoreEventBus,
    EmitOptions,
    ErrorCodes,
    Event,
    EventBusSystem,
    EventError,
    LifecycleStatus,
    create_event_bus,
    create_event_bus_system,
)
from modulebus.core.logging import LogContext, get_logger, setup_logging, shutdown_logging

__version__ = "1.0.0"

__all__ = [
    "__version__",
    "CoreEventBus",
    "EventBusSystem",
    "create_event_bus",
    "create_event_bus_system",
    "Event",
    "EmitOptions",
    "EventError",
    "ErrorCodes",
    "LifecycleStatus",
    "ConfigManager",
    "resolve_setting",
    "LogContext",
    "get_logger",
    "setup_logging",
    "shutdown_logging",
]
