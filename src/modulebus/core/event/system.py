"""
EventBusSystem: supervising wrapper around the CoreEventBus.

Purpose
-------
Owns one ``CoreEventBus`` and gives the host application a validated
lifecycle, health aggregation, metrics and an external event surface that
mirrors what flows through the engine.

Responsibilities
----------------
- Validate the two collaborators (``error_system``, ``config``) at
  construction
- Build and initialize a fresh engine on ``initialize`` and tear it down on
  ``shutdown``
- Forward engine events to external listeners registered with ``on``
- Forward ``emit`` calls into the engine
- Aggregate health (own state plus the nested engine report)

Design Decisions
----------------
- **External surface**: listeners attach with ``on(pattern, handler)`` and
  use the same pattern language as the engine. Engine events arrive under
  their own name; engine ``system:*`` events arrive as ``eventbus:system:*``
  so the system's own lifecycle events are never confused with the engine's.
- **Exactly one local delivery**: while the engine is running, ``emit``
  hands non-``system:`` events to the engine and the forwarding subscription
  delivers them locally. Otherwise ``emit`` delivers locally itself.
- **Engine failures during emit are reported, not raised**.

Dependencies
------------
- modulebus.core.event.bus (CoreEventBus)
- modulebus.core.event.registry (SubscriptionRegistry for the surface)
- modulebus.core.config.manager (ConfigManager default for the factory)
"""

from __future__ import annotations

import dataclasses
import inspect
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from modulebus.core.config.manager import ConfigManager
from modulebus.core.event.bus import CoreEventBus, EmitOptionsLike
from modulebus.core.event.errors import (
    ErrorCodes,
    EventError,
    EventInitializationError,
    EventOperationError,
    EventShutdownError,
    EventValidationError,
    handle_listener_error,
)
from modulebus.core.event.registry import SubscriptionRegistry
from modulebus.core.event.router import EventRouter
from modulebus.core.event.state import ManagedComponent
from modulebus.core.event.types import (
    SYSTEM_PREFIX,
    EmitOptions,
    Event,
    EventPayload,
    HandlerType,
    LifecycleStatus,
    Subscription,
    new_id,
)
from modulebus.core.logging.logger import get_logger

logger = get_logger(__name__)

FORWARDED_SYSTEM_NAMESPACE = "eventbus:"


class NoOpErrorSystem:
    """Error reporter that accepts and discards every report."""

    async def handle_error(self, error: BaseException, context: Mapping[str, Any]) -> None:
        return None


class EventBusSystem(ManagedComponent):
    """
    Supervising system for a single dispatch engine.

    Examples
    --------
    >>> system = create_event_bus_system(config=ConfigManager())
    >>> await system.initialize()
    >>> system.on("order.*", audit_order)
    >>> bus = system.get_event_bus()
    >>> await bus.emit("order.created", {"order_id": 1})  # audit_order sees it
    >>> await system.shutdown()
    """

    component_name = "EventBusSystem"
    version = "1.0.0"
    metric_prefix = "eventbussystem"
    dependencies = ("error_system", "config")

    def __init__(self, *, error_system: Any = None, config: Any = None) -> None:
        """
        Parameters
        ----------
        error_system:
            Reporter exposing a callable ``handle_error(error, context)``.
        config:
            ``ConfigManager`` or mapping, shared with the engine.

        Raises
        ------
        EventInitializationError
            ``MISSING_DEPENDENCIES`` listing absent collaborators, or
            ``INVALID_DEPENDENCY`` when ``handle_error`` is not callable.
        """
        self._validate_dependencies({"error_system": error_system, "config": config})
        super().__init__(error_system=error_system, config=config, logger=logger)

        self.event_bus: Optional[CoreEventBus] = None
        self._router = EventRouter()
        self._surface = SubscriptionRegistry()
        self._forwarding_subscription_id: Optional[str] = None

        self.register_health_check("state", self._state_probe)
        self.register_health_check("eventBus", self._event_bus_probe)

    def _validate_dependencies(self, deps: dict[str, Any]) -> None:
        missing = [name for name in self.dependencies if deps.get(name) is None]
        if missing:
            raise EventInitializationError(
                ErrorCodes.MISSING_DEPENDENCIES,
                f"Missing required dependencies: {', '.join(missing)}",
                {"missing_deps": missing},
            )

        if not callable(getattr(deps["error_system"], "handle_error", None)):
            raise EventInitializationError(
                ErrorCodes.INVALID_DEPENDENCY,
                "ErrorSystem missing required method: handle_error",
                {"dependency": "error_system"},
            )

    async def _event_bus_probe(self) -> dict[str, Any]:
        if self.event_bus is None:
            return {"status": "unhealthy", "reason": "EventBus not initialized"}
        return await self.event_bus.check_health()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def initialize(self) -> EventBusSystem:
        """
        Build, wire and initialize a fresh engine.

        Raises
        ------
        EventInitializationError
            ``INITIALIZATION_FAILED`` when already initialized or when the
            engine fails to start (state becomes ``error``).
        """
        if self.initialized:
            raise self._already_initialized_error()

        try:
            self.state.status = LifecycleStatus.INITIALIZING
            self.state.mark_started()

            self.event_bus = CoreEventBus(**self.deps)
            self._setup_event_forwarding()

            await self.event_bus.initialize()

            self.initialized = True
            self.state.status = LifecycleStatus.RUNNING
            self.record_metric("eventbussystem.initialized", 1)
        except Exception as exc:
            self.state.status = LifecycleStatus.ERROR
            self.record_metric(
                "eventbussystem.initialization.failed",
                1,
                {"error_message": str(exc)},
            )
            await self.handle_error(exc, {"phase": "initialization"})
            if isinstance(exc, EventError):
                raise
            raise EventInitializationError(
                ErrorCodes.INITIALIZATION_FAILED,
                "Failed to initialize EventBusSystem",
                {"original_error": str(exc)},
                cause=exc,
            ) from exc

        await self._deliver_local(
            Event.create(f"{SYSTEM_PREFIX}initialized", {"timestamp": _now_iso()})
        )
        logger.info("EventBusSystem initialized")
        return self

    def _setup_event_forwarding(self) -> None:
        if self.event_bus is None:
            return
        self._forwarding_subscription_id = self.event_bus.subscribe(
            "*",
            self._forward_from_engine,
            {"internal": True},
        )

    async def _forward_from_engine(self, event: Event) -> None:
        if event.name.startswith(SYSTEM_PREFIX):
            event = dataclasses.replace(
                event, name=f"{FORWARDED_SYSTEM_NAMESPACE}{event.name}"
            )
        await self._deliver_local(event)

    async def shutdown(self) -> EventBusSystem:
        """
        Shut the engine down and release it. A no-op when not initialized.

        Raises
        ------
        EventShutdownError
            ``SHUTDOWN_FAILED``; state becomes ``error``.
        """
        if not self.initialized:
            return self

        try:
            self.state.status = LifecycleStatus.SHUTTING_DOWN
            self.record_metric("eventbussystem.shutdown", 1)

            if self.event_bus is not None:
                await self.event_bus.shutdown()

            self.initialized = False
            self.event_bus = None
            self._forwarding_subscription_id = None
            self.state.status = LifecycleStatus.SHUTDOWN
        except Exception as exc:
            self.state.status = LifecycleStatus.ERROR
            self.record_metric(
                "eventbussystem.shutdown.failed",
                1,
                {"error_message": str(exc)},
            )
            await self.handle_error(exc, {"phase": "shutdown"})
            if isinstance(exc, EventError):
                raise
            raise EventShutdownError(
                ErrorCodes.SHUTDOWN_FAILED,
                "Failed to shutdown EventBusSystem",
                {"state": self.state.status.value},
                cause=exc,
            ) from exc

        await self._deliver_local(
            Event.create(f"{SYSTEM_PREFIX}shutdown", {"timestamp": _now_iso()})
        )
        logger.info("EventBusSystem shut down")
        return self

    def get_event_bus(self) -> CoreEventBus:
        """
        Return the live engine.

        Raises
        ------
        EventInitializationError
            ``NOT_INITIALIZED`` before ``initialize`` or after ``shutdown``.
        """
        if not self.initialized or self.event_bus is None:
            raise EventInitializationError(
                ErrorCodes.NOT_INITIALIZED,
                "EventBusSystem is not initialized",
                {"state": self.state.status.value},
            )
        return self.event_bus

    # ------------------------------------------------------------------ #
    # External surface
    # ------------------------------------------------------------------ #

    def on(self, pattern: str, handler: HandlerType) -> str:
        """
        Attach an external listener to the system surface.

        Returns
        -------
        str:
            Listener id for ``off``.
        """
        if not isinstance(pattern, str) or not pattern:
            raise EventValidationError(
                ErrorCodes.INVALID_PATTERN,
                "Event pattern must be a non-empty string",
                {"provided_pattern": repr(pattern)},
            )
        if not callable(handler):
            raise EventValidationError(
                ErrorCodes.INVALID_HANDLER,
                "Event handler must be a function",
                {"pattern": pattern},
            )

        subscription = Subscription(
            id=new_id(),
            pattern=pattern,
            handler=handler,
            matcher=self._router.compile(pattern),
        )
        self._surface.add(subscription)
        return subscription.id

    def off(self, listener_id: str) -> bool:
        """Detach an external listener; False when the id is unknown."""
        return self._surface.remove(listener_id) is not None

    def listener_count(self) -> int:
        return len(self._surface)

    async def _deliver_local(self, event: Event) -> None:
        for subscription in self._surface.matching(event.name):
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                handle_listener_error(
                    logger=logger,
                    event_name=event.name,
                    subscription_id=subscription.id,
                    pattern=subscription.pattern,
                    exc=exc,
                    metrics=self.state.metrics,
                )
                await self.handle_error(
                    exc,
                    {
                        "method": "deliver",
                        "event_name": event.name,
                        "subscription_id": subscription.id,
                    },
                )

    async def emit(
        self,
        topic: str,
        payload: EventPayload = None,
        options: EmitOptionsLike = None,
    ) -> bool:
        """
        Publish through the system.

        While running, non-``system:`` topics go through the engine (and come
        back to external listeners through forwarding); otherwise the event is
        delivered to external listeners directly. Engine failures are
        reported, not raised.
        """
        if not isinstance(topic, str) or not topic:
            error = EventValidationError(
                ErrorCodes.INVALID_EVENT_NAME,
                "Event name must be a non-empty string",
                {"provided_event_name": repr(topic)},
            )
            await self.handle_error(error, {"method": "emit", "event_name": repr(topic)})
            raise error

        if (
            self.initialized
            and self.event_bus is not None
            and not topic.startswith(SYSTEM_PREFIX)
        ):
            try:
                await self.event_bus.emit(topic, payload, options)
            except EventError as exc:
                await self.handle_error(exc, {"method": "emit", "event_name": topic})
            return True

        emit_options = EmitOptions.coerce(options)
        await self._deliver_local(Event.create(topic, payload, emit_options.metadata))
        return True

    # ------------------------------------------------------------------ #
    # Delegated reads
    # ------------------------------------------------------------------ #

    def get_history(self, topic: str, limit: Optional[int] = None) -> list[Event]:
        events = self.get_event_bus().get_history(topic, limit)
        self.record_metric(
            "eventbussystem.history.read",
            len(events),
            {"event_name": topic, "limit": limit},
        )
        return events

    def get_all_history(self, limit: Optional[int] = None) -> dict[str, list[Event]]:
        history = self.get_event_bus().get_all_history(limit)
        self.record_metric(
            "eventbussystem.history.read_all",
            len(history),
            {"limit": limit},
        )
        return history

    def get_queue_sizes(self) -> dict[str, int]:
        sizes = self.get_event_bus().get_queue_sizes()
        self.record_metric(
            "eventbussystem.queues.read",
            sum(sizes.values()),
            {"queue_count": len(sizes)},
        )
        return sizes

    def get_engine_metrics(self) -> dict[str, dict[str, Any]]:
        metrics = self.get_event_bus().get_metrics()
        self.record_metric("eventbussystem.engine_metrics.read", len(metrics))
        return metrics

    async def process_all_queues(self) -> dict[str, int]:
        """Drain the engine's queues; failures are reported and re-raised."""
        try:
            return await self.get_event_bus().process_all_queues()
        except EventOperationError as exc:
            await self.handle_error(exc, {"method": "process_all_queues"})
            raise


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_event_bus_system(**deps: Any) -> EventBusSystem:
    """
    Factory used by dependency containers.

    Missing (or None) collaborators are replaced by a no-op error reporter
    and an empty ``ConfigManager``; supplied values win.
    """
    defaults: dict[str, Any] = {
        "error_system": NoOpErrorSystem(),
        "config": ConfigManager(),
    }
    supplied = {name: value for name, value in deps.items() if value is not None}
    return EventBusSystem(**{**defaults, **supplied})


__all__ = [
    "EventBusSystem",
    "NoOpErrorSystem",
    "create_event_bus_system",
    "FORWARDED_SYSTEM_NAMESPACE",
]
