"""
CoreEventBus: in-process async pub/sub dispatch engine for modulebus.

Purpose
-------
Lets independent modules communicate through named events without holding
references to one another. Publishers ``emit`` on dot-delimited topics;
subscribers register exact topics, the universal pattern ``*`` or segment
wildcards such as ``order.*``.

Responsibilities
----------------
- Validate and register subscriptions; compile patterns once into matchers
- Deliver events to exact subscribers, then to the broadcast channel
- Isolate handler failures during immediate delivery
- Queue events per topic and drain them FIFO on request
- Keep a bounded, newest-first history per topic
- Lifecycle (``initialize`` / ``reset`` / ``shutdown``), metrics and health

Design Decisions
----------------
- **Direct path plus broadcast channel**: exact subscribers are looked up by
  topic; universal and segment subscribers share one broadcast channel whose
  forwarding is installed by the first broadcast subscription and removed
  with the last one.
- **Snapshots for delivery**: a handler that subscribes or unsubscribes
  during delivery affects the next emit, not the current one.
- **Sync handlers run inline** on the loop thread; async handlers are awaited
  one at a time, in registration order.
- **Queue draining is not isolated**: the first handler failure stops the
  drain and is raised as ``QUEUE_PROCESSING_FAILED``. The failing entry has
  already been dequeued; later entries stay queued for the next drain.
- **Sync subscribe/unsubscribe**: failures are logged, counted and handed to
  the reporter before the raise; only an async reporter's awaitable is left
  to a tracked background task, and ``flush_error_reports()`` waits for it.

Dependencies
------------
- modulebus.core.logging.logger (structured logging)
- modulebus.core.event.types (Event, Subscription, EmitOptions, QueuedEvent)
- modulebus.core.event.router (EventRouter)
- modulebus.core.event.registry (SubscriptionRegistry)
- modulebus.core.event.state (ManagedComponent)
- modulebus.core.event.context (apply_event_log_context)
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Mapping, NoReturn, Optional, Union

from modulebus.core.event.context import apply_event_log_context
from modulebus.core.event.errors import (
    ErrorCodes,
    EventError,
    EventInitializationError,
    EventOperationError,
    EventShutdownError,
    EventValidationError,
    handle_listener_error,
    schedule_report,
)
from modulebus.core.event.metrics import EventMetrics
from modulebus.core.event.registry import SubscriptionRegistry
from modulebus.core.event.router import EventRouter
from modulebus.core.event.state import ManagedComponent
from modulebus.core.event.types import (
    WILDCARD,
    EmitOptions,
    Event,
    EventPayload,
    HandlerType,
    LifecycleStatus,
    QueuedEvent,
    Subscription,
    new_id,
)
from modulebus.core.logging.logger import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_HISTORY_SIZE = 1000

EmitOptionsLike = Union[EmitOptions, Mapping[str, Any], None]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CoreEventBus(ManagedComponent):
    """
    In-process dispatch engine.

    Thread Safety
    -------------
    Designed for single-threaded asyncio usage. Registry, queue and history
    mutations run to completion between awaits.

    Examples
    --------
    >>> bus = create_event_bus(error_system=reporter, config=ConfigManager())
    >>> await bus.initialize()
    >>> sub_id = bus.subscribe("order.*", on_order_event)
    >>> await bus.emit("order.created", {"order_id": 42})
    True
    >>> bus.unsubscribe(sub_id)
    True
    """

    component_name = "CoreEventBus"
    version = "1.0.0"
    metric_prefix = "eventbus"
    dependencies = ("error_system", "config")

    def __init__(
        self,
        *,
        error_system: Any = None,
        config: Any = None,
        router: Optional[EventRouter] = None,
        max_history_size: Optional[int] = None,
    ) -> None:
        """
        Initialize CoreEventBus.

        Parameters
        ----------
        error_system:
            Error reporter exposing ``handle_error(error, context)``.
        config:
            ``ConfigManager`` or mapping; ``event_history.max_size`` and
            ``health.probe_timeout_seconds`` are read from it.
        router:
            Optional EventRouter. Creates default if None.
        max_history_size:
            Per-topic history cap. Uses config if None.
        """
        super().__init__(error_system=error_system, config=config, logger=logger)

        self._router = router or EventRouter()
        self._registry = SubscriptionRegistry()
        self._queues: dict[str, deque[QueuedEvent]] = {}
        self._history: dict[str, deque[Event]] = {}
        self._background_tasks: set[asyncio.Task[Any]] = set()

        self.max_history_size: int = self._load_setting(
            key="event_history.max_size",
            override=max_history_size,
            default=DEFAULT_MAX_HISTORY_SIZE,
        )
        if self.max_history_size < 1:
            logger.warning(
                "History size must be positive, using default",
                extra={
                    "configured_value": self.max_history_size,
                    "default_value": DEFAULT_MAX_HISTORY_SIZE,
                },
            )
            self.max_history_size = DEFAULT_MAX_HISTORY_SIZE

        self._setup_default_health_checks()

        logger.debug(
            "CoreEventBus created",
            extra={
                "max_history_size": self.max_history_size,
                "probe_timeout_seconds": self.state.health.timeout_seconds,
            },
        )

    # ------------------------------------------------------------------ #
    # Health Probes
    # ------------------------------------------------------------------ #

    def _setup_default_health_checks(self) -> None:
        self.register_health_check("state", self._state_probe)
        self.register_health_check("queues", self._queues_probe)
        self.register_health_check("subscriptions", self._subscriptions_probe)

    def _queues_probe(self) -> dict[str, Any]:
        sizes = self.get_queue_sizes()
        return {
            "status": "healthy",
            "queue_count": len(sizes),
            "total_queued_events": sum(sizes.values()),
            "queues": sizes,
        }

    def _subscriptions_probe(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "count": len(self._registry),
            "broadcast_count": self._registry.broadcast_count,
            "patterns": [sub.pattern for sub in self._registry.all()],
        }

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def initialize(self) -> None:
        """
        Move the engine to ``running`` and emit ``system:initialized``.

        Raises
        ------
        EventInitializationError
            ``INITIALIZATION_FAILED`` when already initialized (state is left
            unchanged) or when start-up fails (state becomes ``error``).
        """
        if self.initialized:
            raise self._already_initialized_error()

        try:
            self.state.status = LifecycleStatus.INITIALIZING
            self.state.mark_started()

            self.initialized = True
            self.state.status = LifecycleStatus.RUNNING

            await self.emit("system:initialized", {"timestamp": _now_iso()})
            self.record_metric("eventbus.initialized", 1)
        except Exception as exc:
            self.initialized = False
            self.state.status = LifecycleStatus.ERROR
            await self.handle_error(exc, {"phase": "initialization"})
            raise EventInitializationError(
                ErrorCodes.INITIALIZATION_FAILED,
                "Failed to initialize EventBus",
                {"original_error": str(exc)},
                cause=exc,
            ) from exc

        logger.info(
            "CoreEventBus initialized",
            extra={
                "max_history_size": self.max_history_size,
                "subscription_count": len(self._registry),
            },
        )

    async def reset(self) -> None:
        """
        Clear queues and history and detach every non-``system:`` subscription.
        """
        self._queues.clear()
        self._history.clear()

        removed = self._registry.remove_where(lambda sub: not sub.is_system)
        for subscription in removed:
            self._after_detach(subscription)

        self.record_metric("eventbus.reset", 1)
        logger.debug(
            "CoreEventBus reset",
            extra={"removed_subscriptions": len(removed)},
        )

    async def shutdown(self) -> None:
        """
        Reset, emit ``system:shutdown`` and detach every remaining subscription.

        A no-op when the engine is not initialized.

        Raises
        ------
        EventShutdownError
            ``SHUTDOWN_FAILED``; state becomes ``error``.
        """
        if not self.initialized:
            return

        try:
            self.state.status = LifecycleStatus.SHUTTING_DOWN
            await self.reset()

            self.initialized = False
            self.state.status = LifecycleStatus.SHUTDOWN

            await self.emit("system:shutdown", {"timestamp": _now_iso()})

            for subscription in self._registry.remove_where(lambda sub: True):
                self._after_detach(subscription)

            self.record_metric("eventbus.shutdown", 1)
            await self.flush_error_reports()
        except Exception as exc:
            self.state.status = LifecycleStatus.ERROR
            await self.handle_error(exc, {"phase": "shutdown"})
            raise EventShutdownError(
                ErrorCodes.SHUTDOWN_FAILED,
                "Failed to shutdown EventBus",
                {"state": self.state.status.value},
                cause=exc,
            ) from exc

        logger.info("CoreEventBus shut down")

    async def flush_error_reports(self) -> None:
        """Wait for error reports scheduled by synchronous operations."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Emission
    # ------------------------------------------------------------------ #

    async def emit(
        self,
        topic: str,
        payload: EventPayload = None,
        options: EmitOptionsLike = None,
    ) -> bool:
        """
        Publish an event.

        Parameters
        ----------
        topic:
            Non-empty event name, e.g. ``"order.created"``.
        payload:
            Opaque data handed to subscribers as ``event.data``.
        options:
            ``EmitOptions`` or a mapping with ``queue``, ``immediate`` and
            ``metadata``.

        Returns
        -------
        bool:
            True once the event is accepted (delivered or queued). Handler
            failures during immediate delivery do not change the result.

        Raises
        ------
        EventValidationError
            ``INVALID_EVENT_NAME`` for a missing, empty or non-string topic.
        EventOperationError
            ``EMISSION_FAILED`` wrapping an unexpected failure, or
            ``QUEUE_PROCESSING_FAILED`` from an ``immediate`` drain.

        Examples
        --------
        >>> await bus.emit("order.created", {"order_id": 42})
        True
        >>> await bus.emit("order.created", {"order_id": 43}, {"queue": True})
        True
        """
        if not isinstance(topic, str) or not topic:
            error = EventValidationError(
                ErrorCodes.INVALID_EVENT_NAME,
                "Event name must be a non-empty string",
                {"provided_event_name": repr(topic)},
            )
            await self.handle_error(error, {"method": "emit", "event_name": repr(topic)})
            raise error

        try:
            emit_options = EmitOptions.coerce(options)
            event = Event.create(topic, payload, emit_options.metadata)

            apply_event_log_context(topic, payload)

            self.track_event(event)
            self.record_metric(
                "eventbus.events.emitted",
                1,
                {"event_name": topic, "queued": emit_options.queue},
            )
            self.state.metrics.record_publish(topic)

            if emit_options.queue:
                return await self._queue_event(event, emit_options)

            await self._dispatch(event, isolate=True)
            return True
        except EventError:
            raise
        except Exception as exc:
            await self.handle_error(
                exc,
                {"method": "emit", "event_name": topic, "options": repr(options)},
            )
            raise EventOperationError(
                ErrorCodes.EMISSION_FAILED,
                f"Failed to emit event: {topic}",
                {"event_name": topic},
                cause=exc,
            ) from exc

    async def _dispatch(self, event: Event, *, isolate: bool) -> None:
        """
        Deliver to exact subscribers, then to the broadcast channel.

        With ``isolate`` a failing handler is logged and reported and delivery
        continues; without it the first failure propagates.
        """
        direct = self._registry.direct_for(event.name)
        broadcast: list[Subscription] = []
        if self._registry.forwarding_installed and event.name != WILDCARD:
            broadcast = self._registry.broadcast_snapshot()

        if not direct and not broadcast:
            logger.debug("No subscribers for event", extra={"event_name": event.name})
            return

        for subscription in direct:
            await self._invoke(subscription, event, isolate=isolate)

        for subscription in broadcast:
            if subscription.matcher.matches(event.name):
                await self._invoke(subscription, event, isolate=isolate)

    async def _invoke(self, subscription: Subscription, event: Event, *, isolate: bool) -> None:
        try:
            result = subscription.handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            if not isolate:
                raise

            handle_listener_error(
                logger=logger,
                event_name=event.name,
                subscription_id=subscription.id,
                pattern=subscription.pattern,
                exc=exc,
                metrics=self.state.metrics,
            )
            await self.handle_error(
                EventOperationError(
                    ErrorCodes.HANDLER_ERROR,
                    f"Error in handler for event: {event.name}",
                    {
                        "event_name": event.name,
                        "event_id": event.id,
                        "subscription_id": subscription.id,
                    },
                    cause=exc,
                ),
                {
                    "method": "emit",
                    "event_name": event.name,
                    "subscription_id": subscription.id,
                },
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def _fail(self, error: EventError, context: dict[str, Any]) -> NoReturn:
        pending = self.report_error_now(error, context)
        if pending is not None:
            schedule_report(
                lambda: self.settle_report(pending, error),
                self._background_tasks,
                name=f"eventbus-report-{context.get('method', 'unknown')}",
            )
        raise error

    def subscribe(
        self,
        pattern: str,
        handler: HandlerType,
        options: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Subscribe a handler to a topic or wildcard pattern.

        Parameters
        ----------
        pattern:
            Exact topic (``"order.created"``), ``"*"`` for every event, or a
            segment wildcard such as ``"order.*"`` or ``"*.created"``.
        handler:
            Sync or async callable taking the ``Event``.
        options:
            Opaque options stored on the subscription.

        Returns
        -------
        str:
            Subscription id for ``unsubscribe``.

        Raises
        ------
        EventValidationError
            ``INVALID_PATTERN`` or ``INVALID_HANDLER``; nothing is registered.
        EventOperationError
            ``SUBSCRIPTION_FAILED`` when building or registering the
            subscription fails (e.g. ``options`` is not a mapping); the
            original exception is the cause.

        Examples
        --------
        >>> bus.subscribe("order.created", on_order_created)
        '0b6e...'
        >>> bus.subscribe("*", audit_everything)
        '5f1c...'
        """
        if not isinstance(pattern, str) or not pattern:
            self._fail(
                EventValidationError(
                    ErrorCodes.INVALID_PATTERN,
                    "Event pattern must be a non-empty string",
                    {"provided_pattern": repr(pattern)},
                ),
                {"method": "subscribe", "pattern": repr(pattern)},
            )

        if not callable(handler):
            self._fail(
                EventValidationError(
                    ErrorCodes.INVALID_HANDLER,
                    "Event handler must be a function",
                    {"pattern": pattern},
                ),
                {"method": "subscribe", "pattern": pattern},
            )

        forwarding_before = self._registry.forwarding_installed
        try:
            subscription = Subscription(
                id=new_id(),
                pattern=pattern,
                handler=handler,
                matcher=self._router.compile(pattern),
                options=dict(options or {}),
            )
            self._registry.add(subscription)
        except Exception as exc:
            self._fail(
                EventOperationError(
                    ErrorCodes.SUBSCRIPTION_FAILED,
                    f"Failed to subscribe to pattern: {pattern}",
                    {"pattern": pattern},
                    cause=exc,
                ),
                {"method": "subscribe", "pattern": pattern},
            )

        self.state.metrics.increment_subscription_count()

        if not forwarding_before and self._registry.forwarding_installed:
            self.record_metric("eventbus.wildcard.enabled", 1)
            logger.debug("Broadcast forwarding installed", extra={"pattern": pattern})

        self.record_metric("eventbus.subscriptions", 1, {"pattern": pattern})

        logger.debug(
            "EventBus: subscribed handler",
            extra={
                "pattern": pattern,
                "subscription_id": subscription.id,
                "matcher": type(subscription.matcher).__name__,
            },
        )
        return subscription.id

    def unsubscribe(self, subscription_id: str) -> bool:
        """
        Remove a subscription by id.

        Returns
        -------
        bool:
            True once removed; no further events reach that handler through
            this subscription.

        Raises
        ------
        EventOperationError
            ``HANDLER_NOT_FOUND`` for an unknown id, ``SUBSCRIPTION_FAILED``
            when the id cannot be looked up at all (e.g. it is unhashable).
        """
        try:
            subscription = self._registry.remove(subscription_id)
        except Exception as exc:
            self._fail(
                EventOperationError(
                    ErrorCodes.SUBSCRIPTION_FAILED,
                    f"Failed to unsubscribe {subscription_id!r}",
                    {"subscription_id": repr(subscription_id)},
                    cause=exc,
                ),
                {"method": "unsubscribe", "subscription_id": repr(subscription_id)},
            )

        if subscription is None:
            self._fail(
                EventOperationError(
                    ErrorCodes.HANDLER_NOT_FOUND,
                    f"Subscription {subscription_id} not found",
                    {"subscription_id": subscription_id},
                ),
                {"method": "unsubscribe", "subscription_id": subscription_id},
            )

        self._after_detach(subscription)
        self.record_metric("eventbus.unsubscriptions", 1, {"pattern": subscription.pattern})

        logger.debug(
            "EventBus: unsubscribed handler",
            extra={"pattern": subscription.pattern, "subscription_id": subscription_id},
        )
        return True

    def _after_detach(self, subscription: Subscription) -> None:
        self.state.metrics.decrement_subscription_count()
        if subscription.is_broadcast and not self._registry.forwarding_installed:
            self.record_metric("eventbus.wildcard.disabled", 1)
            logger.debug(
                "Broadcast forwarding removed",
                extra={"pattern": subscription.pattern},
            )

    # ------------------------------------------------------------------ #
    # Queues
    # ------------------------------------------------------------------ #

    async def _queue_event(self, event: Event, options: EmitOptions) -> bool:
        queue = self._queues.setdefault(event.name, deque())
        queue.append(QueuedEvent(event=event, options=options))

        self.record_metric(
            "eventbus.queued",
            1,
            {"event_name": event.name, "queue_size": len(queue)},
        )

        if options.immediate:
            await self.process_queue(event.name)

        return True

    async def process_queue(self, topic: str) -> int:
        """
        Drain one topic's queue in FIFO order.

        Parameters
        ----------
        topic:
            Queue name (the topic events were emitted on). An unknown topic
            returns 0 without creating a queue.

        Returns
        -------
        int:
            Number of entries delivered.

        Raises
        ------
        EventOperationError
            ``QUEUE_PROCESSING_FAILED`` whose cause is a ``HANDLER_ERROR``
            wrapping the handler's exception. Entries behind the failing one
            stay queued.
        """
        queue = self._queues.get(topic)
        if queue is None:
            return 0

        processed = 0
        start = time.perf_counter()

        try:
            while queue:
                item = queue.popleft()
                try:
                    await self._dispatch(item.event, isolate=False)
                except Exception as handler_exc:
                    raise EventOperationError(
                        ErrorCodes.HANDLER_ERROR,
                        f"Error in handler for event: {item.event.name}",
                        {"event_name": item.event.name, "event_id": item.event.id},
                        cause=handler_exc,
                    ) from handler_exc
                processed += 1
        except EventError as exc:
            await self.handle_error(
                exc,
                {"method": "process_queue", "queue_name": topic, "processed": processed},
            )
            raise EventOperationError(
                ErrorCodes.QUEUE_PROCESSING_FAILED,
                f"Failed to process queue: {topic}",
                {"queue_name": topic, "processed": processed, "remaining": len(queue)},
                cause=exc,
            ) from exc

        processing_time_ms = round((time.perf_counter() - start) * 1000, 3)
        self.record_metric(
            "eventbus.queue.processed",
            processed,
            {"queue_name": topic, "processing_time_ms": processing_time_ms},
        )
        return processed

    async def process_all_queues(self) -> dict[str, int]:
        """
        Drain every known queue, one topic at a time.

        Returns
        -------
        dict[str, int]:
            Processed count per topic.

        Raises
        ------
        EventOperationError
            ``QUEUE_PROCESSING_FAILED`` wrapping the first failing topic's
            error; topics after it are not drained.
        """
        results: dict[str, int] = {}
        try:
            for topic in list(self._queues):
                results[topic] = await self.process_queue(topic)
        except EventError as exc:
            await self.handle_error(
                exc,
                {"method": "process_all_queues", "results": dict(results)},
            )
            raise EventOperationError(
                ErrorCodes.QUEUE_PROCESSING_FAILED,
                "Failed to process all queues",
                {"results": dict(results)},
                cause=exc,
            ) from exc
        return results

    # ------------------------------------------------------------------ #
    # History
    # ------------------------------------------------------------------ #

    def track_event(self, event: Event) -> None:
        """Record an event in its topic history, evicting the oldest entry."""
        history = self._history.get(event.name)
        if history is None:
            history = deque(maxlen=self.max_history_size)
            self._history[event.name] = history

        history.appendleft(event)

        self.record_metric(
            "eventbus.history.size",
            len(history),
            {"event_name": event.name},
        )

    def get_history(self, topic: str, limit: Optional[int] = None) -> list[Event]:
        """
        Events recorded for ``topic``, newest first.

        A ``limit`` of None or <= 0 returns everything.
        """
        history = self._history.get(topic)
        if not history:
            return []
        events = list(history)
        if limit is not None and limit > 0:
            return events[:limit]
        return events

    def get_all_history(self, limit: Optional[int] = None) -> dict[str, list[Event]]:
        """Every topic's history, newest first, each truncated to ``limit``."""
        return {topic: self.get_history(topic, limit) for topic in self._history}

    # ------------------------------------------------------------------ #
    # Metrics & Introspection
    # ------------------------------------------------------------------ #

    def get_event_metrics(self) -> EventMetrics:
        """Immutable snapshot of the emit, error and subscription counters."""
        return self.state.metrics.snapshot()

    def get_metrics_summary(self) -> dict[str, Any]:
        return self.get_event_metrics().get_summary()

    def get_subscription_count(self) -> int:
        return len(self._registry)

    def get_patterns(self) -> list[str]:
        return self._registry.patterns()

    def get_queue_sizes(self) -> dict[str, int]:
        return {topic: len(queue) for topic, queue in self._queues.items()}

    @property
    def forwarding_installed(self) -> bool:
        return self._registry.forwarding_installed

    def get_status(self) -> dict[str, Any]:
        status = super().get_status()
        status.update(
            {
                "subscription_count": len(self._registry),
                "queue_count": len(self._queues),
                "history_topics": len(self._history),
            }
        )
        return status


def create_event_bus(**deps: Any) -> CoreEventBus:
    """
    Factory used by dependency containers.

    Examples
    --------
    >>> bus = create_event_bus(error_system=reporter, config={"event_history": {"max_size": 50}})
    >>> bus.max_history_size
    50
    """
    return CoreEventBus(**deps)


__all__ = ["CoreEventBus", "create_event_bus", "DEFAULT_MAX_HISTORY_SIZE"]
