"""
Tests for CoreEventBus.

Covers emission, subscription, wildcard routing, unsubscription, history,
lifecycle, health probes and error reporting. Queue behaviour lives in
test_event_bus_queue.py.
"""

import asyncio
import dataclasses
import logging

import pytest

from modulebus.core.config.manager import ConfigManager
from modulebus.core.event.bus import DEFAULT_MAX_HISTORY_SIZE, CoreEventBus, create_event_bus
from modulebus.core.event.errors import (
    ErrorCodes,
    EventInitializationError,
    EventOperationError,
    EventValidationError,
)
from modulebus.core.event.state import MAX_ERROR_LOG_SIZE
from modulebus.core.event.types import EmitOptions, Event, LifecycleStatus

from tests.conftest import Recorder, RecordingErrorSystem


class FailingErrorSystem:
    """Reporter whose handle_error always raises."""

    async def handle_error(self, error, context):
        raise RuntimeError("reporter down")


class SyncErrorSystem:
    """Reporter with a plain (non-async) handle_error."""

    def __init__(self):
        self.calls = []

    def handle_error(self, error, context):
        self.calls.append((error, context))


# ============================================================================
# EMISSION
# ============================================================================


class TestEmission:
    """emit() delivery semantics."""

    @pytest.mark.asyncio
    async def test_exact_subscriber_receives_event(self, bus, recorder):
        """An exact subscriber receives the Event record with name and data."""
        bus.subscribe("order.created", recorder)

        result = await bus.emit("order.created", {"order_id": 42})

        assert result is True
        assert len(recorder.events) == 1
        event = recorder.events[0]
        assert isinstance(event, Event)
        assert event.name == "order.created"
        assert event.data == {"order_id": 42}

    @pytest.mark.asyncio
    async def test_emit_without_subscribers_returns_true(self, bus):
        """Emitting to a topic nobody listens on still succeeds."""
        assert await bus.emit("nobody.listens") is True
        assert len(bus.get_history("nobody.listens")) == 1

    @pytest.mark.asyncio
    async def test_emit_works_before_initialize(self, fresh_bus, recorder):
        """The engine accepts emits in the created state."""
        fresh_bus.subscribe("order.created", recorder)

        await fresh_bus.emit("order.created", 1)

        assert recorder.payloads == [1]
        assert fresh_bus.state.status is LifecycleStatus.CREATED

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "options",
        [
            {"metadata": {"trace": "abc"}},
            EmitOptions(metadata={"trace": "abc"}),
        ],
    )
    async def test_metadata_is_copied_to_event(self, bus, recorder, options):
        """Metadata from a mapping or EmitOptions lands on Event.metadata."""
        bus.subscribe("order.created", recorder)

        await bus.emit("order.created", None, options)

        assert dict(recorder.events[0].metadata) == {"trace": "abc"}

    @pytest.mark.asyncio
    async def test_handlers_cannot_change_metadata(self, bus, error_system, recorder):
        """A handler writing to metadata fails alone; others and history see the original."""

        def tamper(event):
            event.metadata["k"] = "changed"

        bus.subscribe("order.created", tamper)
        bus.subscribe("order.created", recorder)

        await bus.emit("order.created", None, {"metadata": {"k": "v"}})

        assert dict(recorder.events[0].metadata) == {"k": "v"}
        assert dict(bus.get_history("order.created")[0].metadata) == {"k": "v"}

        reported = error_system.errors[-1]
        assert reported.code is ErrorCodes.HANDLER_ERROR
        assert isinstance(reported.__cause__, TypeError)

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers_in_registration_order(self, bus):
        """Sync and async handlers both run, in subscription order."""
        calls = []

        def first(event):
            calls.append("sync")

        async def second(event):
            await asyncio.sleep(0)
            calls.append("async")

        bus.subscribe("order.created", first)
        bus.subscribe("order.created", second)

        await bus.emit("order.created")

        assert calls == ["sync", "async"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_name", [None, "", 123])
    async def test_invalid_event_name(self, fresh_bus, error_system, recorder, bad_name):
        """Invalid names raise, reach nobody and leave no history."""
        fresh_bus.subscribe("*", recorder)

        with pytest.raises(EventValidationError) as exc_info:
            await fresh_bus.emit(bad_name, {"x": 1})

        assert exc_info.value.code is ErrorCodes.INVALID_EVENT_NAME
        assert recorder.events == []
        assert fresh_bus.get_all_history() == {}
        assert len(error_system.calls) == 1
        context = error_system.contexts[0]
        assert context["source"] == "CoreEventBus"
        assert context["method"] == "emit"

    @pytest.mark.asyncio
    async def test_unexpected_failure_becomes_emission_failed(self, bus, error_system):
        """Failures outside handlers are wrapped as EMISSION_FAILED."""
        with pytest.raises(EventOperationError) as exc_info:
            await bus.emit("order.created", None, 42)

        assert exc_info.value.code is ErrorCodes.EMISSION_FAILED
        assert isinstance(exc_info.value.__cause__, AttributeError)
        assert any(ctx.get("method") == "emit" for ctx in error_system.contexts)

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_delivery(self, bus, error_system, recorder):
        """A raising handler is isolated; later handlers still run."""

        def broken(event):
            raise ValueError("handler exploded")

        bus.subscribe("order.created", broken)
        bus.subscribe("order.created", recorder)

        result = await bus.emit("order.created", {"id": 1})

        assert result is True
        assert recorder.payloads == [{"id": 1}]

        reported = error_system.errors[-1]
        assert isinstance(reported, EventOperationError)
        assert reported.code is ErrorCodes.HANDLER_ERROR
        assert isinstance(reported.__cause__, ValueError)
        assert bus.get_metrics_summary()["total_errors"] == 1
        assert bus.get_errors()[-1]["context"]["event_name"] == "order.created"

    @pytest.mark.asyncio
    async def test_handler_failure_is_logged(self, bus, caplog):
        """Isolated handler failures are logged with the event name."""

        def broken(event):
            raise ValueError("boom")

        bus.subscribe("order.created", broken)

        with caplog.at_level(logging.ERROR, logger="modulebus"):
            await bus.emit("order.created")

        records = [r for r in caplog.records if r.getMessage() == "EventBus handler error"]
        assert records
        assert records[0].event_name == "order.created"

    @pytest.mark.asyncio
    async def test_every_handler_sees_the_same_event(self, bus, make_recorder):
        """Exact and broadcast subscribers share one immutable Event."""
        exact, everything, segment = make_recorder(), make_recorder(), make_recorder()
        bus.subscribe("order.created", exact)
        bus.subscribe("*", everything)
        bus.subscribe("order.*", segment)

        await bus.emit("order.created", {"id": 7})

        assert exact.events[0] is everything.events[0] is segment.events[0]
        with pytest.raises(dataclasses.FrozenInstanceError):
            exact.events[0].name = "changed"

    @pytest.mark.asyncio
    async def test_emit_counters(self, bus):
        """Each accepted emit counts once per topic."""
        await bus.emit("a")
        await bus.emit("a")
        await bus.emit("b")

        summary = bus.get_metrics_summary()
        assert summary["events_by_topic"]["a"] == 2
        assert summary["events_by_topic"]["b"] == 1
        assert summary["error_rate"] == 0.0


# ============================================================================
# WILDCARD ROUTING
# ============================================================================


class TestPatterns:
    """Universal and segment wildcard delivery."""

    @pytest.mark.asyncio
    async def test_segment_pattern(self, bus, recorder):
        """'order.*' receives order topics only."""
        bus.subscribe("order.*", recorder)

        await bus.emit("order.created")
        await bus.emit("user.created")
        await bus.emit("order.item.added")

        assert recorder.names == ["order.created", "order.item.added"]

    @pytest.mark.asyncio
    async def test_universal_receives_each_event_exactly_once(self, bus, make_recorder):
        """'*' receives every event once, regardless of other matches."""
        everything = make_recorder()
        bus.subscribe("*", everything)
        bus.subscribe("order.*", make_recorder())
        bus.subscribe("order.created", make_recorder())

        await bus.emit("order.created")
        await bus.emit("user.deleted")

        assert everything.names == ["order.created", "user.deleted"]

    @pytest.mark.asyncio
    async def test_exact_before_broadcast(self, bus):
        """Exact subscribers are invoked before wildcard subscribers."""
        calls = []
        bus.subscribe("*", lambda event: calls.append("wildcard"))
        bus.subscribe("order.created", lambda event: calls.append("exact"))

        await bus.emit("order.created")

        assert calls == ["exact", "wildcard"]

    @pytest.mark.asyncio
    async def test_emitting_star_skips_broadcast(self, bus, recorder):
        """An event literally named '*' is not re-broadcast."""
        bus.subscribe("order.*", recorder)
        universal = Recorder()
        bus.subscribe("*", universal)

        await bus.emit("*")

        assert recorder.events == []
        assert universal.events == []

    def test_forwarding_follows_broadcast_subscriptions(self, fresh_bus):
        """Forwarding is installed by the first wildcard and removed with the last."""
        exact_id = fresh_bus.subscribe("order.created", lambda event: None)
        assert not fresh_bus.forwarding_installed

        first = fresh_bus.subscribe("*", lambda event: None)
        second = fresh_bus.subscribe("order.*", lambda event: None)
        assert fresh_bus.forwarding_installed
        assert "eventbus.wildcard.enabled" in fresh_bus.get_metrics()

        fresh_bus.unsubscribe(first)
        assert fresh_bus.forwarding_installed

        fresh_bus.unsubscribe(second)
        assert not fresh_bus.forwarding_installed
        assert "eventbus.wildcard.disabled" in fresh_bus.get_metrics()

        fresh_bus.unsubscribe(exact_id)
        assert fresh_bus.get_subscription_count() == 0


# ============================================================================
# SUBSCRIPTION MANAGEMENT
# ============================================================================


class TestSubscription:
    """subscribe() / unsubscribe() contracts."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("pattern", ["order.created", "*", "order.*"])
    async def test_unsubscribe_stops_delivery(self, bus, recorder, pattern):
        """After unsubscribe the handler receives nothing on any path."""
        subscription_id = bus.subscribe(pattern, recorder)

        assert bus.unsubscribe(subscription_id) is True
        await bus.emit("order.created")

        assert recorder.events == []
        assert pattern not in bus.get_patterns()

    @pytest.mark.asyncio
    async def test_unsubscribe_unknown_id(self, bus, error_system):
        """Unknown ids raise HANDLER_NOT_FOUND and are reported."""
        with pytest.raises(EventOperationError) as exc_info:
            bus.unsubscribe("missing")

        assert exc_info.value.code is ErrorCodes.HANDLER_NOT_FOUND

        await bus.flush_error_reports()
        assert error_system.contexts[-1]["method"] == "unsubscribe"
        assert error_system.contexts[-1]["subscription_id"] == "missing"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "pattern,handler,code",
        [
            ("", lambda event: None, ErrorCodes.INVALID_PATTERN),
            (None, lambda event: None, ErrorCodes.INVALID_PATTERN),
            ("order.created", "not callable", ErrorCodes.INVALID_HANDLER),
        ],
    )
    async def test_invalid_subscription(self, bus, error_system, pattern, handler, code):
        """Invalid input raises and registers nothing."""
        with pytest.raises(EventValidationError) as exc_info:
            bus.subscribe(pattern, handler)

        assert exc_info.value.code is code
        assert bus.get_subscription_count() == 0

        await bus.flush_error_reports()
        assert error_system.contexts[-1]["method"] == "subscribe"

    @pytest.mark.asyncio
    async def test_failure_is_reported_before_raise(self, bus, error_system, mocker):
        """The error log, metric and reporter call are in place when the error surfaces."""
        handle_error = mocker.patch.object(error_system, "handle_error")

        with pytest.raises(EventValidationError):
            bus.subscribe("", lambda event: None)

        assert len(bus.get_errors()) == 1
        assert bus.get_errors()[0]["context"]["method"] == "subscribe"
        assert "eventbus.errors" in bus.get_metrics()
        handle_error.assert_called_once()
        reported, context = handle_error.call_args.args
        assert reported.code is ErrorCodes.INVALID_PATTERN
        assert context["source"] == "CoreEventBus"

    @pytest.mark.asyncio
    async def test_subscribe_build_failure_is_wrapped(self, bus, error_system):
        """A failure while building the subscription surfaces as SUBSCRIPTION_FAILED."""
        with pytest.raises(EventOperationError) as exc_info:
            bus.subscribe("order.created", lambda event: None, 5)

        assert exc_info.value.code is ErrorCodes.SUBSCRIPTION_FAILED
        assert isinstance(exc_info.value.cause, TypeError)
        assert bus.get_subscription_count() == 0
        assert bus.get_errors()[-1]["context"]["method"] == "subscribe"

        await bus.flush_error_reports()
        assert error_system.errors[-1] is exc_info.value

    @pytest.mark.asyncio
    async def test_unsubscribe_lookup_failure_is_wrapped(self, bus, error_system):
        """An id that cannot be looked up surfaces as SUBSCRIPTION_FAILED."""
        bus.subscribe("order.created", lambda event: None)

        with pytest.raises(EventOperationError) as exc_info:
            bus.unsubscribe(["not", "hashable"])

        assert exc_info.value.code is ErrorCodes.SUBSCRIPTION_FAILED
        assert isinstance(exc_info.value.__cause__, TypeError)
        assert bus.get_subscription_count() == 1

        await bus.flush_error_reports()
        assert error_system.contexts[-1]["method"] == "unsubscribe"

    def test_invalid_subscription_without_running_loop(self, fresh_bus, error_system):
        """Outside an event loop the report still reaches the error system."""
        with pytest.raises(EventValidationError):
            fresh_bus.subscribe("", lambda event: None)

        assert len(error_system.calls) == 1
        assert error_system.errors[0].code is ErrorCodes.INVALID_PATTERN

    @pytest.mark.asyncio
    async def test_unsubscribe_during_delivery_uses_snapshot(self, bus, make_recorder):
        """Removing a wildcard subscriber mid-delivery affects the next emit only."""
        later = make_recorder()
        pending: list[str] = []

        def remover(event):
            while pending:
                bus.unsubscribe(pending.pop())

        bus.subscribe("*", remover)
        pending.append(bus.subscribe("*", later))

        await bus.emit("first")
        await bus.emit("second")

        assert later.names == ["first"]

    def test_subscription_count_and_patterns(self, fresh_bus):
        fresh_bus.subscribe("a", lambda event: None)
        fresh_bus.subscribe("b.*", lambda event: None)
        fresh_bus.subscribe("*", lambda event: None)

        assert fresh_bus.get_subscription_count() == 3
        assert sorted(fresh_bus.get_patterns()) == ["*", "a", "b.*"]
        assert fresh_bus.get_event_metrics().active_subscriptions == 3


# ============================================================================
# HISTORY
# ============================================================================


class TestHistory:
    """Per-topic bounded history."""

    @pytest.mark.asyncio
    async def test_history_is_bounded_and_newest_first(self, error_system):
        """Only the newest max_size events are kept, newest first."""
        bus = create_event_bus(
            error_system=error_system,
            config=ConfigManager(overrides={"event_history": {"max_size": 3}}),
        )

        for i in range(5):
            await bus.emit("tick", i)

        assert [event.data for event in bus.get_history("tick")] == [4, 3, 2]

    @pytest.mark.asyncio
    async def test_history_limit(self, fresh_bus):
        """A positive limit truncates; zero or None returns everything."""
        for i in range(4):
            await fresh_bus.emit("tick", i)

        assert [e.data for e in fresh_bus.get_history("tick", limit=2)] == [3, 2]
        assert len(fresh_bus.get_history("tick", limit=0)) == 4
        assert len(fresh_bus.get_history("tick")) == 4
        assert fresh_bus.get_history("unknown") == []

    @pytest.mark.asyncio
    async def test_all_history_keyed_by_topic(self, fresh_bus):
        await fresh_bus.emit("a", 1)
        await fresh_bus.emit("b", 1)
        await fresh_bus.emit("b", 2)

        history = fresh_bus.get_all_history(limit=1)

        assert set(history) == {"a", "b"}
        assert [e.data for e in history["b"]] == [2]

    @pytest.mark.asyncio
    async def test_queued_events_are_recorded(self, fresh_bus):
        """Queued emits appear in history before they are delivered."""
        await fresh_bus.emit("job", 1, {"queue": True})

        assert len(fresh_bus.get_history("job")) == 1

    @pytest.mark.parametrize(
        "overrides,expected",
        [
            ({"event_history": {"max_size": 25}}, 25),
            ({"event_history": {"max_size": "abc"}}, DEFAULT_MAX_HISTORY_SIZE),
            ({"event_history": {"max_size": 0}}, DEFAULT_MAX_HISTORY_SIZE),
            ({}, DEFAULT_MAX_HISTORY_SIZE),
        ],
    )
    def test_max_history_size_from_config(self, error_system, overrides, expected):
        """Invalid or non-positive values fall back to the default."""
        bus = CoreEventBus(error_system=error_system, config=ConfigManager(overrides=overrides))

        assert bus.max_history_size == expected

    def test_max_history_size_override_wins(self, error_system, config_manager):
        bus = CoreEventBus(error_system=error_system, config=config_manager, max_history_size=7)

        assert bus.max_history_size == 7

    def test_plain_mapping_config(self, error_system):
        bus = CoreEventBus(error_system=error_system, config={"event_history": {"max_size": 9}})

        assert bus.max_history_size == 9


# ============================================================================
# LIFECYCLE
# ============================================================================


class TestLifecycle:
    """initialize / reset / shutdown."""

    @pytest.mark.asyncio
    async def test_initialize_emits_system_event(self, fresh_bus, recorder):
        """initialize() moves to running and emits system:initialized."""
        fresh_bus.subscribe("system:initialized", recorder)

        await fresh_bus.initialize()

        assert fresh_bus.initialized is True
        assert fresh_bus.state.status is LifecycleStatus.RUNNING
        assert recorder.names == ["system:initialized"]
        assert "timestamp" in recorder.payloads[0]
        assert "eventbus.initialized" in fresh_bus.get_metrics()

        await fresh_bus.shutdown()

    @pytest.mark.asyncio
    async def test_double_initialize_is_rejected(self, bus):
        """A second initialize() raises and leaves the engine running."""
        with pytest.raises(EventInitializationError) as exc_info:
            await bus.initialize()

        assert exc_info.value.code is ErrorCodes.INITIALIZATION_FAILED
        assert bus.state.status is LifecycleStatus.RUNNING

    @pytest.mark.asyncio
    async def test_shutdown_uninitialized_is_noop(self, fresh_bus):
        await fresh_bus.shutdown()

        assert fresh_bus.state.status is LifecycleStatus.CREATED

    @pytest.mark.asyncio
    async def test_shutdown_clears_everything(self, error_system, config_manager, recorder):
        """shutdown() emits system:shutdown and removes every subscription."""
        bus = create_event_bus(error_system=error_system, config=config_manager)
        await bus.initialize()
        bus.subscribe("system:shutdown", recorder)
        bus.subscribe("order.*", lambda event: None)
        await bus.emit("order.created", {"x": 1}, {"queue": True})

        await bus.shutdown()

        assert bus.initialized is False
        assert bus.state.status is LifecycleStatus.SHUTDOWN
        assert recorder.names == ["system:shutdown"]
        assert bus.get_subscription_count() == 0
        assert bus.get_queue_sizes() == {}
        assert not bus.forwarding_installed

    @pytest.mark.asyncio
    async def test_reset_keeps_system_subscriptions(self, bus, make_recorder):
        """reset() drops queues, history and non-system subscriptions."""
        system_listener = make_recorder()
        bus.subscribe("system:custom", system_listener)
        bus.subscribe("order.created", make_recorder())
        bus.subscribe("*", make_recorder())
        await bus.emit("order.created", None, {"queue": True})

        await bus.reset()

        assert bus.get_patterns() == ["system:custom"]
        assert bus.get_queue_sizes() == {}
        assert bus.get_all_history() == {}
        assert not bus.forwarding_installed

        await bus.emit("system:custom")
        assert system_listener.names == ["system:custom"]

    @pytest.mark.asyncio
    async def test_status_report(self, bus):
        bus.subscribe("a", lambda event: None)

        status = bus.get_status()

        assert status["name"] == "CoreEventBus"
        assert status["status"] == "running"
        assert status["initialized"] is True
        assert status["subscription_count"] == 1


# ============================================================================
# HEALTH
# ============================================================================


class TestHealth:
    """Health probes and the aggregated report."""

    @pytest.mark.asyncio
    async def test_running_engine_is_healthy(self, bus):
        report = await bus.check_health()

        assert report["name"] == "CoreEventBus"
        assert report["version"] == "1.0.0"
        assert report["status"] == "healthy"
        assert set(report["checks"]) == {"state", "queues", "subscriptions"}
        assert "timestamp" in report

    @pytest.mark.asyncio
    async def test_subscriptions_check_counts_broadcast_channel(self, fresh_bus):
        fresh_bus.subscribe("order.created", lambda event: None)
        fresh_bus.subscribe("order.*", lambda event: None)
        fresh_bus.subscribe("*", lambda event: None)

        report = await fresh_bus.check_health()

        subscriptions = report["checks"]["subscriptions"]
        assert subscriptions["count"] == 3
        assert subscriptions["broadcast_count"] == 2

    @pytest.mark.asyncio
    async def test_uninitialized_engine_is_unhealthy(self, fresh_bus):
        report = await fresh_bus.check_health()

        assert report["status"] == "unhealthy"
        assert report["checks"]["state"]["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_raising_probe_is_recorded(self, bus):
        """A raising probe becomes an 'error' entry and the report degrades."""

        def broken():
            raise RuntimeError("probe failed")

        bus.register_health_check("custom", broken)

        report = await bus.check_health()

        assert report["status"] == "unhealthy"
        assert report["checks"]["custom"] == {"status": "error", "error": "probe failed"}
        assert report["checks"]["state"]["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_async_probe_timeout(self, error_system):
        """Slow async probes are cut off by the configured timeout."""
        bus = create_event_bus(
            error_system=error_system,
            config={"health": {"probe_timeout_seconds": 0.01}},
        )

        async def slow():
            await asyncio.sleep(1)
            return {"status": "healthy"}

        bus.register_health_check("slow", slow)

        report = await bus.check_health()

        assert report["checks"]["slow"]["status"] == "error"
        assert "timed out" in report["checks"]["slow"]["error"]

    def test_non_callable_probe_is_rejected(self, fresh_bus):
        with pytest.raises(EventValidationError) as exc_info:
            fresh_bus.register_health_check("bad", "nope")

        assert exc_info.value.code is ErrorCodes.INVALID_HANDLER

    @pytest.mark.asyncio
    async def test_queue_probe_counts_queued_events(self, bus):
        await bus.emit("job", 1, {"queue": True})
        await bus.emit("job", 2, {"queue": True})

        report = await bus.check_health()

        queues = report["checks"]["queues"]
        assert queues["status"] == "healthy"
        assert queues["total_queued_events"] == 2


# ============================================================================
# ERROR HANDLING
# ============================================================================


class TestErrorHandling:
    """Error log, reporter failures and metrics."""

    @pytest.mark.asyncio
    async def test_reporter_failure_does_not_mask_error(self, config_manager):
        """A failing reporter is recorded; the original error still raises."""
        bus = create_event_bus(error_system=FailingErrorSystem(), config=config_manager)

        with pytest.raises(EventValidationError):
            await bus.emit("")

        phases = [entry["context"].get("phase") for entry in bus.get_errors()]
        assert "error-handling" in phases

    @pytest.mark.asyncio
    async def test_sync_reporter_is_supported(self, config_manager):
        reporter = SyncErrorSystem()
        bus = create_event_bus(error_system=reporter, config=config_manager)

        with pytest.raises(EventValidationError):
            await bus.emit(None)

        assert len(reporter.calls) == 1

    @pytest.mark.asyncio
    async def test_error_log_is_bounded(self, fresh_bus):
        """The error log keeps the most recent entries only."""
        for i in range(MAX_ERROR_LOG_SIZE + 50):
            await fresh_bus.handle_error(RuntimeError(str(i)))

        errors = fresh_bus.get_errors()
        assert len(errors) == MAX_ERROR_LOG_SIZE
        assert errors[0]["error"] == "50"
        assert errors[-1]["error"] == str(MAX_ERROR_LOG_SIZE + 49)

    @pytest.mark.asyncio
    async def test_error_metric_carries_code(self, fresh_bus):
        with pytest.raises(EventValidationError):
            await fresh_bus.emit("")

        metric = fresh_bus.get_metrics()["eventbus.errors"]
        assert metric["tags"]["error_code"] == ErrorCodes.INVALID_EVENT_NAME.value
        assert metric["tags"]["error_type"] == "EventValidationError"

    @pytest.mark.asyncio
    async def test_reports_include_source(self, fresh_bus):
        reporter = RecordingErrorSystem()
        fresh_bus.error_system = reporter

        await fresh_bus.handle_error(ValueError("x"), {"method": "custom"})

        assert reporter.contexts == [{"source": "CoreEventBus", "method": "custom"}]
