"""
Metrics recording for the modulebus EventBus.

Purpose
-------
Collects the named lifecycle metrics (``eventbus.events.emitted``,
``eventbus.subscriptions``, ...) recorded by the engine and the supervising
system, plus per-topic emit and handler-error counters.

Responsibilities
----------------
- Store named metrics as ``{value, timestamp, tags}`` (last write wins)
- Count emits and handler errors per topic
- Track the active subscription count
- Produce immutable ``EventMetrics`` snapshots with a formatted summary

Design Decisions
----------------
- **Recorder vs snapshot**: ``MetricsRecorder`` is mutable and owned by a
  single lifecycle state; ``EventMetrics`` is a frozen copy for readers.
- **Named metrics keep the latest sample only**: they describe the most
  recent occurrence (tags included), counters carry the totals.

Dependencies
------------
- collections.defaultdict, dataclasses (Python stdlib)
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


@dataclass(frozen=True)
class EventMetrics:
    """
    Immutable snapshot of event counters.

    Attributes
    ----------
    events_emitted:
        Mapping of topic names to emit counts.
    handler_errors:
        Mapping of topic names to handler error counts.
    active_subscriptions:
        Number of live subscriptions at snapshot time.

    Examples
    --------
    >>> metrics = EventMetrics(
    ...     events_emitted={"order.created": 50},
    ...     handler_errors={"order.created": 1},
    ...     active_subscriptions=3,
    ... )
    >>> metrics.get_summary()["error_rate"]
    2.0
    """

    events_emitted: dict[str, int] = field(default_factory=dict)
    handler_errors: dict[str, int] = field(default_factory=dict)
    active_subscriptions: int = 0

    def get_summary(self) -> dict[str, Any]:
        """
        Summarise the snapshot.

        Returns
        -------
        dict[str, Any]:
            ``total_events_emitted``, ``events_by_topic``, ``total_errors``,
            ``errors_by_topic``, ``active_subscriptions`` and ``error_rate``
            (percentage of emits that saw a handler error, 0-100).
        """
        total_events = sum(self.events_emitted.values())
        total_errors = sum(self.handler_errors.values())

        error_rate = (total_errors / max(1, total_events)) * 100.0

        return {
            "total_events_emitted": total_events,
            "events_by_topic": dict(self.events_emitted),
            "total_errors": total_errors,
            "errors_by_topic": dict(self.handler_errors),
            "active_subscriptions": self.active_subscriptions,
            "error_rate": round(error_rate, 2),
        }


class MetricsRecorder:
    """
    Mutable metrics store for one engine or system instance.

    Not thread-safe; all mutations happen on the owning event loop.

    Examples
    --------
    >>> recorder = MetricsRecorder()
    >>> recorder.record("eventbus.subscriptions", 1, {"pattern": "order.*"})
    >>> recorder.as_dict()["eventbus.subscriptions"]["tags"]
    {'pattern': 'order.*'}
    """

    def __init__(self) -> None:
        self._named: dict[str, dict[str, Any]] = {}
        self._events_emitted: defaultdict[str, int] = defaultdict(int)
        self._handler_errors: defaultdict[str, int] = defaultdict(int)
        self._active_subscriptions: int = 0

    # ------------------------------------------------------------------ #
    # Named metrics
    # ------------------------------------------------------------------ #

    def record(
        self,
        name: str,
        value: Any,
        tags: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Record a named metric, replacing any previous sample.

        Parameters
        ----------
        name:
            Metric name, e.g. ``eventbus.queue.processed``.
        value:
            Sample value.
        tags:
            Optional tag mapping stored alongside the value.
        """
        self._named[name] = {
            "value": value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "tags": dict(tags or {}),
        }

    def as_dict(self) -> dict[str, dict[str, Any]]:
        """Return a copy of every named metric."""
        return {name: dict(sample) for name, sample in self._named.items()}

    # ------------------------------------------------------------------ #
    # Counters
    # ------------------------------------------------------------------ #

    def record_publish(self, event_name: str) -> None:
        self._events_emitted[event_name] += 1

    def record_error(self, event_name: str) -> None:
        self._handler_errors[event_name] += 1

    @property
    def active_subscriptions(self) -> int:
        return self._active_subscriptions

    def increment_subscription_count(self) -> None:
        self._active_subscriptions += 1

    def decrement_subscription_count(self) -> None:
        """Decrement the subscription count, clamped at 0."""
        self._active_subscriptions = max(0, self._active_subscriptions - 1)

    def snapshot(self) -> EventMetrics:
        """
        Return an immutable snapshot of the counters.

        Returns
        -------
        EventMetrics:
            Frozen copy; later recording does not affect it.
        """
        return EventMetrics(
            events_emitted=dict(self._events_emitted),
            handler_errors=dict(self._handler_errors),
            active_subscriptions=self._active_subscriptions,
        )


__all__ = ["EventMetrics", "MetricsRecorder"]
