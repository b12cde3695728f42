"""
Core Event Types for the modulebus EventBus.

Purpose
-------
Provides the data records shared by the dispatch engine and the supervising
system: the immutable ``Event`` envelope, the tagged subscription matchers,
the ``Subscription`` record, emit options and the lifecycle status enum.

Responsibilities
----------------
- Define ``Event`` (id, name, data, timestamp, metadata)
- Define the matcher variants ``ExactMatch``, ``UniversalMatch`` and
  ``SegmentMatch``
- Define ``Subscription`` and ``QueuedEvent``
- Define ``EmitOptions`` and normalise mapping-style options into it
- Define ``LifecycleStatus``

Design Decisions
----------------
- **Frozen dataclasses with slots**: events and subscriptions never change
  after creation and are cheap to share between handlers.
- **Tagged matcher variant**: the strategy chosen at subscribe time is stored
  on the subscription, so delivery never re-inspects the pattern string.
- **One handler shape**: every handler is called with the ``Event`` record,
  whichever matcher selected it.

Dependencies
------------
- dataclasses, enum, re, types, uuid (Python stdlib)
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

# Payloads are opaque to the engine.
EventPayload = Any

WILDCARD = "*"
SYSTEM_PREFIX = "system:"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class LifecycleStatus(str, Enum):
    """
    Lifecycle states shared by the engine and the supervising system.

    ``created -> initializing -> running -> shutting_down -> shutdown``, with
    ``error`` reachable from ``initializing`` and ``shutting_down``.
    """

    CREATED = "created"
    INITIALIZING = "initializing"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    SHUTDOWN = "shutdown"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class Event:
    """
    Immutable event envelope handed to every subscriber.

    Attributes
    ----------
    id:
        Unique identifier (uuid4 string).
    name:
        Dot-delimited topic the event was emitted on.
    data:
        Opaque payload supplied by the publisher.
    timestamp:
        Creation time (timezone-aware, UTC).
    metadata:
        Read-only copy of ``EmitOptions.metadata``; handlers share it, so it
        cannot be changed after creation.

    Examples
    --------
    >>> event = Event.create("order.created", {"id": 1})
    >>> event.name
    'order.created'
    """

    id: str
    name: str
    data: EventPayload
    timestamp: datetime
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def create(
        cls,
        name: str,
        data: EventPayload = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Event:
        """Build an event with a fresh id and the current UTC time."""
        return cls(
            id=new_id(),
            name=name,
            data=data,
            timestamp=utc_now(),
            metadata=MappingProxyType(dict(metadata or {})),
        )


# Handlers may be sync or async and always take the Event record.
HandlerType = Union[
    Callable[[Event], Any],
    Callable[[Event], Awaitable[Any]],
]


# ============================================================================
# Matchers
# ============================================================================


@dataclass(slots=True, frozen=True)
class ExactMatch:
    """Matches a single topic name; delivered through the direct path."""

    topic: str

    is_broadcast = False

    def matches(self, topic: str) -> bool:
        return topic == self.topic


@dataclass(slots=True, frozen=True)
class UniversalMatch:
    """Matches every topic; delivered through the broadcast channel."""

    is_broadcast = True

    def matches(self, topic: str) -> bool:
        return True


@dataclass(slots=True, frozen=True)
class SegmentMatch:
    """Matches topics against a compiled, anchored wildcard expression."""

    regex: re.Pattern[str]

    is_broadcast = True

    def matches(self, topic: str) -> bool:
        return self.regex.fullmatch(topic) is not None


Matcher = Union[ExactMatch, UniversalMatch, SegmentMatch]


# ============================================================================
# Records
# ============================================================================


@dataclass(slots=True, frozen=True)
class Subscription:
    """
    A registered subscription, owned by the engine's registry.

    Attributes
    ----------
    id:
        Unique identifier returned from ``subscribe``.
    pattern:
        The pattern string given at subscribe time.
    handler:
        The caller's callback.
    matcher:
        Strategy compiled from ``pattern``.
    options:
        Opaque subscription options.
    created:
        Registration time (UTC).
    """

    id: str
    pattern: str
    handler: HandlerType
    matcher: Matcher
    options: dict[str, Any] = field(default_factory=dict)
    created: datetime = field(default_factory=utc_now)

    @property
    def is_broadcast(self) -> bool:
        return self.matcher.is_broadcast

    @property
    def is_system(self) -> bool:
        return self.pattern.startswith(SYSTEM_PREFIX)


@dataclass(slots=True, frozen=True)
class EmitOptions:
    """
    Options accepted by ``emit``.

    Attributes
    ----------
    queue:
        Append the event to its topic queue instead of delivering it.
    immediate:
        With ``queue``, drain that topic's queue before ``emit`` returns.
    metadata:
        Copied onto ``Event.metadata``.
    """

    queue: bool = False
    immediate: bool = False
    metadata: Optional[Mapping[str, Any]] = None

    @classmethod
    def coerce(
        cls, options: Union[EmitOptions, Mapping[str, Any], None]
    ) -> EmitOptions:
        """Accept an ``EmitOptions``, a mapping, or ``None``."""
        if options is None:
            return cls()
        if isinstance(options, EmitOptions):
            return options
        return cls(
            queue=bool(options.get("queue", False)),
            immediate=bool(options.get("immediate", False)),
            metadata=options.get("metadata"),
        )


@dataclass(slots=True, frozen=True)
class QueuedEvent:
    """An event waiting in a per-topic queue."""

    event: Event
    options: EmitOptions
    timestamp: datetime = field(default_factory=utc_now)
