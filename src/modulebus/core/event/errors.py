"""
Error Family and Error Reporting Helpers for the modulebus EventBus.

Purpose
-------
Defines the dispatch-specific exception family raised by the event system and
the helpers that forward caught errors to the injected error reporter and
record handler failures.

Responsibilities
----------------
- Define ``ErrorCodes`` (stable, machine-readable codes)
- Define ``EventError`` and its taxonomy subclasses
- Forward errors to the injected ``error_system`` collaborator (sync or async)
  without ever letting a failing reporter mask the original error
- Log and count handler failures during immediate delivery

Design Decisions
----------------
- **One family**: every error raised by the engine or the supervising system
  is an ``EventError`` carrying a code, so callers branch on ``error.code``.
- **Structured metadata**: ``details``, ``severity`` and ``to_dict()`` follow
  the infrastructure exception base used across the core.
- **Cause chaining**: wrapped errors keep the original on ``cause`` and are
  raised ``from`` it, so ``__cause__`` is populated as well.

Error Taxonomy
--------------
EventError (base)
├── EventInitializationError   INITIALIZATION_FAILED, MISSING_DEPENDENCIES,
│                              INVALID_DEPENDENCY, NOT_INITIALIZED
├── EventValidationError       INVALID_EVENT_NAME, INVALID_PATTERN,
│                              INVALID_HANDLER
├── EventOperationError        EMISSION_FAILED, SUBSCRIPTION_FAILED,
│                              HANDLER_NOT_FOUND, QUEUE_PROCESSING_FAILED,
│                              HANDLER_ERROR
└── EventShutdownError         SHUTDOWN_FAILED

Dependencies
------------
- asyncio / inspect (Python stdlib)
- modulebus.core.event.metrics (MetricsRecorder)
"""

from __future__ import annotations

import asyncio
import inspect
from enum import Enum
from logging import Logger
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Coroutine, Optional

if TYPE_CHECKING:
    from modulebus.core.event.metrics import MetricsRecorder


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    INFO = "info"  # Caller mistakes (validation)
    WARNING = "warning"  # Handled operational failures
    ERROR = "error"  # Unexpected failures requiring attention
    CRITICAL = "critical"  # Lifecycle failures


class ErrorCodes(str, Enum):
    """
    Stable error codes for the event system.

    Values carry the ``EVENT_`` prefix so they can be matched against codes
    produced by the host application's error system.
    """

    INITIALIZATION_FAILED = "EVENT_INITIALIZATION_FAILED"
    MISSING_DEPENDENCIES = "EVENT_MISSING_DEPENDENCIES"
    INVALID_DEPENDENCY = "EVENT_INVALID_DEPENDENCY"
    NOT_INITIALIZED = "EVENT_NOT_INITIALIZED"

    INVALID_EVENT_NAME = "EVENT_INVALID_EVENT_NAME"
    INVALID_PATTERN = "EVENT_INVALID_PATTERN"
    INVALID_HANDLER = "EVENT_INVALID_HANDLER"

    EMISSION_FAILED = "EVENT_EMISSION_FAILED"
    SUBSCRIPTION_FAILED = "EVENT_SUBSCRIPTION_FAILED"
    HANDLER_NOT_FOUND = "EVENT_HANDLER_NOT_FOUND"
    QUEUE_PROCESSING_FAILED = "EVENT_QUEUE_PROCESSING_FAILED"
    HANDLER_ERROR = "EVENT_HANDLER_ERROR"

    SHUTDOWN_FAILED = "EVENT_SHUTDOWN_FAILED"


class EventError(Exception):
    """
    Base exception for all event system errors.

    Parameters
    ----------
    code:
        ``ErrorCodes`` member identifying the failure.
    message:
        Human-readable description.
    details:
        Additional structured context (inputs, state, ids).
    cause:
        The underlying exception when this error wraps another one.
    severity:
        Optional override of the class default severity.

    Examples
    --------
    >>> try:
    ...     await bus.emit("", {})
    ... except EventError as exc:
    ...     if exc.code is ErrorCodes.INVALID_EVENT_NAME:
    ...         ...
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR

    def __init__(
        self,
        code: ErrorCodes,
        message: str,
        details: Optional[dict[str, Any]] = None,
        *,
        cause: Optional[BaseException] = None,
        severity: Optional[ErrorSeverity] = None,
    ) -> None:
        self.code: ErrorCodes = code
        self.message: str = message
        self.details: dict[str, Any] = details or {}
        self.cause: Optional[BaseException] = cause
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.code.value,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "cause": repr(self.cause) if self.cause is not None else None,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.code.value}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.value!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r}"
            ")"
        )


class EventInitializationError(EventError):
    """Lifecycle start-up and dependency failures."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL


class EventValidationError(EventError):
    """Bad input from the caller: topic, pattern or handler."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO


class EventOperationError(EventError):
    """Failures while emitting, subscribing or draining queues."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING


class EventShutdownError(EventError):
    """Failures while tearing down the engine or the system."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL


# ============================================================================
# Error reporting
# ============================================================================


def _log_reporter_failure(logger: Logger, error: BaseException, reporter_exc: Exception) -> None:
    logger.error(
        "Error reporter failed while handling an error",
        extra={
            "original_error": str(error),
            "original_error_type": type(error).__name__,
            "reporter_error": str(reporter_exc),
            "reporter_error_type": type(reporter_exc).__name__,
        },
        exc_info=True,
    )


def begin_report(
    *,
    reporter: Any,
    error: BaseException,
    context: dict[str, Any],
    logger: Logger,
) -> tuple[Optional[Awaitable[Any]], Optional[BaseException]]:
    """
    Call the reporter's ``handle_error`` synchronously.

    Parameters
    ----------
    reporter:
        Object exposing ``handle_error(error, context)``; ``None`` skips.
    error:
        The error being reported.
    context:
        Contextual metadata (``source``, ``method``, inputs).
    logger:
        Logger used when the reporter itself fails.

    Returns
    -------
    tuple[Optional[Awaitable], Optional[BaseException]]:
        The awaitable an async reporter returned (still to be awaited with
        ``finish_report``), and the reporter's own exception if the call
        raised. At most one of the two is set.
    """
    if reporter is None:
        return None, None

    try:
        result = reporter.handle_error(error, context)
    except Exception as reporter_exc:
        _log_reporter_failure(logger, error, reporter_exc)
        return None, reporter_exc

    if inspect.isawaitable(result):
        return result, None
    return None, None


async def finish_report(
    pending: Awaitable[Any],
    *,
    error: BaseException,
    logger: Logger,
) -> Optional[BaseException]:
    """Await an async reporter's result; its failure is logged and returned."""
    try:
        await pending
    except Exception as reporter_exc:
        _log_reporter_failure(logger, error, reporter_exc)
        return reporter_exc
    return None


async def report_error(
    *,
    reporter: Any,
    error: BaseException,
    context: dict[str, Any],
    logger: Logger,
) -> Optional[BaseException]:
    """
    Forward an error to the injected error reporter and wait for it.

    The reporter's ``handle_error`` may be sync or async. A failure inside
    the reporter is logged and returned, never raised.

    Returns
    -------
    Optional[BaseException]:
        The reporter's own exception if it failed, otherwise ``None``.
    """
    pending, reporter_exc = begin_report(
        reporter=reporter, error=error, context=context, logger=logger
    )
    if pending is None:
        return reporter_exc
    return await finish_report(pending, error=error, logger=logger)


def schedule_report(
    coro_factory: Callable[[], Coroutine[Any, Any, Any]],
    background_tasks: set[asyncio.Task[Any]],
    *,
    name: str,
) -> None:
    """
    Run an error report from synchronous code.

    With a running loop the report becomes a tracked background task (kept in
    ``background_tasks`` until done). Without one it is run to completion.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(coro_factory())
        return

    task = loop.create_task(coro_factory(), name=name)
    background_tasks.add(task)
    task.add_done_callback(background_tasks.discard)


def handle_listener_error(
    *,
    logger: Logger,
    event_name: str,
    subscription_id: str,
    pattern: str,
    exc: Exception,
    metrics: Optional[MetricsRecorder],
) -> None:
    """
    Log a handler failure during immediate delivery and update metrics.

    This function never raises.

    Parameters
    ----------
    logger:
        Logger instance to use for error logging.
    event_name:
        Name of the event being delivered.
    subscription_id:
        Id of the subscription whose handler raised.
    pattern:
        Pattern the subscription was registered with.
    exc:
        The exception raised by the handler.
    metrics:
        Optional ``MetricsRecorder`` to update.
    """
    if metrics is not None:
        metrics.record_error(event_name)

    logger.error(
        "EventBus handler error",
        extra={
            "event_name": event_name,
            "subscription_id": subscription_id,
            "pattern": pattern,
            "error": str(exc),
            "error_type": type(exc).__name__,
        },
        exc_info=True,
    )


__all__ = [
    "ErrorCodes",
    "ErrorSeverity",
    "EventError",
    "EventInitializationError",
    "EventValidationError",
    "EventOperationError",
    "EventShutdownError",
    "begin_report",
    "finish_report",
    "report_error",
    "schedule_report",
    "handle_listener_error",
]
