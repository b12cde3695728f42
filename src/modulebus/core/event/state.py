"""
Lifecycle state shared by the dispatch engine and the supervising system.

Purpose
-------
Both ``CoreEventBus`` and ``EventBusSystem`` carry the same bookkeeping: a
lifecycle status, a start time, named metrics, a bounded error log and a set
of health probes. This module holds that state and the behaviour built on it.

Responsibilities
----------------
- ``LifecycleState``: status, start time, ``MetricsRecorder``, bounded error
  log and ``HealthMonitor``
- ``ManagedComponent``: base class exposing ``handle_error``,
  ``record_metric``, ``register_health_check``, ``check_health``,
  ``get_metrics`` and ``get_status``
- Resolve settings from the injected ``config`` collaborator with the
  override -> config -> default fallback chain

Design Decisions
----------------
- **Bounded error log**: ``deque(maxlen=100)`` evicts the oldest entry
  automatically, so the log never exceeds 100 records.
- **Reporter failures are recorded, not raised**: a failing ``error_system``
  adds a ``{"phase": "error-handling"}`` entry and the original error keeps
  propagating.

Dependencies
------------
- modulebus.core.event.errors (EventError, report helpers)
- modulebus.core.event.metrics (MetricsRecorder)
- modulebus.core.infra.health (HealthMonitor)
- modulebus.core.config.manager (resolve_setting)
"""

from __future__ import annotations

import time
from collections import deque
from datetime import datetime, timezone
from logging import Logger
from typing import Any, Awaitable, ClassVar, Optional

from modulebus.core.config.manager import resolve_setting
from modulebus.core.event.errors import (
    ErrorCodes,
    EventInitializationError,
    EventValidationError,
    begin_report,
    finish_report,
    report_error,
)
from modulebus.core.event.metrics import MetricsRecorder
from modulebus.core.event.types import LifecycleStatus
from modulebus.core.infra.health import HealthMonitor, HealthProbe

MAX_ERROR_LOG_SIZE = 100


class LifecycleState:
    """Mutable lifecycle bookkeeping for one component."""

    def __init__(self, probe_timeout_seconds: Optional[float] = None) -> None:
        self.status: LifecycleStatus = LifecycleStatus.CREATED
        self.start_time: Optional[float] = None
        self.metrics: MetricsRecorder = MetricsRecorder()
        self.errors: deque[dict[str, Any]] = deque(maxlen=MAX_ERROR_LOG_SIZE)
        self.health: HealthMonitor = HealthMonitor(timeout_seconds=probe_timeout_seconds)

    @property
    def uptime_ms(self) -> int:
        if self.start_time is None:
            return 0
        return int((time.monotonic() - self.start_time) * 1000)

    def mark_started(self) -> None:
        self.start_time = time.monotonic()

    def append_error(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        self.errors.append(
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "error": message,
                "context": dict(context or {}),
            }
        )


class ManagedComponent:
    """
    Base class for components with a lifecycle, metrics and health probes.

    Subclasses set ``component_name``, ``version`` and ``metric_prefix`` and
    call ``super().__init__`` with their two collaborators.
    """

    component_name: ClassVar[str] = "ManagedComponent"
    version: ClassVar[str] = "1.0.0"
    metric_prefix: ClassVar[str] = "component"

    def __init__(self, *, error_system: Any, config: Any, logger: Logger) -> None:
        self.error_system = error_system
        self.config = config
        self._logger = logger
        self.initialized: bool = False
        self.state = LifecycleState(
            probe_timeout_seconds=self._load_setting(
                key="health.probe_timeout_seconds",
                override=None,
                default=HealthMonitor.DEFAULT_TIMEOUT_SECONDS,
                cast=float,
            )
        )

    @property
    def deps(self) -> dict[str, Any]:
        return {"error_system": self.error_system, "config": self.config}

    # ------------------------------------------------------------------ #
    # Configuration Loading
    # ------------------------------------------------------------------ #

    def _load_setting(
        self,
        key: str,
        override: Any,
        default: Any,
        cast: type = int,
    ) -> Any:
        """
        Load a setting with fallback chain: override -> config -> default.

        Values that fail ``cast`` are logged and replaced by ``default``.
        """
        if override is not None:
            return cast(override)

        value = resolve_setting(self.config, key, default)
        try:
            return cast(value)
        except (TypeError, ValueError) as exc:
            self._logger.warning(
                "Invalid setting in config, using default",
                extra={
                    "config_key": key,
                    "default_value": default,
                    "error": str(exc),
                },
            )
            return cast(default)

    # ------------------------------------------------------------------ #
    # Metrics
    # ------------------------------------------------------------------ #

    def record_metric(
        self,
        name: str,
        value: Any,
        tags: Optional[dict[str, Any]] = None,
    ) -> None:
        """Record a named metric (last write wins)."""
        self.state.metrics.record(name, value, tags)

    def get_metrics(self) -> dict[str, dict[str, Any]]:
        """Return every named metric as ``{name: {value, timestamp, tags}}``."""
        return self.state.metrics.as_dict()

    # ------------------------------------------------------------------ #
    # Error Handling
    # ------------------------------------------------------------------ #

    async def handle_error(
        self,
        error: BaseException,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Record an error and forward it to the injected error reporter.

        Never raises. A reporter failure is appended to the error log with
        ``{"phase": "error-handling"}``.
        """
        reporter_exc = await report_error(
            reporter=self.error_system,
            error=error,
            context=self._record_error(error, context),
            logger=self._logger,
        )
        if reporter_exc is not None:
            self.state.append_error(str(reporter_exc), {"phase": "error-handling"})

    def report_error_now(
        self,
        error: BaseException,
        context: Optional[dict[str, Any]] = None,
    ) -> Optional[Awaitable[Any]]:
        """
        Record an error and call the reporter without awaiting it.

        For synchronous call sites that must report before raising. The error
        log, the error metric and the ``handle_error`` call all happen before
        this returns.

        Returns
        -------
        Optional[Awaitable]:
            What an async reporter returned; pass it to ``settle_report``.
        """
        pending, reporter_exc = begin_report(
            reporter=self.error_system,
            error=error,
            context=self._record_error(error, context),
            logger=self._logger,
        )
        if reporter_exc is not None:
            self.state.append_error(str(reporter_exc), {"phase": "error-handling"})
        return pending

    async def settle_report(self, pending: Awaitable[Any], error: BaseException) -> None:
        """Await the rest of a report started by ``report_error_now``."""
        reporter_exc = await finish_report(pending, error=error, logger=self._logger)
        if reporter_exc is not None:
            self.state.append_error(str(reporter_exc), {"phase": "error-handling"})

    def _record_error(
        self,
        error: BaseException,
        context: Optional[dict[str, Any]],
    ) -> dict[str, Any]:
        context = dict(context or {})
        self.state.append_error(str(error), context)

        code = getattr(error, "code", None)
        self.record_metric(
            f"{self.metric_prefix}.errors",
            1,
            {
                "error_type": type(error).__name__,
                "error_code": code.value if isinstance(code, ErrorCodes) else code,
            },
        )
        return {"source": self.component_name, **context}

    # ------------------------------------------------------------------ #
    # Health
    # ------------------------------------------------------------------ #

    def register_health_check(self, name: str, probe: HealthProbe) -> None:
        """
        Register a named health probe.

        Raises
        ------
        EventValidationError
            ``INVALID_HANDLER`` when ``probe`` is not callable.
        """
        if not callable(probe):
            raise EventValidationError(
                ErrorCodes.INVALID_HANDLER,
                f"Health check {name} must be a function",
                {"check_name": name},
            )
        self.state.health.register(name, probe)

    async def check_health(self) -> dict[str, Any]:
        """
        Run every probe and build the health report.

        Returns
        -------
        dict[str, Any]
            ``{name, version, status, timestamp, checks}``; ``status`` is
            "healthy" only when every probe reported healthy.
        """
        return await self.state.health.check(
            name=self.component_name,
            version=self.version,
        )

    def _state_probe(self) -> dict[str, Any]:
        return {
            "status": "healthy" if self.initialized else "unhealthy",
            "lifecycle": self.state.status.value,
            "uptime_ms": self.state.uptime_ms,
            "error_count": len(self.state.errors),
        }

    # ------------------------------------------------------------------ #
    # Status
    # ------------------------------------------------------------------ #

    def get_errors(self) -> list[dict[str, Any]]:
        return list(self.state.errors)

    def get_status(self) -> dict[str, Any]:
        return {
            "name": self.component_name,
            "version": self.version,
            "status": self.state.status.value,
            "uptime_ms": self.state.uptime_ms,
            "initialized": self.initialized,
            "error_count": len(self.state.errors),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def _already_initialized_error(self) -> EventInitializationError:
        return EventInitializationError(
            ErrorCodes.INITIALIZATION_FAILED,
            f"{self.component_name} is already initialized",
            {"state": self.state.status.value},
        )


__all__ = ["LifecycleState", "ManagedComponent", "MAX_ERROR_LOG_SIZE"]
