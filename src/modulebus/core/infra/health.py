"""
Health probe aggregation for modulebus components.

Purpose
-------
Holds the named health probes of one component (the dispatch engine or the
supervising system), runs them, and aggregates the results into a single
health report.

Responsibilities
----------------
- Register named probes (sync or async callables returning a mapping with
  at least a ``status`` key)
- Run every probe with timeout protection
- Isolate probe failures: a raising or hanging probe becomes an ``error``
  entry instead of an exception
- Aggregate the overall status and build the report

Non-Responsibilities
--------------------
- Probe scheduling loops (callers decide when to check)
- Alerting (handled by external systems)

Health Status Hierarchy
-----------------------
- **healthy**: every probe reported healthy
- **unhealthy**: at least one probe reported anything else, raised, or
  timed out
- **error**: the status recorded for an individual probe that raised

Report Structure
----------------
{
    "name": str,
    "version": str,
    "status": "healthy" | "unhealthy",
    "timestamp": str,                      # ISO-8601, UTC
    "checks": {
        "<probe>": {"status": "healthy" | "unhealthy" | "error", ...}
    }
}

Design Decisions
----------------
**Timeout Protection**:
    Each probe is wrapped in ``asyncio.wait_for`` so one slow probe cannot
    hang the whole report.
**Sequential Probes**:
    Probes run in registration order; they are cheap in-memory reads and a
    stable order keeps reports and logs easy to compare.

Dependencies
------------
- modulebus.core.logging.logger.get_logger
"""

from __future__ import annotations

import asyncio
import inspect
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from modulebus.core.logging.logger import get_logger

logger = get_logger(__name__)

ProbeResult = Dict[str, Any]
HealthProbe = Callable[[], Union[ProbeResult, Awaitable[ProbeResult]]]


# ═════════════════════════════════════════════════════════════════════════════
# HEALTH STATUS
# ═════════════════════════════════════════════════════════════════════════════


class HealthStatus(str, Enum):
    """
    Health status values used in probe results and reports.

    Attributes
    ----------
    HEALTHY : str
        Component operational
    UNHEALTHY : str
        Component degraded, stopped, or not ready
    ERROR : str
        The probe itself failed
    """

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    ERROR = "error"


# ═════════════════════════════════════════════════════════════════════════════
# HEALTH MONITOR
# ═════════════════════════════════════════════════════════════════════════════


class HealthMonitor:
    """
    Registry and runner for a component's health probes.

    Examples
    --------
    >>> monitor = HealthMonitor()
    >>> monitor.register("state", lambda: {"status": "healthy"})
    >>> report = await monitor.check(name="CoreEventBus", version="1.0.0")
    >>> report["status"]
    'healthy'
    """

    DEFAULT_TIMEOUT_SECONDS: float = 5.0

    def __init__(self, timeout_seconds: Optional[float] = None) -> None:
        self._probes: Dict[str, HealthProbe] = {}
        self._timeout = (
            float(timeout_seconds)
            if timeout_seconds is not None
            else self.DEFAULT_TIMEOUT_SECONDS
        )

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def register(self, name: str, probe: HealthProbe) -> None:
        """Register or replace the probe called ``name``."""
        self._probes[name] = probe

    def unregister(self, name: str) -> bool:
        return self._probes.pop(name, None) is not None

    def names(self) -> list[str]:
        return list(self._probes)

    def __contains__(self, name: object) -> bool:
        return name in self._probes

    def __len__(self) -> int:
        return len(self._probes)

    async def _run_probe(self, name: str, probe: HealthProbe) -> ProbeResult:
        try:
            result = probe()
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(result, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Health probe timed out",
                extra={"probe": name, "timeout_seconds": self._timeout},
            )
            return {
                "status": HealthStatus.ERROR.value,
                "error": f"Health probe timed out after {self._timeout}s",
            }
        except Exception as exc:
            logger.error(
                "Health probe failed",
                extra={
                    "probe": name,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return {"status": HealthStatus.ERROR.value, "error": str(exc)}

        if not isinstance(result, dict):
            return {
                "status": HealthStatus.ERROR.value,
                "error": f"Health probe returned {type(result).__name__}, expected dict",
            }
        return result

    async def run(self) -> tuple[HealthStatus, Dict[str, ProbeResult]]:
        """
        Run every probe and aggregate.

        Returns
        -------
        tuple[HealthStatus, Dict[str, ProbeResult]]
            Overall status (healthy or unhealthy) and per-probe results.
        """
        checks: Dict[str, ProbeResult] = {}
        overall = HealthStatus.HEALTHY

        for name, probe in list(self._probes.items()):
            result = await self._run_probe(name, probe)
            checks[name] = result
            if result.get("status") != HealthStatus.HEALTHY.value:
                overall = HealthStatus.UNHEALTHY

        return overall, checks

    async def check(self, *, name: str, version: str) -> Dict[str, Any]:
        """
        Build the health report for a component.

        Never raises; probe failures appear inside ``checks``.
        """
        start = time.perf_counter()
        overall, checks = await self.run()
        duration_ms = (time.perf_counter() - start) * 1000

        if overall is not HealthStatus.HEALTHY:
            logger.warning(
                "Component reported unhealthy",
                extra={
                    "component_name": name,
                    "failing_probes": [
                        probe
                        for probe, result in checks.items()
                        if result.get("status") != HealthStatus.HEALTHY.value
                    ],
                    "duration_ms": round(duration_ms, 2),
                },
            )

        return {
            "name": name,
            "version": version,
            "status": overall.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": checks,
        }


__all__ = ["HealthStatus", "HealthMonitor", "HealthProbe", "ProbeResult"]
