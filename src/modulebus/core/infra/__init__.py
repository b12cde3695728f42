"""
Infrastructure services for modulebus.

**Health Monitoring**:
    - HealthMonitor: registry and runner for a component's health probes
    - HealthStatus: probe and report status values
"""

from modulebus.core.infra.health import HealthMonitor, HealthStatus

__all__ = ["HealthMonitor", "HealthStatus"]
