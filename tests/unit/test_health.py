"""
Tests for HealthMonitor probe aggregation.
"""

import asyncio

import pytest

from modulebus.core.infra.health import HealthMonitor, HealthStatus


class TestHealthMonitor:
    """Probe registration, isolation and aggregation."""

    @pytest.mark.asyncio
    async def test_all_healthy(self):
        monitor = HealthMonitor()
        monitor.register("a", lambda: {"status": "healthy"})

        async def async_probe():
            return {"status": "healthy", "detail": 1}

        monitor.register("b", async_probe)

        overall, checks = await monitor.run()

        assert overall is HealthStatus.HEALTHY
        assert checks["b"] == {"status": "healthy", "detail": 1}

    @pytest.mark.asyncio
    async def test_any_unhealthy_degrades_report(self):
        monitor = HealthMonitor()
        monitor.register("ok", lambda: {"status": "healthy"})
        monitor.register("down", lambda: {"status": "unhealthy"})

        report = await monitor.check(name="Component", version="2.0.0")

        assert report["status"] == "unhealthy"
        assert report["name"] == "Component"
        assert report["version"] == "2.0.0"
        assert list(report["checks"]) == ["ok", "down"]

    @pytest.mark.asyncio
    async def test_non_dict_result_is_an_error(self):
        monitor = HealthMonitor()
        monitor.register("weird", lambda: "fine")

        _, checks = await monitor.run()

        assert checks["weird"]["status"] == "error"
        assert "expected dict" in checks["weird"]["error"]

    @pytest.mark.asyncio
    async def test_timeout(self):
        monitor = HealthMonitor(timeout_seconds=0.01)

        async def hang():
            await asyncio.sleep(1)

        monitor.register("hang", hang)

        overall, checks = await monitor.run()

        assert overall is HealthStatus.UNHEALTHY
        assert checks["hang"]["error"] == "Health probe timed out after 0.01s"

    def test_registry_operations(self):
        monitor = HealthMonitor()
        monitor.register("a", lambda: {"status": "healthy"})

        assert "a" in monitor
        assert len(monitor) == 1
        assert monitor.names() == ["a"]
        assert monitor.unregister("a") is True
        assert monitor.unregister("a") is False
        assert monitor.timeout_seconds == HealthMonitor.DEFAULT_TIMEOUT_SECONDS
