"""
Pytest Configuration and Fixtures for the modulebus test suite.

Purpose
-------
Centralized fixtures shared by the unit tests: a recording error reporter,
a per-test ConfigManager, and initialized engine/system instances that are
shut down after each test.

Architecture Notes
------------------
- Async support via pytest-asyncio (``@pytest.mark.asyncio`` on tests,
  ``pytest_asyncio.fixture`` on async fixtures)
- Mocks via pytest-mock's ``mocker``
- Every fixture is function-scoped; engines never leak between tests
"""

from __future__ import annotations

from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio

from modulebus.core.config.manager import ConfigManager
from modulebus.core.event.bus import CoreEventBus, create_event_bus
from modulebus.core.event.system import EventBusSystem, create_event_bus_system


# ============================================================================
# COLLABORATOR DOUBLES
# ============================================================================


class RecordingErrorSystem:
    """Error reporter that keeps every (error, context) pair it receives."""

    def __init__(self) -> None:
        self.calls: list[tuple[BaseException, dict[str, Any]]] = []

    async def handle_error(self, error: BaseException, context: dict[str, Any]) -> None:
        self.calls.append((error, dict(context)))

    @property
    def errors(self) -> list[BaseException]:
        return [error for error, _ in self.calls]

    @property
    def contexts(self) -> list[dict[str, Any]]:
        return [context for _, context in self.calls]


class Recorder:
    """Handler double that records every event it is called with."""

    def __init__(self) -> None:
        self.events: list[Any] = []

    def __call__(self, event: Any) -> None:
        self.events.append(event)

    @property
    def names(self) -> list[str]:
        return [event.name for event in self.events]

    @property
    def payloads(self) -> list[Any]:
        return [event.data for event in self.events]


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def error_system() -> RecordingErrorSystem:
    return RecordingErrorSystem()


@pytest.fixture
def config_manager() -> ConfigManager:
    """ConfigManager with built-in defaults and no YAML directory."""
    return ConfigManager(config_dir=None, overrides={})


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_recorder():
    """Factory for additional handler doubles within one test."""
    return Recorder


@pytest.fixture
def fresh_bus(error_system, config_manager) -> CoreEventBus:
    """Engine that has not been initialized."""
    return create_event_bus(error_system=error_system, config=config_manager)


@pytest_asyncio.fixture
async def bus(error_system, config_manager) -> AsyncGenerator[CoreEventBus, None]:
    """Initialized engine, shut down after the test."""
    engine = create_event_bus(error_system=error_system, config=config_manager)
    await engine.initialize()
    yield engine
    await engine.shutdown()


@pytest_asyncio.fixture
async def system(error_system, config_manager) -> AsyncGenerator[EventBusSystem, None]:
    """Initialized supervising system, shut down after the test."""
    supervisor = create_event_bus_system(error_system=error_system, config=config_manager)
    await supervisor.initialize()
    yield supervisor
    await supervisor.shutdown()
