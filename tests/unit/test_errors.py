"""
Tests for the EventError family and the error reporting helpers.
"""

import logging

import pytest

from modulebus.core.event.errors import (
    ErrorCodes,
    ErrorSeverity,
    EventError,
    EventInitializationError,
    EventOperationError,
    EventShutdownError,
    EventValidationError,
    begin_report,
    finish_report,
    report_error,
)

logger = logging.getLogger("modulebus.tests.errors")


class TestEventError:
    """Codes, severities and serialization."""

    @pytest.mark.parametrize(
        "error_class,code,severity",
        [
            (EventInitializationError, ErrorCodes.NOT_INITIALIZED, ErrorSeverity.CRITICAL),
            (EventValidationError, ErrorCodes.INVALID_PATTERN, ErrorSeverity.INFO),
            (EventOperationError, ErrorCodes.SUBSCRIPTION_FAILED, ErrorSeverity.WARNING),
            (EventShutdownError, ErrorCodes.SHUTDOWN_FAILED, ErrorSeverity.CRITICAL),
        ],
    )
    def test_subclass_binds_default_severity(self, error_class, code, severity):
        """The code is whatever the caller passes; the severity comes from the class."""
        error = error_class(code, "message")

        assert error.code is code
        assert error.severity is severity
        assert isinstance(error, EventError)

    def test_severity_override(self):
        error = EventOperationError(
            ErrorCodes.EMISSION_FAILED, "boom", severity=ErrorSeverity.ERROR
        )
        assert error.severity is ErrorSeverity.ERROR

    def test_cause_is_chained(self):
        original = KeyError("k")
        error = EventOperationError(ErrorCodes.EMISSION_FAILED, "boom", cause=original)

        assert error.cause is original
        assert error.__cause__ is original

    def test_to_dict(self):
        error = EventValidationError(
            ErrorCodes.INVALID_EVENT_NAME, "bad name", {"provided": "''"}
        )

        data = error.to_dict()

        assert data["error_type"] == "EventValidationError"
        assert data["error_code"] == "EVENT_INVALID_EVENT_NAME"
        assert data["severity"] == "info"
        assert data["details"] == {"provided": "''"}
        assert data["cause"] is None

    def test_str_includes_code_and_details(self):
        error = EventOperationError(ErrorCodes.HANDLER_NOT_FOUND, "missing", {"id": "x"})
        assert str(error) == "[EVENT_HANDLER_NOT_FOUND] missing | Details: {'id': 'x'}"


class TestReporting:
    """begin_report / finish_report / report_error."""

    def test_begin_report_calls_sync_reporter_immediately(self, mocker):
        reporter = mocker.Mock()
        reporter.handle_error.return_value = None
        error = RuntimeError("x")

        pending, reporter_exc = begin_report(
            reporter=reporter, error=error, context={"method": "subscribe"}, logger=logger
        )

        assert pending is None
        assert reporter_exc is None
        reporter.handle_error.assert_called_once_with(error, {"method": "subscribe"})

    def test_begin_report_returns_reporter_failure(self, mocker):
        reporter = mocker.Mock()
        reporter.handle_error.side_effect = ValueError("reporter down")

        pending, reporter_exc = begin_report(
            reporter=reporter, error=RuntimeError("x"), context={}, logger=logger
        )

        assert pending is None
        assert isinstance(reporter_exc, ValueError)

    def test_begin_report_without_reporter(self):
        assert begin_report(reporter=None, error=RuntimeError("x"), context={}, logger=logger) == (
            None,
            None,
        )

    @pytest.mark.asyncio
    async def test_async_reporter_is_called_before_await(self, mocker):
        """The call happens in begin_report; only its result is awaited later."""
        reporter = mocker.Mock()
        reporter.handle_error = mocker.AsyncMock(side_effect=ValueError("late failure"))

        pending, reporter_exc = begin_report(
            reporter=reporter, error=RuntimeError("x"), context={}, logger=logger
        )

        reporter.handle_error.assert_called_once()
        assert reporter_exc is None
        assert pending is not None

        failure = await finish_report(pending, error=RuntimeError("x"), logger=logger)
        assert isinstance(failure, ValueError)

    @pytest.mark.asyncio
    async def test_report_error_never_raises(self, mocker, caplog):
        reporter = mocker.Mock()
        reporter.handle_error = mocker.AsyncMock(side_effect=ValueError("reporter down"))

        with caplog.at_level(logging.ERROR, logger="modulebus.tests.errors"):
            failure = await report_error(
                reporter=reporter, error=RuntimeError("x"), context={}, logger=logger
            )

        assert isinstance(failure, ValueError)
        assert any(
            r.getMessage() == "Error reporter failed while handling an error"
            for r in caplog.records
        )
