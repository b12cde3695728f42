"""
Event log context helpers for the modulebus EventBus.

Purpose
-------
Enriches the current LogContext with the name of the event being dispatched
and the keys of its payload, so every log line written by a handler can be
traced back to the event that triggered it.

Design Decisions
----------------
- **Best-effort context**: a failure here is logged at debug level and never
  breaks dispatch
- **Keys only**: payload values are never copied into the log context
- Non-mapping payloads contribute no keys

Dependencies
------------
- modulebus.core.logging.logger (set_log_context)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from modulebus.core.logging.logger import get_logger, set_log_context

logger = get_logger(__name__)


def apply_event_log_context(event_name: str, payload: Any) -> None:
    """
    Apply event-related fields to LogContext for structured logging.

    Parameters
    ----------
    event_name:
        The name of the event being emitted.
    payload:
        The event payload. Only mapping keys are recorded.

    Examples
    --------
    >>> apply_event_log_context("order.created", {"order_id": 7, "total": 12})
    # Subsequent logs in this task carry event_name and event_keys
    """
    try:
        keys = [str(key) for key in payload.keys()] if isinstance(payload, Mapping) else []
        set_log_context(event_name=event_name, event_keys=keys)
    except Exception as exc:
        logger.debug(
            "Failed to apply event log context",
            extra={
                "event_name": event_name,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
