"""Reporting channel entities."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

EventPayload = Mapping[str, Any] | None
EventCallback = Callable[[EventPayload], None]


class ChannelEvent(str, Enum):
    """Named events a device emits on the reporting channel."""

    DEVICE_LOG = "deviceLog"
    DEVICE_INFO = "deviceInfo"
    JASMINE_STARTED = "jasmineStarted"
    SPEC_STARTED = "specStarted"
    SPEC_DONE = "specDone"
    SUITE_STARTED = "suiteStarted"
    SUITE_DONE = "suiteDone"
    JASMINE_DONE = "jasmineDone"
    DISCONNECT = "disconnect"


LIFECYCLE_EVENTS = (
    ChannelEvent.JASMINE_STARTED,
    ChannelEvent.SPEC_STARTED,
    ChannelEvent.SPEC_DONE,
    ChannelEvent.SUITE_STARTED,
    ChannelEvent.SUITE_DONE,
    ChannelEvent.JASMINE_DONE,
)


class ReportingChannelError(Exception):
    """Raised when the reporting channel cannot be started or used."""


def failed_spec_count(payload: EventPayload) -> int:
    """Read ``specResults.specFailed`` from a ``jasmineDone`` payload."""
    if not isinstance(payload, Mapping):
        raise ReportingChannelError("jasmineDone payload must be an object.")
    spec_results = payload.get("specResults")
    if not isinstance(spec_results, Mapping):
        raise ReportingChannelError("jasmineDone payload is missing specResults.")
    spec_failed = spec_results.get("specFailed")
    if isinstance(spec_failed, bool) or not isinstance(spec_failed, int):
        raise ReportingChannelError("specResults.specFailed must be an integer.")
    return spec_failed
