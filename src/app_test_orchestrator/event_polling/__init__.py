"""Event polling exports."""

from .event_poller import (
    DEFAULT_TEST_PAGE_URL,
    AutomationSession,
    dismiss_native_dialog,
    find_webview_context,
    poll_for_events,
    wait_for_device_ready,
)
from .polling_outcomes import (
    EventBatch,
    EventCacheMissingError,
    EventPollingError,
    WebviewContextError,
    WindowOutOfRangeError,
)
from .session_options import (
    AppiumSessionOptions,
    RemoteFarmSessionSettings,
    open_automation_session,
    with_suite_marker,
)
from .webdriver_session import AppiumHTTPError, WebDriverElementRef, WebDriverSession

__all__ = [
    "DEFAULT_TEST_PAGE_URL",
    "AppiumHTTPError",
    "AppiumSessionOptions",
    "AutomationSession",
    "EventBatch",
    "EventCacheMissingError",
    "EventPollingError",
    "RemoteFarmSessionSettings",
    "WebDriverElementRef",
    "WebDriverSession",
    "WebviewContextError",
    "WindowOutOfRangeError",
    "dismiss_native_dialog",
    "find_webview_context",
    "open_automation_session",
    "poll_for_events",
    "wait_for_device_ready",
    "with_suite_marker",
]
