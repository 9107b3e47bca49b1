"""Draining of buffered instrumentation events through an automation session."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

from app_test_orchestrator.configuration.runtime_settings import Platform

from .polling_outcomes import (
    EventBatch,
    EventCacheMissingError,
    WebviewContextError,
    WindowOutOfRangeError,
)
from .webdriver_session import NATIVE_CONTEXT, AppiumHTTPError, WebDriverElementRef

logger = logging.getLogger(__name__)

DEFAULT_TEST_PAGE_URL = "http://localhost:8000/cdvtests/index.html"
DEFAULT_POLL_RETRIES = 2
WEBVIEW_WAIT_SECONDS = 5.0
ASYNC_SCRIPT_TIMEOUT_MS = 60_000
ALLOW_BUTTON_XPATH = '//android.widget.Button[translate(@text, "alow", "ALOW")="ALLOW"]'

# Returns null when the cache global is absent, otherwise its JSON and resets it.
EVENT_CACHE_SCRIPT = """
if (typeof window._jasmineParamedicProxyCache === 'undefined') {
    return null;
}
var result = window._jasmineParamedicProxyCache;
window._jasmineParamedicProxyCache = [];
return JSON.stringify(result);
"""

DEVICE_READY_SCRIPT = """
var done = arguments[arguments.length - 1];
document.addEventListener('deviceready', function () { done(); }, false);
"""


class AutomationSession(Protocol):
    """Subset of the WebDriver session API used by the poller."""

    def execute_script(self, script: str, args: list[Any] | None = None) -> Any: ...

    def execute_async_script(self, script: str, args: list[Any] | None = None) -> Any: ...

    def set_timeouts(
        self, *, script_ms: int | None = None, implicit_ms: int | None = None
    ) -> None: ...

    def navigate(self, url: str) -> None: ...

    def window_handles(self) -> list[str]: ...

    def switch_to_window(self, handle: str) -> None: ...

    def contexts(self) -> list[str]: ...

    def current_context(self) -> str: ...

    def switch_context(self, name: str) -> None: ...

    def accept_alert(self) -> None: ...

    def find_elements(self, *, using: str, value: str) -> list[WebDriverElementRef]: ...

    def click(self, element: WebDriverElementRef) -> None: ...


def poll_for_events(
    session: AutomationSession,
    platform: Platform,
    *,
    skip_initial_dismiss: bool = False,
    window_offset: int = 0,
    retries: int = DEFAULT_POLL_RETRIES,
    base_page_url: str = DEFAULT_TEST_PAGE_URL,
) -> EventBatch:
    """Read and clear the in-page event cache.

    An empty batch means no events arrived yet. When the cache global is absent
    the browser reloads the test page (bounded by ``retries``), Android moves on
    to the next window (bounded by the number of open windows) and every other
    platform fails with ``EventCacheMissingError``.
    """
    while True:
        if not skip_initial_dismiss:
            dismiss_native_dialog(session, platform)
        if platform is Platform.ANDROID:
            # Some plugins leave another window active on Android.
            _switch_to_window(session, window_offset)

        raw_result = session.execute_script(EVENT_CACHE_SCRIPT, [])
        events = _decode_event_cache(raw_result)
        if events is not None:
            return EventBatch(events=tuple(events))

        if platform is Platform.BROWSER and retries > 0:
            # Usually a transient "bad gateway" page; reloading recovers.
            logger.info(
                "Event cache not found, reloading %s (%s retries left)", base_page_url, retries
            )
            session.navigate(base_page_url)
            retries -= 1
            continue
        if platform is Platform.ANDROID:
            logger.debug("Event cache not found in window %s, trying the next one", window_offset)
            window_offset += 1
            continue
        raise EventCacheMissingError(raw_result)


def dismiss_native_dialog(session: AutomationSession, platform: Platform) -> None:
    """Accept a blocking native permission dialog if one is showing."""
    if platform not in (Platform.IOS, Platform.ANDROID):
        return
    current = session.current_context()
    previous_context = current if current != NATIVE_CONTEXT else None
    session.switch_context(NATIVE_CONTEXT)
    try:
        if platform is Platform.IOS:
            try:
                session.accept_alert()
            except AppiumHTTPError:
                logger.debug("No alert to accept")
        else:
            try:
                buttons = session.find_elements(using="xpath", value=ALLOW_BUTTON_XPATH)
                if buttons:
                    session.click(buttons[0])
            except AppiumHTTPError:
                logger.debug("No permission dialog to dismiss")
    finally:
        if previous_context:
            session.switch_context(previous_context)


def find_webview_context(
    session: AutomationSession,
    retries: int = 2,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Wait for the app to expose a web view and return the most recent one."""
    while True:
        sleep(WEBVIEW_WAIT_SECONDS)
        for context in reversed(session.contexts()):
            if "WEBVIEW" in context:
                return context
        # No web view yet, the app is still loading.
        sleep(1.0)
        if retries <= 0:
            raise WebviewContextError("Couldn't get webview context.")
        logger.info("No webview context. Retries remaining: %s", retries)
        retries -= 1


def wait_for_device_ready(session: AutomationSession) -> None:
    session.set_timeouts(script_ms=ASYNC_SCRIPT_TIMEOUT_MS)
    session.execute_async_script(DEVICE_READY_SCRIPT, [])


def _switch_to_window(session: AutomationSession, window_offset: int) -> None:
    handles = session.window_handles()
    if window_offset >= len(handles):
        raise WindowOutOfRangeError(window_offset, len(handles))
    session.switch_to_window(handles[window_offset])


def _decode_event_cache(raw_result: Any) -> list[Any] | None:
    if isinstance(raw_result, list):
        return raw_result
    if not isinstance(raw_result, str) or not raw_result:
        return None
    try:
        decoded = json.loads(raw_result)
    except ValueError:
        return None
    return decoded if isinstance(decoded, list) else None
