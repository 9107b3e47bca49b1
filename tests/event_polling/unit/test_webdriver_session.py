"""WebDriver session client tests."""

from __future__ import annotations

from typing import Any

import pytest
import requests
from app_test_orchestrator.event_polling import AppiumHTTPError, WebDriverSession


class FakeResponse:
    def __init__(self, status_code: int, payload: Any) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeHTTP:
    def __init__(self, responses: list[FakeResponse]) -> None:
        self.responses = responses
        self.requests: list[tuple[str, str, Any]] = []

    def request(self, method: str, url: str, *, json=None, timeout=None) -> FakeResponse:
        self.requests.append((method, url, json))
        return self.responses.pop(0)


def _session(responses: list[FakeResponse]) -> tuple[WebDriverSession, FakeHTTP]:
    http = FakeHTTP(responses)
    session = WebDriverSession(
        "http://localhost:4723/", http_session=http  # type: ignore[arg-type]
    )
    return session, http


def test_create_session_wraps_capabilities_in_always_match() -> None:
    session, http = _session([FakeResponse(200, {"value": {"sessionId": "abc"}})])

    session_id = session.create_session({"platformName": "Android"})

    assert session_id == "abc"
    method, url, body = http.requests[0]
    assert (method, url) == ("POST", "http://localhost:4723/session")
    assert body["capabilities"]["alwaysMatch"] == {"platformName": "Android"}


def test_execute_script_returns_unwrapped_value() -> None:
    session, http = _session(
        [
            FakeResponse(200, {"value": {"sessionId": "abc"}}),
            FakeResponse(200, {"value": "[1, 2]"}),
        ]
    )
    session.create_session({"platformName": "iOS"})

    assert session.execute_script("return 1;") == "[1, 2]"
    assert http.requests[1][1] == "http://localhost:4723/session/abc/execute/sync"


def test_error_status_raises_appium_http_error() -> None:
    session, _ = _session(
        [
            FakeResponse(200, {"value": {"sessionId": "abc"}}),
            FakeResponse(404, {"value": {"error": "no such alert", "message": "none"}}),
        ]
    )
    session.create_session({"platformName": "iOS"})

    with pytest.raises(AppiumHTTPError) as excinfo:
        session.accept_alert()

    assert excinfo.value.status_code == 404


def test_transport_failure_raises_appium_http_error() -> None:
    class BrokenHTTP:
        def request(self, *args, **kwargs):
            raise requests.ConnectionError("refused")

    session = WebDriverSession(
        "http://localhost:4723", http_session=BrokenHTTP()  # type: ignore[arg-type]
    )

    with pytest.raises(AppiumHTTPError, match="Failed to call automation server"):
        session.create_session({"platformName": "Android"})


def test_commands_require_an_open_session() -> None:
    session, _ = _session([])

    with pytest.raises(RuntimeError, match="No active automation session"):
        session.window_handles()


def test_find_elements_extracts_w3c_element_ids() -> None:
    session, _ = _session(
        [
            FakeResponse(200, {"value": {"sessionId": "abc"}}),
            FakeResponse(
                200,
                {
                    "value": [
                        {"element-6066-11e4-a52e-4f735466cecf": "el-1"},
                        {"ELEMENT": "el-2"},
                    ]
                },
            ),
        ]
    )
    session.create_session({"platformName": "Android"})

    elements = session.find_elements(using="xpath", value="//button")

    assert [element.element_id for element in elements] == ["el-1", "el-2"]
