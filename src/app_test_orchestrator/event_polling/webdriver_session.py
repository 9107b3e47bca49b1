"""WebDriver (Appium) HTTP session client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests

W3C_ELEMENT_KEY = "element-6066-11e4-a52e-4f735466cecf"
NATIVE_CONTEXT = "NATIVE_APP"


class AppiumHTTPError(RuntimeError):
    """Raised when the automation server rejects or fails a command."""

    def __init__(
        self,
        *,
        message: str,
        method: str,
        url: str,
        status_code: int | None = None,
        response_json: dict[str, Any] | None = None,
        response_text: str | None = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.url = url
        self.status_code = status_code
        self.response_json = response_json
        self.response_text = response_text


@dataclass(frozen=True)
class WebDriverElementRef:
    element_id: str


def _extract_webdriver_value(payload: dict[str, Any]) -> Any:
    # W3C WebDriver wraps results in {"value": ...}
    if "value" in payload:
        return payload["value"]
    return payload


def _extract_element_id(element_obj: Any) -> str:
    if not isinstance(element_obj, dict):
        raise ValueError(f"Unexpected element payload type: {type(element_obj)}")
    if element_obj.get(W3C_ELEMENT_KEY):
        return str(element_obj[W3C_ELEMENT_KEY])
    # Legacy JSONWire key
    if element_obj.get("ELEMENT"):
        return str(element_obj["ELEMENT"])
    raise ValueError(f"Could not extract element id from payload keys: {list(element_obj)}")


class WebDriverSession:
    """Automation session driven through WebDriver HTTP endpoints."""

    def __init__(
        self,
        server_url: str,
        *,
        timeout_s: float = 30.0,
        http_session: requests.Session | None = None,
    ) -> None:
        if not server_url:
            raise ValueError("server_url is required")
        self.server_url = server_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session_id: str | None = None
        self._http = http_session or requests.Session()

    def create_session(self, capabilities: dict[str, Any]) -> str:
        """Open a session for the given always-match capabilities."""
        if not capabilities:
            raise ValueError("capabilities must be a non-empty dict")
        payload = {"capabilities": {"alwaysMatch": capabilities, "firstMatch": [{}]}}
        response = self._request("POST", "/session", json=payload)
        value = _extract_webdriver_value(response)
        session_id = value.get("sessionId") if isinstance(value, dict) else None
        session_id = session_id or response.get("sessionId")
        if not session_id:
            raise AppiumHTTPError(
                message="Automation server did not return a sessionId",
                method="POST",
                url=f"{self.server_url}/session",
                response_json=response,
            )
        self.session_id = str(session_id)
        return self.session_id

    def delete_session(self) -> None:
        if not self.session_id:
            return
        session_id = self.session_id
        try:
            self._request("DELETE", f"/session/{session_id}")
        finally:
            self.session_id = None

    def set_timeouts(self, *, script_ms: int | None = None, implicit_ms: int | None = None) -> None:
        timeouts = {}
        if script_ms is not None:
            timeouts["script"] = script_ms
        if implicit_ms is not None:
            timeouts["implicit"] = implicit_ms
        self._session_command("POST", "/timeouts", json=timeouts)

    def execute_script(self, script: str, args: list[Any] | None = None) -> Any:
        return self._session_command(
            "POST", "/execute/sync", json={"script": script, "args": args or []}
        )

    def execute_async_script(self, script: str, args: list[Any] | None = None) -> Any:
        return self._session_command(
            "POST", "/execute/async", json={"script": script, "args": args or []}
        )

    def navigate(self, url: str) -> None:
        self._session_command("POST", "/url", json={"url": url})

    def window_handles(self) -> list[str]:
        value = self._session_command("GET", "/window/handles")
        if not isinstance(value, list):
            raise self._shape_error("GET", "/window/handles", "list", value)
        return [str(handle) for handle in value]

    def switch_to_window(self, handle: str) -> None:
        self._session_command("POST", "/window", json={"handle": handle, "name": handle})

    def contexts(self) -> list[str]:
        value = self._session_command("GET", "/contexts")
        if not isinstance(value, list):
            raise self._shape_error("GET", "/contexts", "list", value)
        return [str(context) for context in value]

    def current_context(self) -> str:
        return str(self._session_command("GET", "/context"))

    def switch_context(self, name: str) -> None:
        self._session_command("POST", "/context", json={"name": name})

    def accept_alert(self) -> None:
        self._session_command("POST", "/alert/accept", json={})

    def find_elements(self, *, using: str, value: str) -> list[WebDriverElementRef]:
        if not using or not value:
            raise ValueError("'using' and 'value' are required to find elements")
        payload = self._session_command("POST", "/elements", json={"using": using, "value": value})
        if not isinstance(payload, list):
            raise self._shape_error("POST", "/elements", "list", payload)
        return [WebDriverElementRef(element_id=_extract_element_id(item)) for item in payload]

    def click(self, element: WebDriverElementRef) -> None:
        self._session_command("POST", f"/element/{element.element_id}/click", json={})

    def _session_command(
        self, method: str, path: str, *, json: dict[str, Any] | None = None
    ) -> Any:
        if not self.session_id:
            raise RuntimeError("No active automation session. Call create_session() first.")
        response = self._request(method, f"/session/{self.session_id}{path}", json=json)
        return _extract_webdriver_value(response)

    def _shape_error(self, method: str, path: str, expected: str, value: Any) -> AppiumHTTPError:
        return AppiumHTTPError(
            message=f"Unexpected {path} response shape (expected {expected}): {value!r}",
            method=method,
            url=f"{self.server_url}/session/{self.session_id}{path}",
        )

    def _request(
        self, method: str, path: str, *, json: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        url = f"{self.server_url}{path}"
        try:
            response = self._http.request(method, url, json=json, timeout=self.timeout_s)
        except requests.RequestException as exc:
            raise AppiumHTTPError(
                message=f"Failed to call automation server: {exc}",
                method=method,
                url=url,
            ) from exc

        response_text = None
        response_json: dict[str, Any] | None = None
        try:
            response_json = response.json()
        except ValueError:
            response_text = response.text

        if response.status_code >= 400:
            details = None
            if response_json is not None:
                value = _extract_webdriver_value(response_json)
                if isinstance(value, dict):
                    details = value.get("error") or value.get("message")
            raise AppiumHTTPError(
                message=f"Automation HTTP {response.status_code} for {method} {path}"
                + (f": {details}" if details else ""),
                method=method,
                url=url,
                status_code=response.status_code,
                response_json=response_json,
                response_text=response_text,
            )

        if response_json is None:
            raise AppiumHTTPError(
                message=f"Automation server returned non-JSON response for {method} {path}",
                method=method,
                url=url,
                status_code=response.status_code,
                response_text=response_text,
            )
        return response_json
