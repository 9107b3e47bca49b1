"""Options handed to the UI-automation suite and session bootstrap helpers."""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any
from urllib.parse import quote

import requests

from app_test_orchestrator.configuration.runtime_settings import Platform

from .event_poller import find_webview_context, wait_for_device_ready
from .webdriver_session import WebDriverSession

logger = logging.getLogger(__name__)

LOCAL_AUTOMATION_SERVER_URL = "http://localhost:4723"
REMOTE_FARM_HOST = "ondemand.saucelabs.com"
REMOTE_FARM_PORT = 80
IMPLICIT_WAIT_TIMEOUT_MS = 10_000
APPIUM_SUITE_MARKER = "_Appium"
OPTIONS_ENV_VAR = "APP_TEST_ORCHESTRATOR_APPIUM_OPTIONS"

_PLATFORM_NAMES = {Platform.ANDROID: "Android", Platform.IOS: "iOS"}
_PACKAGE_PATHS = {
    Platform.ANDROID: (
        "platforms",
        "android",
        "app",
        "build",
        "outputs",
        "apk",
        "debug",
        "app-debug.apk",
    ),
    Platform.IOS: ("platforms", "ios", "build", "emulator", "HelloCordova.app"),
}


def with_suite_marker(capabilities: Mapping[str, Any]) -> Mapping[str, Any]:
    """Return a new read-only capability map whose session name carries the suite marker."""
    marked = dict(capabilities)
    marked["name"] = f"{marked.get('name', '')}{APPIUM_SUITE_MARKER}"
    return MappingProxyType(marked)


@dataclass(frozen=True)
class RemoteFarmSessionSettings:
    """Device farm details only present when the suite runs remotely."""

    storage_path: str
    user: str
    key: str
    capabilities: Mapping[str, Any]


@dataclass(frozen=True)
class AppiumSessionOptions:  # pylint: disable=too-many-instance-attributes
    """Immutable description of the automation session the suite should open."""

    platform: Platform
    app_path: Path
    plugin_repos: tuple[Path, ...]
    device_name: str | None
    udid: str | None
    screenshot_dir: Path
    output_dir: Path | None
    verbose: bool
    use_remote_farm: bool
    cli: str
    remote: RemoteFarmSessionSettings | None = None

    @property
    def package_path(self) -> Path:
        return self.app_path.joinpath(*_PACKAGE_PATHS[self.platform])

    def server_url(self) -> str:
        if self.remote is None:
            return LOCAL_AUTOMATION_SERVER_URL
        credentials = f"{quote(self.remote.user, safe='')}:{quote(self.remote.key, safe='')}"
        return f"http://{credentials}@{REMOTE_FARM_HOST}:{REMOTE_FARM_PORT}/wd/hub"

    def session_capabilities(self) -> dict[str, Any]:
        """Build a fresh capability dict for one session request."""
        if self.remote is not None:
            remote_capabilities = dict(self.remote.capabilities)
            remote_capabilities.setdefault("app", self.remote.storage_path)
            return remote_capabilities
        capabilities: dict[str, Any] = {
            "platformName": _PLATFORM_NAMES[self.platform],
            "appium:deviceName": self.device_name or "",
            "appium:platformVersion": "",
            "appium:app": str(self.package_path),
            "appium:autoAcceptAlerts": True,
        }
        if self.udid:
            capabilities["appium:udid"] = self.udid
        return capabilities

    def to_json(self) -> str:
        payload: dict[str, Any] = {
            "platform": self.platform.value,
            "app_path": str(self.app_path),
            "plugin_repos": [str(repo) for repo in self.plugin_repos],
            "device_name": self.device_name,
            "udid": self.udid,
            "screenshot_dir": str(self.screenshot_dir),
            "output_dir": str(self.output_dir) if self.output_dir else None,
            "verbose": self.verbose,
            "use_remote_farm": self.use_remote_farm,
            "cli": self.cli,
            "remote": None,
        }
        if self.remote is not None:
            payload["remote"] = {
                "storage_path": self.remote.storage_path,
                "user": self.remote.user,
                "key": self.remote.key,
                "capabilities": dict(self.remote.capabilities),
            }
        return json.dumps(payload)

    @classmethod
    def from_json(cls, text: str) -> AppiumSessionOptions:
        payload = json.loads(text)
        remote = payload.get("remote")
        return cls(
            platform=Platform(payload["platform"]),
            app_path=Path(payload["app_path"]),
            plugin_repos=tuple(Path(repo) for repo in payload["plugin_repos"]),
            device_name=payload.get("device_name"),
            udid=payload.get("udid"),
            screenshot_dir=Path(payload["screenshot_dir"]),
            output_dir=Path(payload["output_dir"]) if payload.get("output_dir") else None,
            verbose=bool(payload.get("verbose")),
            use_remote_farm=bool(payload.get("use_remote_farm")),
            cli=payload["cli"],
            remote=(
                RemoteFarmSessionSettings(
                    storage_path=remote["storage_path"],
                    user=remote["user"],
                    key=remote["key"],
                    capabilities=MappingProxyType(dict(remote["capabilities"])),
                )
                if remote
                else None
            ),
        )

    @classmethod
    def from_environment(cls) -> AppiumSessionOptions:
        """Read the options a suite runner exported for the suite process."""
        text = os.environ.get(OPTIONS_ENV_VAR)
        if not text:
            raise RuntimeError(
                f"{OPTIONS_ENV_VAR} is not set; run the suite through the orchestrator."
            )
        return cls.from_json(text)


def open_automation_session(
    options: AppiumSessionOptions,
    *,
    http_session: requests.Session | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> WebDriverSession:
    """Open a session, switch into the app's web view and wait for ``deviceready``."""
    session = WebDriverSession(options.server_url(), http_session=http_session)
    session.create_session(options.session_capabilities())
    try:
        session.set_timeouts(implicit_ms=IMPLICIT_WAIT_TIMEOUT_MS)
        webview_context = find_webview_context(session, sleep=sleep)
        session.switch_context(webview_context)
        wait_for_device_ready(session)
    except Exception:
        session.delete_session()
        raise
    logger.info("Automation session %s attached to %s", session.session_id, webview_context)
    return session
