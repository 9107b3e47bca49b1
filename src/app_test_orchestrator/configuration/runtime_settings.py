"""Configuration domain entities."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

DEFAULT_APP_ID = "io.cordova.hellocordova"
DEFAULT_GLOBAL_TIMEOUT_MS = 60 * 60 * 1000
# Time to wait for the first device connection before the run is stopped.
DEFAULT_CONNECTION_TIMEOUT_MS = 9 * 60 * 1000
DEFAULT_PORTS = (7000, 7008)
DEFAULT_LOG_MINUTES = 15
KNOWN_CLI_NAMES = ("cordova", "phonegap")


class Platform(str, Enum):
    """Target platform of a test run."""

    BROWSER = "browser"
    IOS = "ios"
    ANDROID = "android"
    WINDOWS = "windows"


class Action(str, Enum):
    """Platform CLI action used to start the app."""

    BUILD = "build"
    RUN = "run"
    EMULATE = "emulate"

    @property
    def waits_for_results(self) -> bool:
        return self in (Action.RUN, Action.EMULATE)


@dataclass(frozen=True)
class TimeoutSettings:
    """Deadlines applied to one run."""

    global_timeout_ms: int
    connection_timeout_ms: int


@dataclass(frozen=True)
class ChannelSettings:
    """Reporting channel listener configuration."""

    ports: tuple[int, int]
    external_url: str | None
    use_tunnel: bool


@dataclass(frozen=True)
class RemoteFarmSettings:
    """Device farm credentials used when tests run remotely."""

    user: str | None
    key: str | None
    build_name: str | None


@dataclass(frozen=True)
class RunConfig:  # pylint: disable=too-many-instance-attributes
    """Immutable snapshot of resolved options for one run."""

    platform: Platform
    action: Action
    cli: str
    plugins: tuple[str, ...]
    args: str
    target: str | None
    timeouts: TimeoutSettings
    channel: ChannelSettings
    output_dir: Path | None
    log_minutes: int
    use_remote_farm: bool
    remote_farm: RemoteFarmSettings
    run_main_tests: bool
    run_appium_tests: bool
    clean_up_after_run: bool
    verbose: bool = False
    app_id: str = DEFAULT_APP_ID
    tcc_db: Path | None = None
    file_transfer_server: str | None = None
    ci: bool = False

    @property
    def is_build_only(self) -> bool:
        return self.action is Action.BUILD

    def describe(self) -> dict[str, object]:
        """Flatten the settings for the startup log, hiding secrets."""
        return {
            "platform": self.platform.value,
            "action": self.action.value,
            "cli": self.cli,
            "plugins": ", ".join(self.plugins),
            "args": self.args or None,
            "target": self.target,
            "timeout_ms": self.timeouts.global_timeout_ms,
            "connection_timeout_ms": self.timeouts.connection_timeout_ms,
            "ports": f"{self.channel.ports[0]}-{self.channel.ports[1]}",
            "external_url": self.channel.external_url,
            "use_tunnel": self.channel.use_tunnel,
            "output_dir": self.output_dir,
            "log_minutes": self.log_minutes,
            "use_remote_farm": self.use_remote_farm,
            "remote_farm_user": self.remote_farm.user,
            "build_name": self.remote_farm.build_name,
            "run_main_tests": self.run_main_tests,
            "run_appium_tests": self.run_appium_tests,
            "clean_up_after_run": self.clean_up_after_run,
            "verbose": self.verbose,
            "tcc_db": self.tcc_db,
            "file_transfer_server": self.file_transfer_server,
            "ci": self.ci,
        }
