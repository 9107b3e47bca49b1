"""Interfaces of the external collaborators a run depends on."""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from app_test_orchestrator.configuration.runtime_settings import RunConfig
from app_test_orchestrator.event_polling.session_options import AppiumSessionOptions
from app_test_orchestrator.reporting_channel import (
    FileTransferServer,
    ReportingChannel,
    start_file_transfer_server,
    start_reporting_channel,
)

from .appium_suite_runner import PytestAppiumSuiteRunner
from .command_runner import SubprocessCommandRunner
from .device_maintenance import DeviceAppUninstaller, DeviceLogCollector, EmulatorProcessKiller
from .device_models import TargetDescriptor, TempProject
from .ios_permissions import SimulatorPermissionGranter
from .project_preparer import CliProjectPreparer
from .target_chooser import EmulatorTargetChooser

ChannelFactory = Callable[..., ReportingChannel]
FileTransferServerFactory = Callable[[Path], FileTransferServer]


class CommandRunner(Protocol):
    def run(
        self,
        command: Sequence[str],
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str: ...

    def spawn(self, command: Sequence[str], cwd: Path | None = None) -> subprocess.Popen: ...


class ProjectPreparer(Protocol):
    def prepare(self, config: RunConfig) -> TempProject: ...


class TargetChooser(Protocol):
    def choose_target(
        self, project_path: Path, config: RunConfig, *, preferred: str | None
    ) -> TargetDescriptor: ...


class LogCollector(Protocol):
    def collect(
        self,
        config: RunConfig,
        target: TargetDescriptor | None,
        output_dir: Path,
    ) -> None: ...


class AppUninstaller(Protocol):
    def uninstall(self, config: RunConfig, target: TargetDescriptor | None) -> None: ...


class EmulatorKiller(Protocol):
    def kill(self, config: RunConfig) -> None: ...


class PermissionGranter(Protocol):
    def grant(self, config: RunConfig, target: TargetDescriptor | None) -> None: ...


class AppiumSuiteRunner(Protocol):
    def suite_paths(self, options: AppiumSessionOptions) -> tuple[Path, ...]: ...

    def prepare_app(self, options: AppiumSessionOptions) -> None: ...

    def run_suite(self, options: AppiumSessionOptions) -> bool: ...


class DeviceFarm(Protocol):
    """Remote device farm (Sauce Labs) account and session operations."""

    def run_main_tests(
        self, config: RunConfig, project: TempProject, channel: ReportingChannel | None
    ) -> bool: ...

    def upload_app(self, project: TempProject) -> None: ...

    def storage_path(self) -> str: ...

    def session_capabilities(self) -> Mapping[str, Any]: ...

    def report_session_details(self, build_name: str | None) -> None: ...


@dataclass
class RunCollaborators:  # pylint: disable=too-many-instance-attributes
    """Bundle of collaborators; defaults drive local tools through subprocesses."""

    command_runner: CommandRunner = field(default_factory=SubprocessCommandRunner)
    project_preparer: ProjectPreparer | None = None
    target_chooser: TargetChooser | None = None
    log_collector: LogCollector | None = None
    app_uninstaller: AppUninstaller | None = None
    emulator_killer: EmulatorKiller | None = None
    appium_runner: AppiumSuiteRunner | None = None
    permission_granter: PermissionGranter | None = None
    device_farm: DeviceFarm | None = None
    channel_factory: ChannelFactory = start_reporting_channel
    file_transfer_server_factory: FileTransferServerFactory = start_file_transfer_server

    def __post_init__(self) -> None:
        runner = self.command_runner
        self.project_preparer = self.project_preparer or CliProjectPreparer(runner)
        self.target_chooser = self.target_chooser or EmulatorTargetChooser(runner)
        self.log_collector = self.log_collector or DeviceLogCollector(runner)
        self.app_uninstaller = self.app_uninstaller or DeviceAppUninstaller(runner)
        self.emulator_killer = self.emulator_killer or EmulatorProcessKiller(runner)
        self.appium_runner = self.appium_runner or PytestAppiumSuiteRunner(runner)
        self.permission_granter = self.permission_granter or SimulatorPermissionGranter()
