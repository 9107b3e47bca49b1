"""Device and platform tooling exports."""

from .appium_suite_runner import PytestAppiumSuiteRunner
from .collaborators import (
    AppiumSuiteRunner,
    AppUninstaller,
    CommandRunner,
    DeviceFarm,
    EmulatorKiller,
    LogCollector,
    PermissionGranter,
    ProjectPreparer,
    RunCollaborators,
    TargetChooser,
)
from .command_runner import CommandError, SubprocessCommandRunner, terminate_process_tree
from .device_maintenance import DeviceAppUninstaller, DeviceLogCollector, EmulatorProcessKiller
from .device_models import TargetDescriptor, TempProject
from .ios_permissions import PermissionGrantError, SimulatorPermissionGranter
from .project_preparer import CliProjectPreparer
from .target_chooser import EmulatorTargetChooser, TargetSelectionError

__all__ = [
    "AppUninstaller",
    "AppiumSuiteRunner",
    "CliProjectPreparer",
    "CommandError",
    "CommandRunner",
    "DeviceAppUninstaller",
    "DeviceFarm",
    "DeviceLogCollector",
    "EmulatorKiller",
    "EmulatorProcessKiller",
    "EmulatorTargetChooser",
    "LogCollector",
    "PermissionGrantError",
    "PermissionGranter",
    "ProjectPreparer",
    "PytestAppiumSuiteRunner",
    "RunCollaborators",
    "SimulatorPermissionGranter",
    "SubprocessCommandRunner",
    "TargetChooser",
    "TargetDescriptor",
    "TargetSelectionError",
    "TempProject",
    "terminate_process_tree",
]
