"""Platform CLI launch command construction."""

from __future__ import annotations

import shlex

from app_test_orchestrator.configuration.runtime_settings import Platform, RunConfig
from app_test_orchestrator.device_tooling.command_runner import COMMON_TOOL_ARGS
from app_test_orchestrator.device_tooling.device_models import TargetDescriptor

# Windows phone packages still need a concrete target.
WINDOWS_PHONE_PACKAGE_ARG = "appx=8.1-phone"


def needs_target(config: RunConfig) -> bool:
    """Whether a device/emulator has to be chosen before launching."""
    if config.platform is Platform.BROWSER or config.is_build_only:
        return False
    if config.platform is Platform.WINDOWS:
        return WINDOWS_PHONE_PACKAGE_ARG in config.args
    return True


def build_launch_command(config: RunConfig, target: TargetDescriptor | None = None) -> list[str]:
    """``<cli> <action> <platform> [common flags] [user args] [--target <name> [--emulator]]``."""
    command = [config.cli, config.action.value, config.platform.value, *COMMON_TOOL_ARGS]
    command.extend(shlex.split(config.args))
    if target is not None:
        command.extend(["--target", target.name])
        # Without --emulator an iOS run waits for a physical device with the same name.
        if config.platform is Platform.IOS:
            command.append("--emulator")
    return command
