"""Post-run device chores: log collection, app removal and emulator shutdown."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from app_test_orchestrator.configuration.runtime_settings import Platform, RunConfig

from .device_models import TargetDescriptor

logger = logging.getLogger(__name__)

DEVICE_LOG_FILENAME = "device-{platform}.log"


class _Runner(Protocol):
    def run(self, command: Sequence[str], cwd: Path | None = None) -> str: ...


class DeviceLogCollector:
    """Dumps the recent device log into the output directory."""

    def __init__(self, runner: _Runner) -> None:
        self._runner = runner

    def collect(
        self,
        config: RunConfig,
        target: TargetDescriptor | None,
        output_dir: Path,
    ) -> None:
        if config.platform is Platform.ANDROID:
            command = ["adb", "logcat", "-d", "-v", "time"]
        elif config.platform is Platform.IOS:
            command = _simulator_log_command(target, config.log_minutes)
        else:
            logger.info("Log collection is not supported on %s", config.platform.value)
            return
        output = self._runner.run(command)
        output_dir.mkdir(parents=True, exist_ok=True)
        log_path = output_dir / DEVICE_LOG_FILENAME.format(platform=config.platform.value)
        log_path.write_text(output, encoding="utf-8")
        logger.info("Device logs written to %s", log_path)


def _simulator_log_command(target: TargetDescriptor | None, log_minutes: int) -> list[str]:
    device = target.udid if target and target.udid else "booted"
    return ["xcrun", "simctl", "spawn", device, "log", "show", "--last", f"{log_minutes}m"]


class DeviceAppUninstaller:
    """Removes the test app from the device or simulator."""

    def __init__(self, runner: _Runner) -> None:
        self._runner = runner

    def uninstall(self, config: RunConfig, target: TargetDescriptor | None) -> None:
        if config.platform is Platform.ANDROID:
            command = ["adb", "uninstall", config.app_id]
        elif config.platform is Platform.IOS:
            device = target.udid if target and target.udid else "booted"
            command = ["xcrun", "simctl", "uninstall", device, config.app_id]
        else:
            logger.info("Uninstall is not supported on %s", config.platform.value)
            return
        self._runner.run(command)


class EmulatorProcessKiller:
    """Shuts down the emulator or simulator used by the run."""

    def __init__(self, runner: _Runner) -> None:
        self._runner = runner

    def kill(self, config: RunConfig) -> None:
        if config.platform is Platform.ANDROID:
            command = ["adb", "emu", "kill"]
        elif config.platform is Platform.IOS:
            command = ["killall", "Simulator"]
        else:
            logger.info("No emulator process to kill on %s", config.platform.value)
            return
        self._runner.run(command)
