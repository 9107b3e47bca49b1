"""Emulator and simulator selection."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from app_test_orchestrator.configuration.runtime_settings import Platform, RunConfig

from .command_runner import COMMON_TOOL_ARGS, CommandError
from .device_models import TargetDescriptor

logger = logging.getLogger(__name__)

DEFAULT_IOS_TARGET_PATTERN = "^iPhone"


class TargetSelectionError(Exception):
    """Raised when no emulator or simulator matches the requested target."""


class _Runner(Protocol):
    def run(self, command: Sequence[str], cwd: Path | None = None) -> str: ...


class EmulatorTargetChooser:
    """Picks the last listed emulator matching the preferred target name."""

    def __init__(self, runner: _Runner) -> None:
        self._runner = runner

    def choose_target(
        self, project_path: Path, config: RunConfig, *, preferred: str | None
    ) -> TargetDescriptor:
        if config.platform is Platform.ANDROID and preferred:
            return TargetDescriptor(name=preferred)
        listing = self._runner.run(
            [config.cli, "run", "--list", "--emulator", *COMMON_TOOL_ARGS], cwd=project_path
        )
        name = select_listed_target(listing, preferred or _default_pattern(config.platform))
        udid = self._simulator_udid(name) if config.platform is Platform.IOS else None
        logger.info("Selected target %s", name)
        return TargetDescriptor(name=name, udid=udid)

    def _simulator_udid(self, name: str) -> str | None:
        try:
            devices = self._runner.run(["xcrun", "simctl", "list", "devices"])
        except CommandError as exc:
            logger.warning("Could not list simulators: %s", exc)
            return None
        return find_simulator_udid(devices, name)


def _default_pattern(platform: Platform) -> str:
    return DEFAULT_IOS_TARGET_PATTERN if platform is Platform.IOS else "."


def select_listed_target(listing: str, pattern: str) -> str:
    """Return the last non-header line of ``listing`` that matches ``pattern``."""
    expression = re.compile(pattern)
    matches = [
        line.strip()
        for line in listing.splitlines()
        if line.strip() and not line.rstrip().endswith(":") and expression.search(line)
    ]
    if not matches:
        raise TargetSelectionError(f"No emulator matches {pattern!r}.")
    return matches[-1]


def find_simulator_udid(devices_listing: str, name: str) -> str | None:
    """Find ``<name> (<udid>)`` in ``simctl list devices`` output."""
    device_name = name.split(",")[0].replace("-", " ").strip()
    expression = re.compile(rf"^\s*{re.escape(device_name)} \(([0-9A-Fa-f-]{{36}})\)")
    for line in devices_listing.splitlines():
        match = expression.match(line)
        if match:
            return match.group(1)
    return None
