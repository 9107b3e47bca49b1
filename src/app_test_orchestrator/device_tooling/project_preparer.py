"""Temporary app project creation through the platform CLI."""

from __future__ import annotations

import logging
import re
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from app_test_orchestrator.configuration.runtime_settings import RunConfig

from .command_runner import CommandError
from .device_models import TempProject

logger = logging.getLogger(__name__)

TEST_FRAMEWORK_PLUGIN = "cordova-plugin-test-framework"
TEST_START_PAGE = "cdvtests/index.html"
# Cordova plugin that posts test framework events to the reporting channel.
REPORTER_PLUGIN_DIR = Path(__file__).resolve().parent / "device_reporter"
_CONTENT_SRC_PATTERN = re.compile(r'<content\s+src="[^"]*"\s*/>')


class _Runner(Protocol):
    def run(self, command: Sequence[str], cwd: Path | None = None) -> str: ...


class CliProjectPreparer:
    """Creates a throwaway project, installs the plugins under test and adds the platform."""

    def __init__(self, runner: _Runner) -> None:
        self._runner = runner

    def prepare(self, config: RunConfig) -> TempProject:
        project = TempProject(path=Path(tempfile.mkdtemp(prefix="app-test-orchestrator-")))
        logger.info("Creating project in %s", project.path)
        self._runner.run([config.cli, "create", str(project.path), config.app_id, "HelloCordova"])
        for plugin in plugin_install_specs(config.plugins):
            self._runner.run([config.cli, "plugin", "add", plugin], cwd=project.path)
        self._runner.run([config.cli, "plugin", "add", TEST_FRAMEWORK_PLUGIN], cwd=project.path)
        self._runner.run(
            [config.cli, "plugin", "add", str(REPORTER_PLUGIN_DIR)], cwd=project.path
        )
        set_start_page(project.path / "config.xml")
        self._runner.run([config.cli, "platform", "add", config.platform.value], cwd=project.path)
        try:
            self._runner.run(
                [config.cli, "requirements", config.platform.value], cwd=project.path
            )
        except CommandError as exc:
            logger.warning("Platform requirements check failed: %s", exc)
        return project


def plugin_install_specs(plugins: Sequence[str]) -> list[str]:
    """Each plugin followed by its ``tests`` sub-plugin when a local one exists."""
    specs: list[str] = []
    for plugin in plugins:
        specs.append(plugin)
        tests_dir = Path(plugin) / "tests"
        if tests_dir.is_dir():
            specs.append(str(tests_dir))
    return specs


def set_start_page(config_xml: Path) -> None:
    """Point the app's start page at the test framework's page."""
    if not config_xml.is_file():
        logger.warning("No config.xml at %s; start page left unchanged", config_xml)
        return
    text = config_xml.read_text(encoding="utf-8")
    config_xml.write_text(
        _CONTENT_SRC_PATTERN.sub(f'<content src="{TEST_START_PAGE}" />', text, count=1),
        encoding="utf-8",
    )
