"""Discovery and execution of the plugins' UI-automation suites."""

from __future__ import annotations

import logging
import os
import re
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol

from app_test_orchestrator.configuration.runtime_settings import Platform
from app_test_orchestrator.event_polling.session_options import (
    OPTIONS_ENV_VAR,
    AppiumSessionOptions,
)

from .command_runner import COMMON_TOOL_ARGS, CommandError

logger = logging.getLogger(__name__)

SUITE_DIR_NAME = "appium-tests"
COMMON_SUITE_DIR = "common"
JUNIT_REPORT_FILENAME = "appium-results.xml"
# pytest exit code when nothing was collected.
NO_TESTS_COLLECTED = 5
ACCESS_ORIGIN = "*"
CSP_DIRECTIVE = "connect-src"
CSP_SOURCE = "*"
_CSP_TAG_OPENING = "<meta http-equiv=\"Content-Security-Policy\" content=\""


class _Runner(Protocol):
    def run(
        self,
        command: Sequence[str],
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str: ...


class PytestAppiumSuiteRunner:
    """Runs ``appium-tests/{common,<platform>}`` suites with pytest in a subprocess.

    The suite process reads its session options from ``OPTIONS_ENV_VAR`` through
    ``AppiumSessionOptions.from_environment``.
    """

    def __init__(self, runner: _Runner) -> None:
        self._runner = runner

    def suite_paths(self, options: AppiumSessionOptions) -> tuple[Path, ...]:
        paths: list[Path] = []
        for repo in options.plugin_repos:
            for name in (COMMON_SUITE_DIR, options.platform.value):
                candidate = repo / SUITE_DIR_NAME / name
                if candidate.is_dir():
                    paths.append(candidate)
        return tuple(paths)

    def prepare_app(self, options: AppiumSessionOptions) -> None:
        """Open the app's network policy to the automation driver and rebuild it."""
        permit_access(options.app_path / "config.xml", ACCESS_ORIGIN)
        add_csp_source(options.app_path / "www" / "index.html", CSP_DIRECTIVE, CSP_SOURCE)
        build_command = [options.cli, "build", options.platform.value, *COMMON_TOOL_ARGS]
        if options.platform is Platform.IOS:
            build_command.append("--emulator")
        self._runner.run(build_command, cwd=options.app_path)

    def run_suite(self, options: AppiumSessionOptions) -> bool:
        paths = self.suite_paths(options)
        if not paths:
            logger.warning("Couldn't find Appium tests, skipping...")
            return True
        options.screenshot_dir.mkdir(parents=True, exist_ok=True)
        command = [sys.executable, "-m", "pytest", *(str(path) for path in paths)]
        if options.output_dir is not None:
            command.append(f"--junitxml={options.output_dir / JUNIT_REPORT_FILENAME}")
        if options.verbose:
            command.append("-v")
        env = {**os.environ, OPTIONS_ENV_VAR: options.to_json()}
        try:
            self._runner.run(command, cwd=options.app_path, env=env)
        except CommandError as exc:
            if exc.returncode is None:
                raise
            if exc.returncode == NO_TESTS_COLLECTED:
                logger.warning("Appium suites collected no tests")
                return True
            logger.error("Appium tests failed: %s", exc)
            return False
        return True


def permit_access(config_xml: Path, origin: str) -> None:
    """Add an ``<access origin=...>`` whitelist rule unless one exists."""
    text = config_xml.read_text(encoding="utf-8")
    if f'<access origin="{origin}"' in text:
        logger.info("Access rule for %s is already in place", origin)
        return
    patched = text.replace("</widget>", f'    <access origin="{origin}" />\n</widget>', 1)
    config_xml.write_text(patched, encoding="utf-8")


def add_csp_source(page: Path, directive: str, source: str) -> None:
    """Allow ``source`` for ``directive`` in the page's Content-Security-Policy tag."""
    if not page.is_file():
        logger.warning("No page at %s; CSP left unchanged", page)
        return
    content = page.read_text(encoding="utf-8")
    rule = f"{directive} {source}"
    if re.search(re.escape(directive) + r"[^;\"]+" + re.escape(source), content):
        logger.info("CSP source %s is already allowed for %s", source, directive)
        return
    if directive in content:
        content = content.replace(directive, rule, 1)
    elif re.search(r'content=".*?default-src.+?"', content):
        content = re.sub(
            r'(content=".*?default-src)(.+?);', rf"\1\2; {rule}\2;", content, count=1
        )
    elif _CSP_TAG_OPENING in content:
        content = content.replace(_CSP_TAG_OPENING, f"{_CSP_TAG_OPENING}{rule}; ", 1)
    else:
        logger.warning("No CSP tag found in %s", page)
        return
    page.write_text(content, encoding="utf-8")
