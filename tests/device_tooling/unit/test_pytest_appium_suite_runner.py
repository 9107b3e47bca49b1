"""Appium suite discovery, app patching and suite execution tests."""

from __future__ import annotations

import json
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

import pytest
from app_test_orchestrator.configuration.runtime_settings import Platform
from app_test_orchestrator.device_tooling import CommandError, PytestAppiumSuiteRunner
from app_test_orchestrator.device_tooling.appium_suite_runner import (
    add_csp_source,
    permit_access,
)
from app_test_orchestrator.event_polling.session_options import (
    OPTIONS_ENV_VAR,
    AppiumSessionOptions,
)


class RecordingRunner:
    def __init__(self, error: CommandError | None = None) -> None:
        self.error = error
        self.calls: list[tuple[list[str], Path | None, Mapping[str, str] | None]] = []

    def run(
        self,
        command: Sequence[str],
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str:
        self.calls.append((list(command), cwd, env))
        if self.error is not None:
            raise self.error
        return ""


def _options(
    tmp_path: Path, platform: Platform = Platform.ANDROID, **changes: object
) -> AppiumSessionOptions:
    values: dict[str, object] = {
        "platform": platform,
        "app_path": tmp_path / "app",
        "plugin_repos": (tmp_path / "plugin-a", tmp_path / "plugin-b"),
        "device_name": "Pixel_34",
        "udid": None,
        "screenshot_dir": tmp_path / "screens",
        "output_dir": None,
        "verbose": False,
        "use_remote_farm": False,
        "cli": "cordova",
    }
    values.update(changes)
    return AppiumSessionOptions(**values)


def _suite(tmp_path: Path, plugin: str, name: str) -> Path:
    path = tmp_path / plugin / "appium-tests" / name
    path.mkdir(parents=True)
    return path


def test_suite_paths_include_common_and_platform_dirs(tmp_path: Path) -> None:
    common = _suite(tmp_path, "plugin-a", "common")
    android = _suite(tmp_path, "plugin-b", "android")
    _suite(tmp_path, "plugin-b", "ios")

    paths = PytestAppiumSuiteRunner(RecordingRunner()).suite_paths(_options(tmp_path))

    assert paths == (common, android)


def test_run_suite_without_suites_passes_without_running(tmp_path: Path) -> None:
    runner = RecordingRunner()

    assert PytestAppiumSuiteRunner(runner).run_suite(_options(tmp_path)) is True
    assert runner.calls == []


def test_run_suite_invokes_pytest_with_options_in_environment(tmp_path: Path) -> None:
    suite = _suite(tmp_path, "plugin-a", "common")
    runner = RecordingRunner()
    options = _options(tmp_path, output_dir=tmp_path / "out", verbose=True)

    assert PytestAppiumSuiteRunner(runner).run_suite(options) is True

    command, cwd, env = runner.calls[0]
    assert command == [
        sys.executable,
        "-m",
        "pytest",
        str(suite),
        f"--junitxml={tmp_path / 'out' / 'appium-results.xml'}",
        "-v",
    ]
    assert cwd == tmp_path / "app"
    assert env is not None
    assert json.loads(env[OPTIONS_ENV_VAR])["device_name"] == "Pixel_34"
    assert (tmp_path / "screens").is_dir()


@pytest.mark.parametrize(("returncode", "expected"), [(1, False), (5, True)])
def test_run_suite_maps_pytest_exit_codes(
    tmp_path: Path, returncode: int, expected: bool
) -> None:
    _suite(tmp_path, "plugin-a", "android")
    runner = RecordingRunner(CommandError("pytest failed", returncode=returncode))

    assert PytestAppiumSuiteRunner(runner).run_suite(_options(tmp_path)) is expected


def test_run_suite_that_cannot_start_raises(tmp_path: Path) -> None:
    _suite(tmp_path, "plugin-a", "android")
    runner = RecordingRunner(CommandError("Command not found"))

    with pytest.raises(CommandError):
        PytestAppiumSuiteRunner(runner).run_suite(_options(tmp_path))


def test_prepare_app_opens_network_policy_and_rebuilds(tmp_path: Path) -> None:
    app = tmp_path / "app"
    (app / "www").mkdir(parents=True)
    (app / "config.xml").write_text("<widget>\n</widget>\n", encoding="utf-8")
    (app / "www" / "index.html").write_text(
        '<meta http-equiv="Content-Security-Policy" content="default-src \'self\'; '
        'style-src \'self\'">',
        encoding="utf-8",
    )
    runner = RecordingRunner()

    PytestAppiumSuiteRunner(runner).prepare_app(_options(tmp_path, Platform.IOS))

    assert '<access origin="*" />' in (app / "config.xml").read_text(encoding="utf-8")
    assert "connect-src *" in (app / "www" / "index.html").read_text(encoding="utf-8")
    assert runner.calls[0][0] == [
        "cordova",
        "build",
        "ios",
        "--no-telemetry",
        "--no-update-notifier",
        "--emulator",
    ]


def test_permit_access_is_not_repeated(tmp_path: Path) -> None:
    config_xml = tmp_path / "config.xml"
    config_xml.write_text('<widget>\n    <access origin="*" />\n</widget>\n', encoding="utf-8")

    permit_access(config_xml, "*")

    assert config_xml.read_text(encoding="utf-8").count("<access") == 1


@pytest.mark.parametrize(
    ("page", "expected"),
    [
        ('content="connect-src \'self\'"', 'content="connect-src * \'self\'"'),
        ('content="connect-src *"', 'content="connect-src *"'),
        (
            '<meta http-equiv="Content-Security-Policy" content="">',
            '<meta http-equiv="Content-Security-Policy" content="connect-src *; ">',
        ),
    ],
)
def test_add_csp_source_variants(tmp_path: Path, page: str, expected: str) -> None:
    index = tmp_path / "index.html"
    index.write_text(page, encoding="utf-8")

    add_csp_source(index, "connect-src", "*")

    assert index.read_text(encoding="utf-8") == expected
