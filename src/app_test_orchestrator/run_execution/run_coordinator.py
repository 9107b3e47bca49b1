"""Run coordinator: phase sequence, completion race and guaranteed cleanup."""

from __future__ import annotations

import contextlib
import json
import logging
import shutil
import threading
from collections.abc import Callable
from concurrent.futures import Future
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Any, TypeVar

from app_test_orchestrator.cleanup import CleanupSequencer
from app_test_orchestrator.configuration import ConfigurationError
from app_test_orchestrator.configuration.runtime_settings import Platform, RunConfig
from app_test_orchestrator.device_tooling import (
    CommandError,
    RunCollaborators,
    TempProject,
    terminate_process_tree,
)
from app_test_orchestrator.event_polling.session_options import (
    AppiumSessionOptions,
    RemoteFarmSessionSettings,
    with_suite_marker,
)
from app_test_orchestrator.reporting_channel import (
    ChannelEvent,
    FileTransferServerError,
    ReportingChannel,
    needs_file_transfer_server,
)
from app_test_orchestrator.results_writing import SpecResultsCollector

from .completion_signals import (
    CompletionRace,
    CompletionSignal,
    Failed,
    Passed,
    TimedOut,
)
from .device_wait import DeviceWait
from .launch_commands import build_launch_command, needs_target
from .run_contracts import Phase, RunOutcome, RunState, TestResult

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

MEDIC_JSON_PATH = ("www", "medic.json")
SCREENSHOT_DIR_NAME = "appium_screenshots"
APPIUM_PLATFORMS = (Platform.IOS, Platform.ANDROID)


class RunExecutionError(Exception):
    """Raised when a run cannot be completed."""


class _SpanAbandoned(Exception):
    """Raised inside the run span once the run has settled without it."""


def execute_test_run(
    config: RunConfig,
    *,
    collaborators: RunCollaborators | None = None,
) -> RunOutcome:
    """Execute one full test run and return its outcome."""
    coordinator = RunCoordinator(config, collaborators or RunCollaborators())
    return coordinator.run()


def write_medic_json(project_path: Path, log_url: str) -> Path:
    """Tell the app where to report by writing ``www/medic.json``."""
    logger.info("Writing medic log url to project %s", log_url)
    medic_path = project_path.joinpath(*MEDIC_JSON_PATH)
    medic_path.parent.mkdir(parents=True, exist_ok=True)
    medic_path.write_text(json.dumps({"logurl": log_url}), encoding="utf-8")
    return medic_path


def _run_in_background(name: str, function: Callable[..., _T], *args: Any) -> Future[_T]:
    """Run ``function`` on a daemon thread; an abandoned call never blocks exit."""
    future: Future[_T] = Future()

    def _target() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = function(*args)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            future.set_exception(exc)
        else:
            future.set_result(result)

    threading.Thread(target=_target, name=name, daemon=True).start()
    return future


def _settle_from_launch(
    race: CompletionRace, waits_for_device: bool, launch: Future[str]
) -> None:
    error = launch.exception()
    if error is not None:
        race.offer(Failed(reason=str(error), error=error))
    elif not waits_for_device:
        race.offer(Passed())


def _launch_signal(launch: Future[str]) -> CompletionSignal:
    try:
        launch.result()
    except CommandError as exc:
        return Failed(reason=str(exc), error=exc)
    return Passed()


class RunCoordinator:
    """Owns one run: config check, the timed run span, settle and cleanup.

    The run span (project preparation up to the end of the Appium phase) runs on
    a daemon thread and races a global deadline timer. Whichever settles the run
    first wins; the main thread then runs the cleanup sequencer exactly once. A
    span still running after that point is abandoned: resources it creates later
    are released on the spot instead of being handed to the run state.
    """

    def __init__(self, config: RunConfig, collaborators: RunCollaborators) -> None:
        self.config = config
        self.collaborators = collaborators
        self.state = RunState()
        self._race = CompletionRace("run")
        self._cleanup = CleanupSequencer(config, collaborators)
        self._lock = threading.Lock()
        self._closed = False
        self._fatal_error: Exception | None = None

    def check_config(self) -> None:
        config = self.config
        logger.info("Run configuration:")
        for name, value in config.describe().items():
            if value is not None:
                logger.info("   - %s: %s", name, value)
        if not config.run_main_tests and not config.run_appium_tests:
            raise ConfigurationError(
                "No tests to run: both main tests and Appium tests are skipped."
            )
        if config.use_remote_farm:
            if self.collaborators.device_farm is None:
                raise ConfigurationError("Remote device farm requested but none is configured.")
            if not config.remote_farm.user or not config.remote_farm.key:
                raise ConfigurationError(
                    "Remote device farm requires a user and an access key "
                    "(SAUCE_USERNAME / SAUCE_ACCESS_KEY)."
                )
        logger.info("Will use the following cli: %s", config.cli)

    def run(self) -> RunOutcome:
        self.check_config()
        timeout_ms = self.config.timeouts.global_timeout_ms
        deadline = threading.Timer(
            timeout_ms / 1000, self._race.offer, [TimedOut(after_ms=timeout_ms)]
        )
        deadline.daemon = True
        span = threading.Thread(target=self._run_span, name="test-run-span", daemon=True)
        try:
            deadline.start()
            span.start()
            self._race.wait()
        finally:
            deadline.cancel()
            if not self._race.settled:
                self._race.offer(Failed(reason="Run interrupted"))
            self._settle()
            logger.info("Collect data and clean up")
            self._cleanup.run(self.state)
            self.state.advance(Phase.CLEANED_UP)

        signal = self.state.signal
        assert signal is not None
        logger.info("Completed tests at %s: %s", datetime.now().strftime("%X"), signal.describe())
        if self._fatal_error is not None and getattr(signal, "error", None) is self._fatal_error:
            raise RunExecutionError(str(self._fatal_error)) from self._fatal_error
        return RunOutcome(passed=signal.passed, signal=signal)

    def _settle(self) -> None:
        signal = self._race.result()
        with self._lock:
            self._closed = True
            self.state.advance(Phase.SETTLED)
            self.state.signal = signal
            self.state.result = (
                TestResult.PASSED if signal and signal.passed else TestResult.FAILED
            )

    def _run_span(self) -> None:
        try:
            signal = self._execute_span()
        except _SpanAbandoned:
            logger.debug("Run settled before the run span finished")
            return
        except Exception as exc:  # pylint: disable=broad-exception-caught
            if self._race.settled:
                logger.debug("Abandoned run span failed: %s", exc)
                return
            logger.exception("Run failed: %s", exc)
            self._fatal_error = exc
            signal = Failed(reason=str(exc), error=exc)
        self._race.offer(signal)

    def _execute_span(self) -> CompletionSignal:
        config = self.config
        assert self.collaborators.project_preparer is not None
        project = self.collaborators.project_preparer.prepare(config)
        self._hold(
            partial(setattr, self.state, "temp_project", project),
            partial(self._discard_project, project),
        )
        self._advance(Phase.PROJECT_PREPARED)

        if config.run_main_tests:
            channel = self.collaborators.channel_factory(
                config.channel.ports,
                external_url=config.channel.external_url,
                use_tunnel=config.channel.use_tunnel,
                suppress_listener=config.platform is Platform.BROWSER and config.use_remote_farm,
            )
            self._hold(partial(setattr, self.state, "channel", channel), channel.clean_up)
            self._subscribe_for_events(channel)
            write_medic_json(project.path, channel.get_connection_url(config.platform))
            self._advance(Phase.SERVER_STARTED)
            logger.info("Start building app and running tests at %s", datetime.now().strftime("%X"))

        main_signal = self._run_main_tests(project)
        appium_passed = self._run_appium_tests(project, main_signal)
        if not main_signal.passed:
            return main_signal
        if not appium_passed:
            return Failed(reason="Appium tests failed.")
        return main_signal

    def _subscribe_for_events(self, channel: ReportingChannel) -> None:
        channel.on(ChannelEvent.DEVICE_LOG, _log_device_console)
        channel.on(
            ChannelEvent.DEVICE_INFO,
            lambda payload: logger.info("Device info: %s", json.dumps(payload)),
        )
        if self.config.output_dir is not None:
            SpecResultsCollector(self.config, self.config.output_dir).attach(channel)

    def _run_main_tests(self, project: TempProject) -> CompletionSignal:
        config = self.config
        if config.use_remote_farm:
            return self._run_remote_main_tests(project)
        # Android still launches so the emulator is up for the Appium phase.
        if not config.run_main_tests and config.platform is not Platform.ANDROID:
            logger.info("Skipping main tests...")
            return Passed()
        logger.info("Running tests locally")
        self._maybe_start_file_transfer_server(project)
        return self._launch_and_wait(project)

    def _maybe_start_file_transfer_server(self, project: TempProject) -> None:
        if not needs_file_transfer_server(self.config):
            return
        try:
            server = self.collaborators.file_transfer_server_factory(project.path)
        except FileTransferServerError as exc:
            logger.warning("File transfer server not started: %s", exc)
            return
        self._hold(
            partial(setattr, self.state, "file_transfer_server", server), server.stop
        )

    def _run_remote_main_tests(self, project: TempProject) -> CompletionSignal:
        if not self.config.run_main_tests:
            logger.info("Skipping main tests...")
            return Passed()
        farm = self.collaborators.device_farm
        assert farm is not None
        self._advance(Phase.TESTS_LAUNCHED)
        if farm.run_main_tests(self.config, project, self.state.channel):
            return Passed()
        return Failed(reason="Remote device farm reported failing tests.")

    def _launch_and_wait(self, project: TempProject) -> CompletionSignal:
        config = self.config
        runner = self.collaborators.command_runner
        if needs_target(config):
            assert self.collaborators.target_chooser is not None
            self.state.resolve_target(
                self.collaborators.target_chooser.choose_target(
                    project.path, config, preferred=config.target
                )
            )
        command = build_launch_command(config, self.state.target)
        assert self.collaborators.permission_granter is not None
        self.collaborators.permission_granter.grant(config, self.state.target)
        waits_for_device = config.run_main_tests and config.action.waits_for_results

        device_race = CompletionRace("device")
        self._race.forward_to(device_race)
        if waits_for_device:
            assert self.state.channel is not None
            device_wait: contextlib.AbstractContextManager = DeviceWait(
                device_race, self.state.channel, config.timeouts.connection_timeout_ms
            )
        else:
            device_wait = contextlib.nullcontext()

        self._advance(Phase.TESTS_LAUNCHED)
        launch: Future[str] | None = None
        with device_wait:
            if config.platform is Platform.BROWSER:
                process = runner.spawn(command, cwd=project.path)
                self._hold(
                    partial(setattr, self.state, "launch_process", process),
                    partial(terminate_process_tree, process),
                )
                if not waits_for_device:
                    device_race.offer(Passed())
            else:
                launch = _run_in_background("launch-command", runner.run, command, project.path)
                launch.add_done_callback(
                    partial(_settle_from_launch, device_race, waits_for_device)
                )
            signal = device_race.wait()

        if self._race.settled:
            raise _SpanAbandoned
        if signal.passed and launch is not None:
            signal = _launch_signal(launch)
        if self.state.launch_process is not None:
            terminate_process_tree(self.state.launch_process)
        return signal

    def _run_appium_tests(self, project: TempProject, main_signal: CompletionSignal) -> bool:
        config = self.config
        if config.is_build_only or not config.run_appium_tests:
            return True
        if config.platform not in APPIUM_PLATFORMS:
            logger.info("Appium tests are not supported on %s", config.platform.value)
            return True
        if not main_signal.passed and not (
            isinstance(main_signal, Failed) and main_signal.error is None
        ):
            logger.warning("Skipping Appium tests: %s", main_signal.describe())
            return False
        self._checkpoint()
        logger.info("Running Appium tests...")
        options = self._appium_options(project)
        runner = self.collaborators.appium_runner
        assert runner is not None
        if not runner.suite_paths(options):
            logger.warning("Couldn't find Appium tests, skipping...")
            return True
        runner.prepare_app(options)
        if config.use_remote_farm:
            assert self.collaborators.device_farm is not None
            self.collaborators.device_farm.upload_app(project)
        self._checkpoint()
        return runner.run_suite(options)

    def _appium_options(self, project: TempProject) -> AppiumSessionOptions:
        config = self.config
        target = self.state.target
        if target is None and not config.use_remote_farm:
            raise RunExecutionError("Appium tests need a resolved target device for local runs.")
        remote = None
        if config.use_remote_farm:
            farm = self.collaborators.device_farm
            assert farm is not None
            remote = RemoteFarmSessionSettings(
                storage_path=farm.storage_path(),
                user=config.remote_farm.user or "",
                key=config.remote_farm.key or "",
                capabilities=with_suite_marker(farm.session_capabilities()),
            )
        return AppiumSessionOptions(
            platform=config.platform,
            app_path=project.path,
            plugin_repos=tuple(
                project.path / "plugins" / Path(plugin).name for plugin in config.plugins
            ),
            device_name=target.name if target else None,
            udid=target.udid if target else None,
            screenshot_dir=Path.cwd() / SCREENSHOT_DIR_NAME,
            output_dir=config.output_dir,
            verbose=config.verbose,
            use_remote_farm=config.use_remote_farm,
            cli=config.cli,
            remote=remote,
        )

    def _checkpoint(self) -> None:
        if self._race.settled:
            raise _SpanAbandoned

    def _advance(self, phase: Phase) -> None:
        with self._lock:
            if self._closed:
                raise _SpanAbandoned
            self.state.advance(phase)

    def _hold(self, attach: Callable[[], None], release: Callable[[], None]) -> None:
        """Hand a new resource to the run state, or release it if cleanup already started."""
        with self._lock:
            if not self._closed:
                attach()
                return
        release()
        raise _SpanAbandoned

    def _discard_project(self, project: TempProject) -> None:
        if self.config.clean_up_after_run:
            shutil.rmtree(project.path, ignore_errors=True)
            project.disposed = True


def _log_device_console(payload) -> None:
    payload = payload or {}
    messages = payload.get("msg") or [""]
    logger.debug("device|console.%s: %s", payload.get("type", "log"), messages[0])
