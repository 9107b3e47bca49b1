"""Fault-tolerant, run-once teardown of everything a run created."""

from __future__ import annotations

import logging
import shutil
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from app_test_orchestrator.configuration.runtime_settings import RunConfig
from app_test_orchestrator.device_tooling import RunCollaborators, terminate_process_tree

if TYPE_CHECKING:
    from app_test_orchestrator.run_execution.run_contracts import RunState

logger = logging.getLogger(__name__)


class CleanupSequencer:
    """Runs the cleanup steps in order; a failing step is logged and the next one runs."""

    def __init__(self, config: RunConfig, collaborators: RunCollaborators) -> None:
        self._config = config
        self._collaborators = collaborators
        self._lock = threading.Lock()
        self._ran = False

    @property
    def ran(self) -> bool:
        return self._ran

    def run(self, state: RunState) -> None:
        with self._lock:
            if self._ran:
                logger.debug("Cleanup already ran")
                return
            self._ran = True

        if self._config.use_remote_farm:
            self._step("report remote session details", self._report_remote_session)
        elif not self._config.is_build_only and state.tests_launched:
            self._step("collect device logs", lambda: self._collect_logs(state))
            self._step("uninstall app", lambda: self._uninstall_app(state))
            if self._config.clean_up_after_run:
                self._step("kill emulator", self._kill_emulator)
        else:
            logger.debug("Tests were never launched; skipping device cleanup")

        self._step("terminate launch process", lambda: self._terminate_launch(state))
        self._step("stop reporting channel", lambda: self._stop_channel(state))
        self._step(
            "stop file transfer server", lambda: self._stop_file_transfer_server(state)
        )
        self._step("delete temporary project", lambda: self._delete_project(state))

    def _step(self, name: str, action: Callable[[], None]) -> None:
        try:
            action()
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("Cleanup step '%s' failed", name)

    def _report_remote_session(self) -> None:
        farm = self._collaborators.device_farm
        if farm is not None:
            farm.report_session_details(self._config.remote_farm.build_name)

    def _collect_logs(self, state: RunState) -> None:
        output_dir = self._config.output_dir
        if output_dir is None and state.temp_project is not None:
            output_dir = state.temp_project.path
        if output_dir is None:
            logger.info("No output directory for device logs")
            return
        logger.info("Collecting logs for the devices.")
        assert self._collaborators.log_collector is not None
        self._collaborators.log_collector.collect(self._config, state.target, output_dir)

    def _uninstall_app(self, state: RunState) -> None:
        logger.info("Uninstalling the app.")
        assert self._collaborators.app_uninstaller is not None
        try:
            self._collaborators.app_uninstaller.uninstall(self._config, state.target)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.warning("Uninstall failed, continuing: %s", exc)

    def _kill_emulator(self) -> None:
        logger.info("Killing the emulator process.")
        assert self._collaborators.emulator_killer is not None
        self._collaborators.emulator_killer.kill(self._config)

    @staticmethod
    def _terminate_launch(state: RunState) -> None:
        if state.launch_process is not None:
            terminate_process_tree(state.launch_process)

    @staticmethod
    def _stop_channel(state: RunState) -> None:
        if state.channel is not None:
            state.channel.clean_up()

    @staticmethod
    def _stop_file_transfer_server(state: RunState) -> None:
        if state.file_transfer_server is not None:
            state.file_transfer_server.stop()

    def _delete_project(self, state: RunState) -> None:
        project = state.temp_project
        if project is None or project.disposed:
            return
        if not self._config.clean_up_after_run:
            logger.info("Keeping temporary project at %s", project.path)
            return
        logger.info("Deleting the application: %s", project.path)
        shutil.rmtree(project.path)
        project.disposed = True
