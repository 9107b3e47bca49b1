"""Subprocess execution of platform CLI and device tool commands."""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

logger = logging.getLogger(__name__)

KILL_SIGNAL = signal.SIGINT
COMMON_TOOL_ARGS = ("--no-telemetry", "--no-update-notifier")
TERMINATE_GRACE_SECONDS = 1.0


class CommandError(Exception):
    """Raised when a command cannot be started or exits with a non-zero code."""

    def __init__(self, message: str, *, returncode: int | None = None, output: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class SubprocessCommandRunner:
    """Runs commands to completion or spawns them detached in their own process group."""

    def run(
        self,
        command: Sequence[str],
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str:
        """Run one command, returning its combined output; non-zero exit raises."""
        command_text = shlex.join(command)
        logger.info("running: %s", command_text)
        try:
            completed = subprocess.run(
                list(command),
                cwd=cwd,
                check=True,
                env=dict(env) if env is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except FileNotFoundError as exc:
            raise CommandError(f"Command not found: {command_text}") from exc
        except subprocess.CalledProcessError as exc:
            raise CommandError(
                f"Command failed with exit code {exc.returncode}: {command_text}",
                returncode=exc.returncode,
                output=exc.stdout or "",
            ) from exc
        if completed.stdout:
            logger.debug("%s", completed.stdout.rstrip())
        return completed.stdout or ""

    def spawn(self, command: Sequence[str], cwd: Path | None = None) -> subprocess.Popen:
        """Start a command without waiting for it; the caller must terminate it."""
        command_text = shlex.join(command)
        logger.info("spawning: %s", command_text)
        try:
            return subprocess.Popen(  # pylint: disable=consider-using-with
                list(command),
                cwd=cwd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=os.name != "nt",
            )
        except FileNotFoundError as exc:
            raise CommandError(f"Command not found: {command_text}") from exc


def terminate_process_tree(process: subprocess.Popen) -> None:
    """Interrupt a spawned process and its children, escalating to kill."""
    if process.poll() is not None:
        return
    logger.info("Terminating process %s", process.pid)
    if os.name != "nt":
        try:
            os.killpg(process.pid, KILL_SIGNAL)
        except ProcessLookupError:
            return
    else:
        process.terminate()
    try:
        process.wait(timeout=TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        if os.name != "nt":
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                return
        else:
            process.kill()
        process.wait()
