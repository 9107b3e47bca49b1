"""Tests for process group termination."""

from __future__ import annotations

import os
import signal
import subprocess

import pytest
from app_test_orchestrator.device_tooling import command_runner, terminate_process_tree

pytestmark = pytest.mark.skipif(os.name == "nt", reason="process groups are POSIX only")


class StubbornProcess:
    """Ignores the interrupt until the whole group is killed."""

    pid = 4242

    def __init__(self) -> None:
        self.waits: list[float | None] = []

    def poll(self) -> int | None:
        return None

    def wait(self, timeout: float | None = None) -> int:
        self.waits.append(timeout)
        if timeout is not None:
            raise subprocess.TimeoutExpired(cmd="cordova run", timeout=timeout)
        return -9

    def kill(self) -> None:
        raise AssertionError("the group is killed, not only its leader")


def _record_killpg(monkeypatch: pytest.MonkeyPatch) -> list[tuple[int, int]]:
    sent: list[tuple[int, int]] = []
    monkeypatch.setattr(command_runner.os, "killpg", lambda pid, sig: sent.append((pid, sig)))
    return sent


def test_stubborn_process_group_is_killed_after_grace(monkeypatch: pytest.MonkeyPatch) -> None:
    sent = _record_killpg(monkeypatch)
    process = StubbornProcess()

    terminate_process_tree(process)  # type: ignore[arg-type]

    assert sent == [(4242, signal.SIGINT), (4242, signal.SIGKILL)]
    assert process.waits == [command_runner.TERMINATE_GRACE_SECONDS, None]


def test_group_gone_before_kill_is_not_waited_for(monkeypatch: pytest.MonkeyPatch) -> None:
    sent: list[int] = []

    def _killpg(pid: int, sig: int) -> None:
        sent.append(sig)
        if sig == signal.SIGKILL:
            raise ProcessLookupError(pid)

    monkeypatch.setattr(command_runner.os, "killpg", _killpg)
    process = StubbornProcess()

    terminate_process_tree(process)  # type: ignore[arg-type]

    assert sent == [signal.SIGINT, signal.SIGKILL]
    assert process.waits == [command_runner.TERMINATE_GRACE_SECONDS]
