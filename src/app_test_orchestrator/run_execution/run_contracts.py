"""Run execution entities."""

from __future__ import annotations

import subprocess
import threading
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import TYPE_CHECKING

from app_test_orchestrator.device_tooling.device_models import TargetDescriptor, TempProject

if TYPE_CHECKING:
    from app_test_orchestrator.reporting_channel import FileTransferServer, ReportingChannel

    from .completion_signals import CompletionSignal


class PhaseTransitionError(Exception):
    """Raised when a run tries to repeat a phase or move backwards."""


class TargetAlreadyResolvedError(Exception):
    """Raised when the target descriptor is assigned a second time."""


class Phase(IntEnum):
    """Forward-only lifecycle of one run."""

    INIT = 0
    PROJECT_PREPARED = 1
    SERVER_STARTED = 2
    TESTS_LAUNCHED = 3
    SETTLED = 4
    CLEANED_UP = 5


class TestResult(str, Enum):
    """Tri-state run result; unknown until the run settles."""

    __test__ = False

    UNKNOWN = "unknown"
    PASSED = "passed"
    FAILED = "failed"


@dataclass
class RunState:  # pylint: disable=too-many-instance-attributes
    """Mutable coordinator-owned state of one run."""

    phase: Phase = Phase.INIT
    temp_project: TempProject | None = None
    result: TestResult = TestResult.UNKNOWN
    signal: CompletionSignal | None = None
    channel: ReportingChannel | None = None
    file_transfer_server: FileTransferServer | None = None
    launch_process: subprocess.Popen | None = None
    _target: TargetDescriptor | None = None
    _launched: bool = field(default=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def target(self) -> TargetDescriptor | None:
        return self._target

    def resolve_target(self, target: TargetDescriptor) -> None:
        with self._lock:
            if self._target is not None:
                raise TargetAlreadyResolvedError(
                    f"Target already resolved to {self._target.name!r}; refusing {target.name!r}."
                )
            self._target = target

    def advance(self, phase: Phase) -> None:
        with self._lock:
            if phase <= self.phase:
                raise PhaseTransitionError(
                    f"Cannot move from {self.phase.name} to {phase.name}."
                )
            self.phase = phase
            if phase is Phase.TESTS_LAUNCHED:
                self._launched = True

    def reached(self, phase: Phase) -> bool:
        return self.phase >= phase

    @property
    def tests_launched(self) -> bool:
        """True once the launch step ran; settling alone does not count."""
        return self._launched


@dataclass(frozen=True)
class RunOutcome:
    """Output contract for one completed run."""

    passed: bool
    signal: CompletionSignal
