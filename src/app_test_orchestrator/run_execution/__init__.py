"""Run execution domain exports."""

from .completion_signals import (
    CompletionRace,
    CompletionSignal,
    Disconnected,
    Failed,
    NeverConnected,
    Passed,
    TimedOut,
)
from .run_contracts import (
    Phase,
    PhaseTransitionError,
    RunOutcome,
    RunState,
    TargetAlreadyResolvedError,
    TestResult,
)
from .run_coordinator import RunCoordinator, RunExecutionError, execute_test_run

__all__ = [
    "CompletionRace",
    "CompletionSignal",
    "Disconnected",
    "Failed",
    "NeverConnected",
    "Passed",
    "Phase",
    "PhaseTransitionError",
    "RunCoordinator",
    "RunExecutionError",
    "RunOutcome",
    "RunState",
    "TargetAlreadyResolvedError",
    "TestResult",
    "TimedOut",
    "execute_test_run",
]
