"""Completion signals and the first-signal-wins race that settles a run."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class CompletionSignal:
    """Single tagged outcome that ends the wait for the device."""

    passed = False

    def describe(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class Passed(CompletionSignal):
    passed = True

    def describe(self) -> str:
        return "Tests passed."


@dataclass(frozen=True)
class Failed(CompletionSignal):
    """Tests failed, or setup failed before any other signal existed."""

    reason: str
    error: BaseException | None = field(default=None, compare=False)

    def describe(self) -> str:
        return f"Tests failed: {self.reason}"


@dataclass(frozen=True)
class TimedOut(CompletionSignal):
    after_ms: int

    def describe(self) -> str:
        return f"Timed out after waiting for {self.after_ms} ms."


@dataclass(frozen=True)
class NeverConnected(CompletionSignal):
    after_ms: int

    def describe(self) -> str:
        return (
            "Seems like device not connected to local server in "
            f"{self.after_ms // 1000} secs."
        )


@dataclass(frozen=True)
class Disconnected(CompletionSignal):
    def describe(self) -> str:
        return "Device is disconnected before passing the tests."


class CompletionRace:
    """Holds the first signal offered; every later offer is ignored."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._future: Future[CompletionSignal] = Future()
        self._lock = threading.Lock()

    @property
    def settled(self) -> bool:
        return self._future.done()

    def offer(self, signal: CompletionSignal) -> bool:
        """Settle the race with ``signal`` unless another signal already won."""
        with self._lock:
            if self._future.done():
                logger.debug("%s race already settled, ignoring %r", self.name, signal)
                return False
            self._future.set_result(signal)
        logger.debug("%s race settled with %r", self.name, signal)
        return True

    def wait(self, timeout: float | None = None) -> CompletionSignal:
        """Block until settled; raises ``TimeoutError`` when ``timeout`` passes first."""
        return self._future.result(timeout=timeout)

    def result(self) -> CompletionSignal | None:
        return self._future.result() if self._future.done() else None

    def forward_to(self, other: CompletionRace) -> None:
        """Offer this race's winner to ``other`` as soon as it settles."""
        self._future.add_done_callback(lambda future: other.offer(future.result()))
