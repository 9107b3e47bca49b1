"""Event polling entities."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any


class EventPollingError(Exception):
    """Base class for protocol errors raised while draining the event cache."""


class WindowOutOfRangeError(EventPollingError):
    """Raised when no remaining window can hold the event cache."""

    def __init__(self, window_offset: int, window_count: int) -> None:
        super().__init__(
            "Cannot find a window with the event cache "
            f"(window offset {window_offset}, {window_count} window(s) open)."
        )
        self.window_offset = window_offset
        self.window_count = window_count


class EventCacheMissingError(EventPollingError):
    """Raised when the event cache does not exist in the app and retries are spent."""

    def __init__(self, payload: Any) -> None:
        super().__init__(
            "Cannot get the event cache: it doesn't exist in the app. "
            f"Got this instead: {payload!r}"
        )
        self.payload = payload


class WebviewContextError(EventPollingError):
    """Raised when the app never exposes a web view context."""


@dataclass(frozen=True)
class EventBatch:
    """Events drained from the cache in one poll cycle; empty means "none yet"."""

    events: tuple[Any, ...] = ()

    def __iter__(self) -> Iterator[Any]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    @property
    def is_empty(self) -> bool:
        return not self.events
