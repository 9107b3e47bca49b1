"""Descriptors produced by the device and project tooling."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class TargetDescriptor:
    """Resolved device or emulator identity."""

    name: str
    udid: str | None = None


@dataclass
class TempProject:
    """Throwaway app project owned by the run."""

    path: Path
    disposed: bool = False
