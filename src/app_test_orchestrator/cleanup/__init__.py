"""Cleanup exports."""

from .cleanup_sequencer import CleanupSequencer

__all__ = ["CleanupSequencer"]
