"""Exception types raised by the sync engine."""

from __future__ import annotations

from pathlib import Path


class FoldSyncError(Exception):
    """Base class for errors surfaced to callers of the engine."""


class RootUnavailableError(FoldSyncError):
    """A watched root directory vanished or cannot be read."""

    def __init__(self, root: str | Path, cause: Exception | None = None) -> None:
        self.root = str(root)
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"root directory unavailable: {self.root}{detail}")
        if cause is not None:
            self.__cause__ = cause


class InvalidRootsError(FoldSyncError):
    """Source/replica roots violate the configuration invariants."""


class CycleInProgressError(FoldSyncError):
    """A reconciliation cycle was requested while another one is running."""
