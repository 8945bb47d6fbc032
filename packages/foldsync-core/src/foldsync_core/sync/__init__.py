"""Diff-and-repair synchronization between a source and a replica tree."""

from foldsync_core.sync.models import SyncAction, SyncError, SyncReport
from foldsync_core.sync.session import SyncSession
from foldsync_core.sync.synchronizer import Synchronizer

__all__ = [
    "SyncAction",
    "SyncError",
    "SyncReport",
    "SyncSession",
    "Synchronizer",
]
