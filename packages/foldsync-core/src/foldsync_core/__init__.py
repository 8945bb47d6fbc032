"""foldsync core: Merkle hash trees and one-way folder synchronization."""

__version__ = "0.1.0"

from foldsync_core.errors import (
    CycleInProgressError,
    FoldSyncError,
    InvalidRootsError,
    RootUnavailableError,
)
from foldsync_core.merkle import HashNode, HashTree, NodeKind, TreeBuilder, build_tree
from foldsync_core.sync import SyncReport, SyncSession, Synchronizer
from foldsync_core.watch import ChangeBatch, ChangeSource, WatchdogChangeSource

__all__ = [
    "ChangeBatch",
    "ChangeSource",
    "CycleInProgressError",
    "FoldSyncError",
    "HashNode",
    "HashTree",
    "InvalidRootsError",
    "NodeKind",
    "RootUnavailableError",
    "SyncReport",
    "SyncSession",
    "Synchronizer",
    "TreeBuilder",
    "WatchdogChangeSource",
    "build_tree",
]
