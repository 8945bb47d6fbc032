"""Reconciliation loop: build both trees, watch both roots, sync on an interval."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from foldsync_core.config.models import FoldSyncConfig
from foldsync_core.errors import RootUnavailableError
from foldsync_core.merkle.builder import TreeBuilder
from foldsync_core.merkle.tree import HashTree
from foldsync_core.sync.models import SyncReport
from foldsync_core.sync.synchronizer import Synchronizer
from foldsync_core.watch.source import ChangeSource
from foldsync_core.watch.watcher import WatchdogChangeSource

logger = logging.getLogger(__name__)


class SyncSession:
    """Owns the two trees, their change sources and the synchronizer.

    Usage::

        session = SyncSession(source, replica, config)
        await session.start()
        await session.run(stop_event)
        session.stop()
    """

    def __init__(
        self,
        source_root: str | Path,
        replica_root: str | Path,
        config: FoldSyncConfig | None = None,
    ) -> None:
        self.source_root = str(source_root)
        self.replica_root = str(replica_root)
        self.config = config or FoldSyncConfig()
        self.source_tree: HashTree | None = None
        self.replica_tree: HashTree | None = None
        self.synchronizer: Synchronizer | None = None
        self.source_changes: ChangeSource | None = None
        self.replica_changes: ChangeSource | None = None
        self.cycles = 0
        # Running totals over every cycle of this session
        self.totals = SyncReport()

    @property
    def started(self) -> bool:
        return self.synchronizer is not None

    async def start(self) -> SyncReport:
        """Build both trees, start watching and run the initial cycle.

        Watchers start before the trees are built so that nothing changed
        during the build is missed; replaying those events is idempotent.
        The initial cycle prunes replica entries the source does not have.
        """
        sync = self.config.sync
        for root in (self.source_root, self.replica_root):
            if not os.path.isdir(root):
                raise RootUnavailableError(root)
        if self.config.watch.enabled:
            self.source_changes = WatchdogChangeSource(
                self.source_root, max_pending=self.config.watch.max_pending_events
            )
            self.replica_changes = WatchdogChangeSource(
                self.replica_root, max_pending=self.config.watch.max_pending_events
            )
            self.source_changes.start()
            self.replica_changes.start()

        builder = TreeBuilder(max_concurrency=sync.max_concurrency, chunk_size=sync.chunk_size)
        try:
            self.source_tree, self.replica_tree = await asyncio.gather(
                builder.build(self.source_root),
                builder.build(self.replica_root),
            )
        except Exception:
            self.stop()
            raise
        for tree in (self.source_tree, self.replica_tree):
            tree.deferred_add_limit = sync.deferred_add_limit
        logger.info(
            "Built trees: source %s (%d nodes), replica %s (%d nodes)",
            self.source_tree.root_path,
            len(self.source_tree),
            self.replica_tree.root_path,
            len(self.replica_tree),
        )

        self.synchronizer = Synchronizer(
            self.source_tree,
            self.replica_tree,
            max_concurrency=sync.max_concurrency,
            chunk_size=sync.chunk_size,
        )
        report = await self.synchronizer.prune_extras()
        self.cycles += 1
        self.totals.merge(report)
        return report

    async def cycle(self) -> SyncReport:
        """Drain both change sources and run one synchronization cycle."""
        if self.synchronizer is None:
            raise RuntimeError("SyncSession.start() must be awaited before cycle()")
        source_batch = self.source_changes.drain() if self.source_changes else None
        replica_batch = self.replica_changes.drain() if self.replica_changes else None
        logger.debug(
            "Drained %d source and %d replica changes",
            source_batch.total_changes if source_batch else 0,
            replica_batch.total_changes if replica_batch else 0,
        )
        report = await self.synchronizer.run_cycle(source_batch, replica_batch)
        self.cycles += 1
        self.totals.merge(report)
        return report

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run cycles every ``sync.interval_ms`` until *stop_event* is set."""
        if not self.started:
            await self.start()
        interval = self.config.sync.interval_ms / 1000
        logger.info(
            "Syncing %s -> %s every %dms", self.source_root, self.replica_root, self.config.sync.interval_ms
        )
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if stop_event.is_set():
                break
            await self.cycle()
        logger.info(
            "Sync loop stopped after %d cycles: %d operations, %d errors",
            self.cycles,
            self.totals.operations,
            len(self.totals.errors),
        )

    def stop(self) -> None:
        """Stop both watchers."""
        for changes in (self.source_changes, self.replica_changes):
            if isinstance(changes, WatchdogChangeSource):
                changes.stop()
