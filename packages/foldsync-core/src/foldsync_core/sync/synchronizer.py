"""Diff a source hash tree against a replica tree and repair the replica."""

from __future__ import annotations

import asyncio
import logging
import os
import time

from foldsync_core import fsops
from foldsync_core.errors import CycleInProgressError, RootUnavailableError
from foldsync_core.merkle.hashing import DEFAULT_CHUNK_SIZE
from foldsync_core.merkle.models import HashNode, NodeKind
from foldsync_core.merkle.tree import HashTree
from foldsync_core.sync.models import SyncAction, SyncError, SyncReport
from foldsync_core.watch.models import ChangeBatch

logger = logging.getLogger(__name__)


class Synchronizer:
    """Keeps a replica directory convergent with a source directory.

    Walks both trees top-down, stopping wherever hashes match. Missing
    entries are copied, changed files are overwritten, extra entries are
    deleted, and every filesystem action is mirrored into the replica tree
    so it never needs a rebuild. Within one directory all copies finish
    before any delete starts. Per-entry I/O failures are logged and
    recorded in the report; the hash mismatch makes the next cycle retry.

    Only one cycle runs at a time; overlapping calls raise
    CycleInProgressError.
    """

    def __init__(
        self,
        source: HashTree,
        replica: HashTree,
        max_concurrency: int = 16,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.source = source
        self.replica = replica
        self.chunk_size = chunk_size
        self._slots = asyncio.Semaphore(max_concurrency)
        self._cycle = asyncio.Lock()
        # Relative replica directories to diff this cycle even when hashes match
        self._focus: set[str] = set()

    @property
    def in_progress(self) -> bool:
        """True while a cycle is running."""
        return self._cycle.locked()

    # ------------------------------------------------------------------
    # Cycle entry points
    # ------------------------------------------------------------------

    async def run_cycle(
        self,
        source_batch: ChangeBatch | None = None,
        replica_batch: ChangeBatch | None = None,
        prune: bool = False,
    ) -> SyncReport:
        """Apply drained notifications to both trees, then reconcile.

        An overflowed batch triggers a full rebuild of that side's tree and
        a prune pass. Source renames are replayed on the replica; replica
        renames that leave an entry with no source counterpart delete it.
        Directories touched by either batch are diffed by name even when
        their hashes already match.
        """
        if self._cycle.locked():
            raise CycleInProgressError("a synchronization cycle is already running")
        async with self._cycle:
            start = time.monotonic()
            report = SyncReport()
            self._check_roots()
            self._focus = set()
            for batch, tree in ((source_batch, self.source), (replica_batch, self.replica)):
                if batch is not None and not batch.overflowed:
                    self._mark(tree, [*batch.added, *batch.deleted, *batch.renamed, *batch.renamed.values()])

            source_renames: list[tuple[str, str]] = []
            replica_renames: list[tuple[str, str]] = []
            if source_batch is not None:
                if source_batch.overflowed:
                    await self.source.rebuild()
                    report.rebuilt.append(self.source.root_path)
                    prune = True
                else:
                    source_renames = await self.source.apply_changes(source_batch)
            if replica_batch is not None:
                if replica_batch.overflowed:
                    await self.replica.rebuild()
                    report.rebuilt.append(self.replica.root_path)
                    prune = True
                else:
                    replica_renames = await self.replica.apply_changes(replica_batch)

            for old, new in source_renames:
                await self._mirror_rename(old, new, report)
            for _old, new in replica_renames:
                await self._prune_renamed(new, report)
            if prune:
                await self._prune(report)

            await self._sync_pair(self.source.root, self.replica.root, report)
            self._focus = set()

            report.root_hashes_equal = self.source.root_hash == self.replica.root_hash
            report.duration = time.monotonic() - start
            logger.info(
                "Cycle done in %.3fs: %d copied, %d updated, %d dirs, %d deleted, %d renamed, %d errors",
                report.duration,
                report.copied,
                report.updated,
                report.created_dirs,
                report.deleted,
                report.renamed,
                len(report.errors),
            )
            return report

    async def reconcile(self) -> SyncReport:
        """Diff and repair without applying any notifications."""
        return await self.run_cycle()

    async def prune_extras(self) -> SyncReport:
        """Delete replica entries with no source counterpart, then reconcile.

        Directory hashes ignore names, so a replica entry that differs from
        the source only by name is invisible to the hash diff; this pass
        compares the two indexes by relative path instead.
        """
        return await self.run_cycle(prune=True)

    # ------------------------------------------------------------------
    # Diff
    # ------------------------------------------------------------------

    async def _sync_pair(self, source: HashNode, replica: HashNode, report: SyncReport) -> None:
        if source.kind is replica.kind and source.hash == replica.hash:
            if not (source.is_dir and self.replica.relative(replica.address) in self._focus):
                return

        if source.kind is not replica.kind:
            # Same name, different kind: the old entry has to go first
            if await self._delete_entry(replica.address, report):
                await self._copy(source, replica.address, report)
            return

        if not source.is_dir:
            await self._copy_file(source.address, replica.address, report, existing=True)
            return

        await self._sync_dir(source, replica, report)

    async def _sync_dir(self, source: HashNode, replica: HashNode, report: SyncReport) -> None:
        source_children = dict(source.children)
        replica_children = dict(replica.children)

        tasks = []
        for name, source_child in source_children.items():
            replica_child = replica_children.get(name)
            if replica_child is None:
                tasks.append(self._copy(source_child, os.path.join(replica.address, name), report))
            else:
                tasks.append(self._sync_pair(source_child, replica_child, report))
        await asyncio.gather(*tasks)

        # Extra entries: check the live listings as well as the trees
        try:
            live_replica = await self._io(fsops.list_entries, replica.address)
            live_source = await self._io(fsops.list_entries, source.address)
        except OSError as exc:
            self._fail(report, replica.address, exc)
            return
        keep = set(source_children) | set(live_source)
        extras = (set(replica.children) | set(live_replica)) - keep
        await asyncio.gather(
            *(self._delete_entry(os.path.join(replica.address, name), report) for name in sorted(extras))
        )

    # ------------------------------------------------------------------
    # Copy
    # ------------------------------------------------------------------

    async def _copy(self, node: HashNode, dest: str, report: SyncReport) -> None:
        try:
            untracked = await self._io(fsops.probe_kind, dest)
        except OSError as exc:
            self._fail(report, dest, exc)
            return
        if untracked is None and os.path.lexists(dest):
            logger.debug("Not copying over %s: symlink or special file", dest)
            return
        if untracked is not None and untracked is not node.kind:
            # An entry the replica tree never saw is in the way
            if not await self._delete_entry(dest, report):
                return
        if node.is_dir:
            await self._copy_dir(node, dest, report)
        else:
            await self._copy_file(node.address, dest, report, existing=False)

    async def _copy_dir(self, node: HashNode, dest: str, report: SyncReport) -> None:
        try:
            await self._io(fsops.make_dir, dest)
        except OSError as exc:
            self._fail(report, dest, exc)
            return
        await self.replica.add_node(dest)
        report.created_dirs += 1
        self._log(SyncAction.directory_created, dest)

        children = list(node.children.values())
        await asyncio.gather(
            *(self._copy(child, os.path.join(dest, child.name), report) for child in children)
        )

    async def _copy_file(self, src: str, dest: str, report: SyncReport, existing: bool) -> None:
        try:
            await self._io(fsops.copy_file, src, dest, self.chunk_size)
        except OSError as exc:
            self._fail(report, dest, exc)
            return
        if existing:
            await self.replica.update_node(dest)
            report.updated += 1
            self._log(SyncAction.file_updated, src, dest)
        else:
            await self.replica.add_node(dest)
            report.copied += 1
            self._log(SyncAction.file_copied, src, dest)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def _delete_entry(self, address: str, report: SyncReport) -> bool:
        """Delete a replica entry from disk and from the replica tree."""
        try:
            kind = await self._io(fsops.probe_kind, address)
            if kind is None:
                if address in self.replica:
                    # Already gone from disk; drop the stale node
                    await self.replica.remove_node(address)
                    return True
                logger.debug("Leaving %s alone: symlink or special file", address)
                return not os.path.lexists(address)
            if kind is NodeKind.directory:
                await self._io(fsops.delete_dir, address, True)
            else:
                await self._io(fsops.delete_file, address)
        except OSError as exc:
            self._fail(report, address, exc)
            return False

        if address in self.replica:
            await self.replica.remove_node(address)
        report.deleted += 1
        action = SyncAction.directory_deleted if kind is NodeKind.directory else SyncAction.file_deleted
        self._log(action, address)
        return True

    async def _prune(self, report: SyncReport) -> None:
        extras: list[str] = []

        def _collect(source: HashNode | None, replica: HashNode) -> None:
            for name, replica_child in replica.children.items():
                source_child = source.children.get(name) if source is not None else None
                if source_child is None or source_child.kind is not replica_child.kind:
                    extras.append(replica_child.address)
                elif replica_child.is_dir:
                    _collect(source_child, replica_child)

        _collect(self.source.root, self.replica.root)
        if extras:
            logger.info("Pruning %d replica entries missing from the source", len(extras))
        await asyncio.gather(*(self._delete_entry(address, report) for address in extras))

    # ------------------------------------------------------------------
    # Renames
    # ------------------------------------------------------------------

    def _counterpart(self, address: str, src: HashTree, dst: HashTree) -> str | None:
        rel = src.relative(address)
        if not rel or rel.startswith(os.pardir):
            return None
        return os.path.join(dst.root_path, rel)

    async def _mirror_rename(self, old: str, new: str, report: SyncReport) -> None:
        """Replay a source rename on the replica, if the replica still has the old entry."""
        rep_old = self._counterpart(old, self.source, self.replica)
        rep_new = self._counterpart(new, self.source, self.replica)
        if rep_old is None or rep_new is None:
            return
        try:
            old_kind = await self._io(fsops.probe_kind, rep_old)
            if old_kind is None or os.path.lexists(rep_new):
                return
            if not os.path.isdir(os.path.dirname(rep_new)):
                return
            await self._io(fsops.move, rep_old, rep_new)
        except OSError as exc:
            self._fail(report, rep_old, exc)
            return
        await self.replica.rename_node(rep_old, rep_new)
        report.renamed += 1
        self._log(SyncAction.rename_applied, rep_old, rep_new)

    async def _prune_renamed(self, new: str, report: SyncReport) -> None:
        """Delete a replica entry renamed to a name the source does not have."""
        src = self._counterpart(new, self.replica, self.source)
        if src is None or src in self.source or os.path.lexists(src):
            return
        await self._delete_entry(new, report)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _mark(self, tree: HashTree, addresses: list[str]) -> None:
        """Focus the parent directory of each address and all its ancestors."""
        for address in addresses:
            rel = tree.relative(address)
            if not rel or rel.startswith(os.pardir):
                continue
            parent = os.path.dirname(rel)
            while True:
                self._focus.add(parent)
                if not parent:
                    break
                parent = os.path.dirname(parent)

    def _check_roots(self) -> None:
        for tree in (self.source, self.replica):
            if not os.path.isdir(tree.root_path):
                raise RootUnavailableError(tree.root_path)

    async def _io(self, func, *args):
        async with self._slots:
            return await asyncio.to_thread(func, *args)

    def _fail(self, report: SyncReport, path: str, exc: OSError) -> None:
        logger.warning("Skipping %s this cycle: %s", path, exc)
        report.errors.append(SyncError(path=path, error=str(exc)))

    def _log(self, action: SyncAction, path: str, dest: str | None = None) -> None:
        message = f"{action.value}: {path}" if dest is None else f"{action.value}: {path} -> {dest}"
        logger.info(message, extra={"action": action.value, "path": path, "dest": dest})
