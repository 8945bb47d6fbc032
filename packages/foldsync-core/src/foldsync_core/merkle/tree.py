"""Hash tree over a directory, with incremental point updates."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING, Any

from foldsync_core import fsops
from foldsync_core.merkle.hashing import (
    DEFAULT_CHUNK_SIZE,
    EMPTY_HASH,
    compute_file_hash,
    compute_hash,
    compute_merkle_hash,
    normalize_address,
)
from foldsync_core.merkle.models import HashNode, NodeKind

if TYPE_CHECKING:
    from foldsync_core.watch.models import ChangeBatch

logger = logging.getLogger(__name__)

__all__ = [
    "HashTree",
    "compute_file_hash",
    "compute_hash",
    "compute_merkle_hash",
    "normalize_address",
]


def _depth(address: str) -> int:
    return address.count(os.sep)


class HashTree:
    """Hash tree mirroring one directory subtree.

    Owns the root node and an index from normalized address to node. Every
    structural mutation goes through the async methods below, which hold a
    tree-wide lock so concurrent copy/delete tasks cannot interleave edits
    of the index and the children maps. Each method leaves every hash on the
    affected root path recomputed before it returns.
    """

    algorithm: str = "sha256"

    def __init__(
        self,
        root_path: str | Path,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_concurrency: int = 16,
        deferred_add_limit: int = 1000,
    ) -> None:
        address = normalize_address(root_path)
        self.root = HashNode(address=address, kind=NodeKind.directory, hash=EMPTY_HASH)
        self.nodes: dict[str, HashNode] = {address: self.root}
        self.chunk_size = chunk_size
        self.max_concurrency = max_concurrency
        self.deferred_add_limit = deferred_add_limit
        self._lock = asyncio.Lock()
        # Adds whose parent is not indexed yet, in arrival order
        self._deferred: dict[str, None] = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def root_path(self) -> str:
        return self.root.address

    @property
    def root_hash(self) -> str:
        return self.root.hash

    @property
    def deferred(self) -> list[str]:
        """Addresses parked until their parent shows up in the index."""
        return list(self._deferred)

    def get(self, address: str | Path) -> HashNode | None:
        return self.nodes.get(normalize_address(address))

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, (str, Path)):
            return False
        return normalize_address(address) in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def walk(self) -> Iterator[HashNode]:
        """Depth-first walk from the root, children in name order."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(node.children[name] for name in sorted(node.children, reverse=True))

    def relative(self, address: str | Path) -> str:
        """Path of *address* relative to the root; "" for the root itself."""
        rel = os.path.relpath(normalize_address(address), self.root.address)
        return "" if rel == os.curdir else rel

    def to_dict(self) -> dict[str, Any]:
        """Nested dict view of the tree, for JSON output."""

        def _node(n: HashNode) -> dict[str, Any]:
            data: dict[str, Any] = {"name": n.name, "kind": n.kind.value, "hash": n.hash}
            if n.is_dir:
                data["children"] = [_node(n.children[k]) for k in sorted(n.children)]
            return data

        return {
            "algorithm": self.algorithm,
            "root_path": self.root.address,
            "root_hash": self.root.hash,
            "tree": _node(self.root),
        }

    # ------------------------------------------------------------------
    # Index bookkeeping (caller holds the lock or owns the tree exclusively)
    # ------------------------------------------------------------------

    def _register(self, node: HashNode) -> None:
        self.nodes[node.address] = node

    def _attach(self, parent: HashNode, node: HashNode) -> None:
        node.parent = parent
        parent.children[node.name] = node
        self._register(node)

    def _detach(self, node: HashNode) -> None:
        """Unlink *node* from its parent and drop its whole subtree from the index."""
        parent = node.parent
        if parent is not None and parent.children.get(node.name) is node:
            del parent.children[node.name]
        for n in node.iter_subtree():
            if self.nodes.get(n.address) is n:
                del self.nodes[n.address]
            self._deferred.pop(n.address, None)

    def _defer(self, address: str) -> None:
        if address in self._deferred:
            return
        if len(self._deferred) >= self.deferred_add_limit:
            logger.warning("Deferred add queue full, dropping %s", address)
            return
        self._deferred[address] = None

    async def _rehash(self, node: HashNode) -> None:
        if node.is_dir:
            node.compute_hash()
        else:
            await asyncio.to_thread(node.compute_hash, self.chunk_size)

    async def _propagate(self, node: HashNode | None) -> None:
        """Recompute hashes from *node* up to the root, one level at a time."""
        while node is not None:
            await self._rehash(node)
            node = node.parent

    # ------------------------------------------------------------------
    # Incremental updates
    # ------------------------------------------------------------------

    async def add_node(self, address: str | Path) -> bool:
        """Index a newly created path and rehash up to the root.

        An address that is already indexed is re-hashed in place. Returns
        True if the tree changed shape or was re-hashed.
        """
        async with self._lock:
            return await self._add_locked(normalize_address(address))

    async def remove_node(self, address: str | Path) -> bool:
        """Drop a path and all its descendants, then rehash from the parent up."""
        async with self._lock:
            return await self._remove_locked(normalize_address(address))

    async def update_node(self, address: str | Path) -> bool:
        """Re-read a node (file bytes or child hashes) and rehash up to the root."""
        async with self._lock:
            return await self._update_locked(normalize_address(address))

    async def rename_node(self, old: str | Path, new: str | Path) -> bool:
        """Re-key a node (and its descendants) from *old* to *new*."""
        async with self._lock:
            return await self._rename_locked(normalize_address(old), normalize_address(new))

    async def apply_changes(self, batch: ChangeBatch) -> list[tuple[str, str]]:
        """Apply one drained change batch and return the renames that took effect.

        Categories go delete -> rename -> add -> update. Adds are sorted by
        path depth so a parent is indexed before its children; adds that
        still have no parent are parked and retried with the next batch.
        """
        async with self._lock:
            for address in batch.deleted:
                await self._remove_locked(normalize_address(address))

            applied: list[tuple[str, str]] = []
            for old, new in batch.renamed.items():
                old_a, new_a = normalize_address(old), normalize_address(new)
                if await self._rename_locked(old_a, new_a):
                    applied.append((old_a, new_a))

            added = [normalize_address(a) for a in batch.added]
            pending = list(dict.fromkeys([*self._deferred, *added]))
            self._deferred.clear()
            for address in sorted(pending, key=_depth):
                await self._add_locked(address)

            fresh = set(added)
            for address in batch.updated:
                address = normalize_address(address)
                if address not in fresh:
                    await self._update_locked(address)
            return applied

    async def rebuild(self) -> None:
        """Rebuild the whole tree from disk, keeping the same root node."""
        from foldsync_core.merkle.builder import TreeBuilder

        builder = TreeBuilder(max_concurrency=self.max_concurrency, chunk_size=self.chunk_size)
        async with self._lock:
            fresh = await builder.build(self.root.address)
            self.root.children = fresh.root.children
            for child in self.root.children.values():
                child.parent = self.root
            self.root.hash = fresh.root.hash
            fresh.nodes[self.root.address] = self.root
            self.nodes = fresh.nodes
            self._deferred.clear()
        logger.info("Rebuilt tree for %s (%d nodes)", self.root.address, len(self.nodes))

    async def _add_locked(self, address: str) -> bool:
        existing = self.nodes.get(address)
        if existing is not None:
            return await self._update_locked(address)

        parent = self.nodes.get(os.path.dirname(address))
        kind = await asyncio.to_thread(fsops.probe_kind, address)
        if kind is None:
            logger.debug("Not adding %s: missing, a symlink or a special file", address)
            return False
        if parent is None or not parent.is_dir:
            logger.debug("Deferring add of %s until its parent is indexed", address)
            self._defer(address)
            return False

        node = HashNode(address=address, kind=kind)
        self._attach(parent, node)
        try:
            if node.is_dir:
                from foldsync_core.merkle.builder import TreeBuilder

                builder = TreeBuilder(max_concurrency=self.max_concurrency, chunk_size=self.chunk_size)
                await builder.populate(self, node)
            else:
                await self._rehash(node)
        except OSError as exc:
            logger.warning("Could not index %s: %s", address, exc)
            self._detach(node)
            return False

        await self._propagate(parent)
        return True

    async def _remove_locked(self, address: str) -> bool:
        node = self.nodes.get(address)
        if node is None:
            self._deferred.pop(address, None)
            logger.warning("Remove requested for unknown address %s; ignoring", address)
            return False
        if node is self.root:
            logger.warning("Refusing to remove the tree root %s", address)
            return False
        parent = node.parent
        self._detach(node)
        await self._propagate(parent)
        return True

    async def _update_locked(self, address: str) -> bool:
        node = self.nodes.get(address)
        if node is None:
            logger.warning("Update requested for unknown address %s; ignoring", address)
            return False
        if node is not self.root:
            kind = await asyncio.to_thread(fsops.probe_kind, address)
            if kind is None:
                logger.warning("Update for %s skipped: path no longer exists", address)
                return False
            if kind is not node.kind:
                # Replaced by an entry of the other kind; index it afresh
                parent = node.parent
                self._detach(node)
                await self._propagate(parent)
                return await self._add_locked(address)
        try:
            await self._propagate(node)
        except OSError as exc:
            logger.warning("Could not rehash %s: %s", address, exc)
            return False
        return True

    async def _rename_locked(self, old: str, new: str) -> bool:
        if old == new:
            return False
        node = self.nodes.get(old)
        if node is None:
            if new in self.nodes:
                # An unindexed file moved over an indexed one (atomic save)
                await self._update_locked(new)
                return False
            # Source was never indexed (created and moved within one batch)
            return await self._add_locked(new)
        if node is self.root:
            logger.warning("Refusing to rename the tree root %s", old)
            return False

        kind = await asyncio.to_thread(fsops.probe_kind, new)
        if kind is not node.kind:
            logger.debug("Rename target %s is gone or changed kind; re-indexing", new)
            await self._remove_locked(old)
            if kind is not None:
                await self._add_locked(new)
            return False

        old_parent = node.parent
        new_parent = self.nodes.get(os.path.dirname(new))
        if new_parent is None or not new_parent.is_dir:
            logger.debug("Deferring rename target %s until its parent is indexed", new)
            self._detach(node)
            await self._propagate(old_parent)
            self._defer(new)
            return False

        target = self.nodes.get(new)
        if target is not None:
            # Rename over an existing entry replaces it
            self._detach(target)

        self._detach(node)
        for n in node.iter_subtree():
            n.address = new + n.address[len(old):]
        self._attach(new_parent, node)
        for n in node.iter_subtree():
            self._register(n)

        if not node.is_dir:
            # The bytes may have changed before the move
            try:
                await self._rehash(node)
            except OSError as exc:
                logger.warning("Could not rehash %s: %s", new, exc)
        await self._propagate(old_parent)
        if new_parent is not old_parent:
            await self._propagate(new_parent)
        return True
