"""Builder for constructing hash trees from a directory on disk."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from foldsync_core import fsops
from foldsync_core.errors import RootUnavailableError
from foldsync_core.merkle.hashing import DEFAULT_CHUNK_SIZE
from foldsync_core.merkle.models import HashNode
from foldsync_core.merkle.tree import HashTree

logger = logging.getLogger(__name__)


class TreeBuilder:
    """Builds a HashTree by walking a directory concurrently.

    Every directory entry gets its own task. A directory's hash is computed
    only after all of its entry tasks (and their own fan-out) have finished,
    so no directory hash ever reflects a partially built child. Blocking
    filesystem calls run in worker threads, at most *max_concurrency* at once.
    """

    def __init__(
        self,
        max_concurrency: int = 16,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.max_concurrency = max_concurrency
        self.chunk_size = chunk_size
        self._slots = asyncio.Semaphore(max_concurrency)

    async def build(self, root_path: str | Path) -> HashTree:
        """Walk *root_path* and return a fully hashed tree.

        Raises RootUnavailableError if the root itself cannot be listed.
        """
        tree = HashTree(
            root_path,
            chunk_size=self.chunk_size,
            max_concurrency=self.max_concurrency,
        )
        if not os.path.isdir(tree.root_path):
            raise RootUnavailableError(tree.root_path)
        try:
            await self.populate(tree, tree.root)
        except OSError as exc:
            raise RootUnavailableError(tree.root_path, exc) from exc
        logger.debug("Built tree for %s: %d nodes", tree.root_path, len(tree))
        return tree

    async def populate(self, tree: HashTree, node: HashNode) -> None:
        """Index and hash everything below directory *node*, then hash *node*.

        Raises OSError only when *node* itself cannot be listed; entries that
        vanish or fail below it are logged and skipped.
        """
        names = await self._io(fsops.list_entries, node.address)
        await asyncio.gather(*(self._build_entry(tree, node, name) for name in names))
        node.compute_hash()

    async def _build_entry(self, tree: HashTree, parent: HashNode, name: str) -> None:
        address = os.path.join(parent.address, name)
        try:
            kind = await self._io(fsops.probe_kind, address)
        except OSError as exc:
            logger.warning("Skipping %s: %s", address, exc)
            return
        if kind is None:
            logger.debug("Skipping %s: missing, a symlink or a special file", address)
            return

        child = HashNode(address=address, kind=kind)
        tree._attach(parent, child)
        try:
            if child.is_dir:
                await self.populate(tree, child)
            else:
                await self._io(child.compute_hash, self.chunk_size)
        except OSError as exc:
            logger.warning("Skipping %s: %s", address, exc)
            tree._detach(child)

    async def _io(self, func, *args):
        async with self._slots:
            return await asyncio.to_thread(func, *args)
