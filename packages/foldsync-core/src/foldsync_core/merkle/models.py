"""Data models for the hash tree."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum

from foldsync_core.merkle.hashing import (
    DEFAULT_CHUNK_SIZE,
    compute_file_hash,
    compute_merkle_hash,
)


class NodeKind(str, Enum):
    """What a tree node mirrors on disk."""

    file = "file"
    directory = "directory"


@dataclass(eq=False)
class HashNode:
    """A node in the hash tree, representing either a file or directory.

    Mutable: the hash is recomputed in place, children come and go, and a
    rename rewrites ``address``. ``parent`` is a back-reference used only to
    walk upward when recomputing hashes.
    """

    address: str
    kind: NodeKind
    hash: str = ""
    children: dict[str, HashNode] = field(default_factory=dict, repr=False)
    parent: HashNode | None = field(default=None, repr=False)

    @property
    def name(self) -> str:
        return os.path.basename(self.address)

    @property
    def is_dir(self) -> bool:
        return self.kind is NodeKind.directory

    def compute_hash(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
        """Recompute ``hash`` from file bytes or from the children's hashes.

        Directory nodes expect every child to already carry a valid hash.
        """
        if self.is_dir:
            self.hash = compute_merkle_hash([c.hash for c in self.children.values()])
        else:
            self.hash = compute_file_hash(self.address, chunk_size)
        return self.hash

    def iter_subtree(self):
        """Yield this node and every descendant, parents before children."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(node.children.values())
