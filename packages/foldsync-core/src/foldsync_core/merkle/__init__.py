"""Hash tree subsystem: node model, incremental tree, concurrent builder."""

from foldsync_core.merkle.builder import TreeBuilder
from foldsync_core.merkle.hashing import (
    EMPTY_HASH,
    compute_file_hash,
    compute_hash,
    compute_merkle_hash,
    normalize_address,
)
from foldsync_core.merkle.models import HashNode, NodeKind
from foldsync_core.merkle.tree import HashTree


async def build_tree(*args, **kwargs) -> HashTree:
    """Convenience wrapper around TreeBuilder().build()."""
    builder_kwargs = {k: kwargs.pop(k) for k in ("max_concurrency", "chunk_size") if k in kwargs}
    return await TreeBuilder(**builder_kwargs).build(*args, **kwargs)


__all__ = [
    "EMPTY_HASH",
    "HashNode",
    "HashTree",
    "NodeKind",
    "TreeBuilder",
    "build_tree",
    "compute_file_hash",
    "compute_hash",
    "compute_merkle_hash",
    "normalize_address",
]
