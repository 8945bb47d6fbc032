"""Hash primitives shared by the tree, the builder and the synchronizer."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

# Bytes read per iteration when streaming a file through the digest
DEFAULT_CHUNK_SIZE = 64 * 1024


def compute_hash(content: bytes) -> str:
    """Full lowercase SHA-256 hex digest of *content*."""
    return hashlib.sha256(content).hexdigest()


# Hash of a directory with no children, and of a zero-byte file
EMPTY_HASH = compute_hash(b"")


def compute_file_hash(path: str | Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Stream a file from disk through SHA-256 without loading it whole."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            h.update(chunk)
    return h.hexdigest()


def compute_merkle_hash(child_hashes: list[str]) -> str:
    """Compute a directory hash from its children's hashes.

    Sorts the hashes lexicographically, joins them, then hashes the result,
    so the value is independent of listing and insertion order.
    """
    joined = "".join(sorted(child_hashes))
    return compute_hash(joined.encode())


def normalize_address(path: str | Path) -> str:
    """Absolute path with trailing separators removed; the index key."""
    # abspath normalizes, which also drops trailing separators
    return os.path.abspath(os.fspath(path))
