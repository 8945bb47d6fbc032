"""Filesystem primitives the tree and the synchronizer depend on.

All functions are blocking and may raise ``OSError``; async callers run them
through ``asyncio.to_thread``. Nothing here is atomic across calls.
"""

from __future__ import annotations

import os
import shutil
import stat

from foldsync_core.merkle.hashing import DEFAULT_CHUNK_SIZE
from foldsync_core.merkle.models import NodeKind


def probe_kind(path: str) -> NodeKind | None:
    """Return the node kind for *path*, or None if it should not be tracked.

    Missing paths, symbolic links and special files (sockets, FIFOs,
    devices) all return None.
    """
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return None
    if stat.S_ISDIR(st.st_mode):
        return NodeKind.directory
    if stat.S_ISREG(st.st_mode):
        return NodeKind.file
    return None


def list_entries(path: str) -> list[str]:
    """Base names of the entries inside directory *path*."""
    with os.scandir(path) as it:
        return [entry.name for entry in it]


def copy_file(src: str, dst: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
    """Stream *src* into *dst*, creating or truncating *dst*."""
    with open(src, "rb") as fsrc, open(dst, "wb") as fdst:
        shutil.copyfileobj(fsrc, fdst, length=chunk_size)
        fdst.flush()


def make_dir(path: str) -> None:
    """Create *path* and any missing parents."""
    os.makedirs(path, exist_ok=True)


def delete_file(path: str) -> None:
    os.remove(path)


def delete_dir(path: str, recursive: bool = False) -> None:
    if recursive:
        shutil.rmtree(path)
    else:
        os.rmdir(path)


def move(src: str, dst: str) -> None:
    """Rename *src* to *dst* (same volume)."""
    os.replace(src, dst)
