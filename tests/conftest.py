"""Shared test fixtures for foldsync."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from foldsync_core.config.models import FoldSyncConfig, SyncSettings, WatchSettings
from foldsync_core.merkle import HashTree, TreeBuilder


def write_tree(root: Path, layout: dict) -> Path:
    """Materialize *layout* under *root*.

    String values become files with that text, bytes values files with those
    bytes, dict values subdirectories.
    """
    root.mkdir(parents=True, exist_ok=True)
    for name, value in layout.items():
        path = root / name
        if isinstance(value, dict):
            write_tree(path, value)
        elif isinstance(value, bytes):
            path.write_bytes(value)
        else:
            path.write_text(value)
    return root


async def fresh_build(root: Path) -> HashTree:
    """Build a tree from scratch, for comparing against incremental results."""
    return await TreeBuilder(max_concurrency=4).build(root)


@pytest.fixture
def sample_layout():
    return {
        "README.md": "# readme",
        "a": {
            "b.txt": "hello",
            "sub": {"x.txt": "x" * 100, "y.txt": "why"},
        },
        "docs": {"guide.md": "guide", "empty": {}},
        "zero.bin": b"",
    }


@pytest.fixture
def source_root(tmp_path: Path) -> Path:
    root = tmp_path / "source"
    root.mkdir()
    return root


@pytest.fixture
def replica_root(tmp_path: Path) -> Path:
    root = tmp_path / "replica"
    root.mkdir()
    return root


@pytest.fixture
def quiet_config():
    """Config with watchers off and a short interval."""
    return FoldSyncConfig(
        sync=SyncSettings(interval_ms=10, max_concurrency=4),
        watch=WatchSettings(enabled=False),
    )


@pytest.fixture
def restore_logging():
    """Undo configure_logging() changes to the root logger."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("watchdog").setLevel(logging.NOTSET)
