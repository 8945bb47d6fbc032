"""Tests for SyncSession: startup, cycles driven by change sources, the run loop."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from conftest import write_tree
from foldsync_core.config.models import FoldSyncConfig, SyncSettings
from foldsync_core.errors import RootUnavailableError
from foldsync_core.sync import SyncSession
from foldsync_core.watch import ChangeEvent, ChangeKind, ChangeSource


@pytest.mark.asyncio
async def test_start_builds_and_prunes(source_root: Path, replica_root: Path, quiet_config):
    write_tree(source_root, {"a.txt": "same", "d": {"f.txt": "f"}})
    write_tree(replica_root, {"b.txt": "same"})
    session = SyncSession(source_root, replica_root, quiet_config)

    report = await session.start()

    assert session.started
    assert report.root_hashes_equal
    assert not (replica_root / "b.txt").exists()
    assert (replica_root / "d" / "f.txt").read_text() == "f"
    assert session.source_changes is None
    assert session.cycles == 1


@pytest.mark.asyncio
async def test_cycle_applies_drained_events(source_root: Path, replica_root: Path, quiet_config):
    session = SyncSession(source_root, replica_root, quiet_config)
    await session.start()
    session.source_changes = ChangeSource(source_root)

    (source_root / "new.txt").write_text("new")
    session.source_changes.record(ChangeEvent(ChangeKind.created, str(source_root / "new.txt")))
    report = await session.cycle()

    assert report.copied == 1
    assert (replica_root / "new.txt").read_text() == "new"
    assert session.source_changes.pending == 0


@pytest.mark.asyncio
async def test_totals_accumulate_across_cycles(source_root: Path, replica_root: Path, quiet_config):
    write_tree(source_root, {"a.txt": "a"})
    write_tree(replica_root, {"junk.txt": "junk"})
    session = SyncSession(source_root, replica_root, quiet_config)
    await session.start()
    session.source_changes = ChangeSource(source_root)

    (source_root / "b.txt").write_text("b")
    session.source_changes.record(ChangeEvent(ChangeKind.created, str(source_root / "b.txt")))
    await session.cycle()

    assert session.cycles == 2
    assert session.totals.copied == 2
    assert session.totals.deleted == 1
    assert session.totals.operations == 3
    assert session.totals.errors == []


@pytest.mark.asyncio
async def test_cycle_rebuilds_after_overflow(source_root: Path, replica_root: Path, quiet_config):
    session = SyncSession(source_root, replica_root, quiet_config)
    await session.start()
    session.source_changes = ChangeSource(source_root, max_pending=1)

    for name in ("one.txt", "two.txt"):
        (source_root / name).write_text(name)
        session.source_changes.record(ChangeEvent(ChangeKind.created, str(source_root / name)))
    report = await session.cycle()

    assert report.rebuilt == [str(source_root)]
    assert sorted(os.listdir(replica_root)) == ["one.txt", "two.txt"]


@pytest.mark.asyncio
async def test_cycle_before_start_raises(source_root: Path, replica_root: Path):
    session = SyncSession(source_root, replica_root)
    with pytest.raises(RuntimeError, match="start"):
        await session.cycle()


@pytest.mark.asyncio
async def test_start_with_missing_root(tmp_path: Path, replica_root: Path, quiet_config):
    session = SyncSession(tmp_path / "missing", replica_root, quiet_config)
    with pytest.raises(RootUnavailableError):
        await session.start()


@pytest.mark.asyncio
async def test_deferred_add_limit_is_applied(source_root: Path, replica_root: Path):
    config = FoldSyncConfig(sync=SyncSettings(deferred_add_limit=5))
    config.watch.enabled = False
    session = SyncSession(source_root, replica_root, config)
    await session.start()
    assert session.source_tree.deferred_add_limit == 5
    assert session.replica_tree.deferred_add_limit == 5


@pytest.mark.asyncio
async def test_run_loops_until_stopped(source_root: Path, replica_root: Path, quiet_config):
    write_tree(source_root, {"a.txt": "a"})
    session = SyncSession(source_root, replica_root, quiet_config)
    stop = asyncio.Event()

    task = asyncio.create_task(session.run(stop))
    await asyncio.sleep(0.2)
    stop.set()
    await asyncio.wait_for(task, timeout=5)

    assert session.cycles >= 2
    assert (replica_root / "a.txt").exists()


def _converged(d: Path) -> bool:
    fresh, renamed = d / "fresh.txt", d / "renamed.txt"
    return (
        fresh.exists()
        and fresh.read_text() == "fresh"
        and renamed.exists()
        and not (d / "old.txt").exists()
    )


@pytest.mark.asyncio
async def test_watchers_drive_sync_end_to_end(source_root: Path, replica_root: Path):
    write_tree(source_root, {"d": {"old.txt": "old"}})
    config = FoldSyncConfig(sync=SyncSettings(interval_ms=50))
    session = SyncSession(source_root, replica_root, config)
    await session.start()
    try:
        await asyncio.sleep(0.3)
        (source_root / "d" / "fresh.txt").write_text("fresh")
        os.rename(source_root / "d" / "old.txt", source_root / "d" / "renamed.txt")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + 5
        while loop.time() < deadline:
            await session.cycle()
            if _converged(replica_root / "d"):
                break
            await asyncio.sleep(0.1)
    finally:
        session.stop()

    assert (replica_root / "d" / "fresh.txt").read_text() == "fresh"
    assert (replica_root / "d" / "renamed.txt").read_text() == "old"
    assert not (replica_root / "d" / "old.txt").exists()
    assert session.source_tree.root_hash == session.replica_tree.root_hash
