"""Tests for the foldsync CLI (once, tree, run validation, config)."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import write_tree
from foldsync.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated(tmp_path: Path, monkeypatch, restore_logging):
    """Run every command from an empty directory with no user config."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return workdir


# ── foldsync once ────────────────────────────────────────────────────


def test_once_copies_everything(source_root: Path, replica_root: Path, sample_layout):
    write_tree(source_root, sample_layout)
    write_tree(replica_root, {"junk.txt": "junk"})

    result = runner.invoke(app, ["once", "-s", str(source_root), "-r", str(replica_root)])

    assert result.exit_code == 0, result.output
    assert "Sync report" in result.output
    assert "in sync" in result.output
    assert (replica_root / "a" / "sub" / "x.txt").read_text() == "x" * 100
    assert not (replica_root / "junk.txt").exists()


def test_once_twice_reports_nothing_to_do(source_root: Path, replica_root: Path):
    write_tree(source_root, {"f.txt": "f"})
    runner.invoke(app, ["once", "-s", str(source_root), "-r", str(replica_root)])
    result = runner.invoke(app, ["once", "-s", str(source_root), "-r", str(replica_root)])
    assert result.exit_code == 0
    assert "Files copied" in result.output


def test_once_writes_log_file(source_root: Path, replica_root: Path, tmp_path: Path):
    write_tree(source_root, {"f.txt": "f"})
    log_file = tmp_path / "sync.log"
    result = runner.invoke(
        app, ["once", "-s", str(source_root), "-r", str(replica_root), "-l", str(log_file)]
    )
    assert result.exit_code == 0
    assert "file_copied" in log_file.read_text()


def test_once_rejects_nested_roots(source_root: Path):
    (source_root / "inner").mkdir()
    result = runner.invoke(app, ["once", "-s", str(source_root), "-r", str(source_root / "inner")])
    assert result.exit_code == 2
    assert "inside" in result.output


def test_once_requires_both_roots(source_root: Path):
    result = runner.invoke(app, ["once", "-s", str(source_root)])
    assert result.exit_code == 2
    assert "--replica" in result.output


def test_once_uses_roots_from_config(source_root: Path, replica_root: Path, _isolated: Path):
    write_tree(source_root, {"f.txt": "from config"})
    (_isolated / "foldsync.yaml").write_text(
        f"source_root: {json.dumps(str(source_root))}\nreplica_root: {json.dumps(str(replica_root))}\n"
    )
    result = runner.invoke(app, ["once"])
    assert result.exit_code == 0, result.output
    assert (replica_root / "f.txt").read_text() == "from config"


def test_run_rejects_bad_interval(source_root: Path, replica_root: Path):
    result = runner.invoke(
        app, ["run", "-s", str(source_root), "-r", str(replica_root), "-i", "0"]
    )
    assert result.exit_code == 2
    assert "--interval" in result.output


# ── foldsync tree ────────────────────────────────────────────────────


def test_tree_renders(source_root: Path):
    write_tree(source_root, {"docs": {"guide.md": "guide"}, "a.txt": "a"})
    result = runner.invoke(app, ["tree", str(source_root)])
    assert result.exit_code == 0
    assert "guide.md" in result.output
    assert "a.txt" in result.output
    assert hashlib.sha256(b"a").hexdigest()[:12] in result.output
    assert "4 nodes" in result.output


def test_tree_json(source_root: Path):
    write_tree(source_root, {"a.txt": "a"})
    result = runner.invoke(app, ["tree", str(source_root), "--json"])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["algorithm"] == "sha256"
    assert data["tree"]["children"][0]["hash"] == hashlib.sha256(b"a").hexdigest()


def test_tree_missing_path(tmp_path: Path):
    result = runner.invoke(app, ["tree", str(tmp_path / "missing")])
    assert result.exit_code == 1
    assert "unavailable" in result.output


# ── foldsync config ──────────────────────────────────────────────────


def test_config_init_creates_file(_isolated: Path):
    result = runner.invoke(app, ["config", "init"])
    assert result.exit_code == 0
    assert "interval_ms" in (_isolated / "foldsync.yaml").read_text()


def test_config_init_refuses_overwrite(_isolated: Path):
    (_isolated / "foldsync.yaml").write_text("log_level: debug\n")
    result = runner.invoke(app, ["config", "init"])
    assert result.exit_code == 1
    assert "already exists" in result.output

    forced = runner.invoke(app, ["config", "init", "--force"])
    assert forced.exit_code == 0
    assert "interval_ms" in (_isolated / "foldsync.yaml").read_text()


def test_config_show(tmp_path: Path):
    cfg_file = tmp_path / "custom.yaml"
    cfg_file.write_text("sync:\n  interval_ms: 321\n")
    result = runner.invoke(app, ["--config", str(cfg_file), "config", "show"])
    assert result.exit_code == 0
    assert "321" in result.output


def test_invalid_config_file(tmp_path: Path):
    cfg_file = tmp_path / "broken.yaml"
    cfg_file.write_text("sync: [oops\n")
    result = runner.invoke(app, ["-c", str(cfg_file), "config", "show"])
    assert result.exit_code == 1
    assert "Invalid YAML" in result.output
