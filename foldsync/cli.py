"""CLI entry point for foldsync."""

from __future__ import annotations

import asyncio
import json
import signal
from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich import print as rprint
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.tree import Tree

from foldsync_core.config import FoldSyncConfig, load_config, validate_roots
from foldsync_core.config.loader import DEFAULT_CONFIG_TEMPLATE
from foldsync_core.errors import FoldSyncError
from foldsync_core.logsetup import configure_logging
from foldsync_core.merkle import HashNode, TreeBuilder
from foldsync_core.sync import SyncReport, SyncSession

app = typer.Typer(
    name="foldsync",
    help="One-way folder synchronization driven by Merkle hash trees.",
)

config_app = typer.Typer(help="Manage foldsync configuration.")
app.add_typer(config_app, name="config")

# Global state
_config: FoldSyncConfig | None = None


def _get_config() -> FoldSyncConfig:
    if _config is None:
        return load_config()
    return _config


@app.callback()
def main(
    config: Annotated[
        str | None, typer.Option("--config", "-c", help="Path to foldsync.yaml")
    ] = None,
) -> None:
    """Global options."""
    global _config
    try:
        _config = load_config(config)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _resolve_roots(cfg: FoldSyncConfig, source: str | None, replica: str | None) -> tuple[Path, Path]:
    source = source or cfg.source_root
    replica = replica or cfg.replica_root
    if not source or not replica:
        rprint("[red]Error:[/red] both --source and --replica are required (or set them in foldsync.yaml)")
        raise typer.Exit(2)
    try:
        return validate_roots(source, replica)
    except FoldSyncError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)


def _apply_overrides(
    cfg: FoldSyncConfig,
    interval: int | None,
    log_file: str | None,
    no_watch: bool = False,
) -> FoldSyncConfig:
    cfg = cfg.model_copy(deep=True)
    if interval is not None:
        if interval <= 0:
            rprint("[red]Error:[/red] --interval must be a positive number of milliseconds")
            raise typer.Exit(2)
        cfg.sync.interval_ms = interval
    if log_file is not None:
        cfg.log_file = log_file
    if no_watch:
        cfg.watch.enabled = False
    return cfg


def _display_report(report: SyncReport) -> None:
    table = Table(title="Sync report")
    table.add_column("Action", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Files copied", str(report.copied))
    table.add_row("Files updated", str(report.updated))
    table.add_row("Directories created", str(report.created_dirs))
    table.add_row("Entries deleted", str(report.deleted))
    table.add_row("Renames applied", str(report.renamed))
    table.add_row("Errors", str(len(report.errors)))
    rprint(table)
    for err in report.errors:
        rprint(f"  [red]✗[/red] {err.path}: {err.error}")
    status = "[green]in sync[/green]" if report.root_hashes_equal else "[yellow]not yet in sync[/yellow]"
    rprint(f"Root hashes: {status} ({report.duration:.3f}s)")


# ---------------------------------------------------------------------------
# Sync commands
# ---------------------------------------------------------------------------


@app.command()
def run(
    source: str | None = typer.Option(None, "--source", "-s", help="Directory to mirror from"),
    replica: str | None = typer.Option(None, "--replica", "-r", help="Directory to mirror into"),
    interval: int | None = typer.Option(None, "--interval", "-i", help="Milliseconds between cycles"),
    log_file: str | None = typer.Option(None, "--log-file", "-l", help="Also append logs to this file"),
) -> None:
    """Keep REPLICA in sync with SOURCE until interrupted."""
    cfg = _apply_overrides(_get_config(), interval, log_file)
    src, rep = _resolve_roots(cfg, source, replica)
    configure_logging(cfg.log_level, cfg.log_format, cfg.log_file)

    rprint(f"[bold]Syncing[/bold] {src} -> {rep} every {cfg.sync.interval_ms}ms (Ctrl+C to stop)")
    try:
        asyncio.run(_run_session(src, rep, cfg))
    except FoldSyncError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    rprint("[green]Stopped.[/green]")


async def _run_session(source: Path, replica: Path, cfg: FoldSyncConfig) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # No signal handlers outside the main thread or on Windows
            pass

    session = SyncSession(source, replica, cfg)
    try:
        await session.run(stop_event)
    finally:
        session.stop()


@app.command()
def once(
    source: str | None = typer.Option(None, "--source", "-s", help="Directory to mirror from"),
    replica: str | None = typer.Option(None, "--replica", "-r", help="Directory to mirror into"),
    log_file: str | None = typer.Option(None, "--log-file", "-l", help="Also append logs to this file"),
) -> None:
    """Run a single full reconciliation and print what changed."""
    cfg = _apply_overrides(_get_config(), None, log_file, no_watch=True)
    src, rep = _resolve_roots(cfg, source, replica)
    configure_logging(cfg.log_level, cfg.log_format, cfg.log_file)

    session = SyncSession(src, rep, cfg)
    try:
        report = asyncio.run(session.start())
    except FoldSyncError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    finally:
        session.stop()

    _display_report(report)
    if report.errors:
        raise typer.Exit(1)


@app.command()
def tree(
    path: Path = typer.Argument(..., help="Directory to hash"),
    as_json: bool = typer.Option(False, "--json", help="Dump the tree as JSON"),
) -> None:
    """Build the hash tree for PATH and print it."""
    cfg = _get_config()
    builder = TreeBuilder(max_concurrency=cfg.sync.max_concurrency, chunk_size=cfg.sync.chunk_size)
    try:
        hash_tree = asyncio.run(builder.build(path))
    except FoldSyncError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps(hash_tree.to_dict(), indent=2))
        return

    rich_tree = Tree(f"[bold]{hash_tree.root_path}[/bold] [dim]{hash_tree.root_hash[:12]}[/dim]")
    _add_children(rich_tree, hash_tree.root)
    rprint(rich_tree)
    rprint(f"[dim]{len(hash_tree)} nodes[/dim]")


def _add_children(branch: Tree, node: HashNode) -> None:
    for name in sorted(node.children):
        child = node.children[name]
        if child.is_dir:
            sub = branch.add(f"[blue]{name}/[/blue] [dim]{child.hash[:12]}[/dim]")
            _add_children(sub, child)
        else:
            branch.add(f"[green]{name}[/green] [dim]{child.hash[:12]}[/dim]")


# ---------------------------------------------------------------------------
# Config commands
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show() -> None:
    """Show current resolved configuration."""
    cfg = _get_config()
    rprint(Syntax(yaml.dump(cfg.model_dump(), default_flow_style=False), "yaml"))


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config"),
) -> None:
    """Create default foldsync.yaml in current directory."""
    target = Path("foldsync.yaml")
    if target.exists() and not force:
        rprint("[yellow]foldsync.yaml already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    target.write_text(DEFAULT_CONFIG_TEMPLATE)
    rprint(Panel(f"[green]Created[/green] {target}", border_style="green"))
