"""Locate, read and validate foldsync.yaml."""

import os
import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from foldsync_core.errors import InvalidRootsError

from .models import FoldSyncConfig

CONFIG_FILENAME = "foldsync.yaml"

_ENV_REF = re.compile(r"\$\{(\w+)\}")


def config_search_path(cli_path: str | None = None) -> list[Path]:
    """Candidate config files, highest precedence first."""
    candidates = [Path(CONFIG_FILENAME), Path.home() / ".foldsync" / "config.yaml"]
    if cli_path:
        candidates.insert(0, Path(cli_path).expanduser())
    return candidates


def load_config(cli_path: str | None = None) -> FoldSyncConfig:
    """Return the first non-empty config on the search path, or the defaults.

    A *cli_path* that does not exist is an error rather than a silent
    fall-through. Relative roots in a file resolve against that file's
    directory, so a config can travel with the folders it names.
    """
    if cli_path and not Path(cli_path).expanduser().is_file():
        raise ValueError(f"Config file not found: {cli_path}")

    for path in config_search_path(cli_path):
        if not path.is_file():
            continue
        raw = _read_yaml(path)
        if raw is None:
            continue
        try:
            cfg = FoldSyncConfig(**_expand_env_vars(raw))
        except ValidationError as e:
            raise ValueError(f"Invalid config in {path}: {e}") from e
        return _anchor_roots(cfg, path.resolve().parent)

    return FoldSyncConfig()


def _read_yaml(path: Path) -> object:
    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    if raw is not None and not isinstance(raw, dict):
        raise ValueError(f"Invalid config in {path}: expected a mapping at the top level")
    return raw


def _expand_env_vars(obj: object) -> object:
    """Expand ${VAR} in every string, unset variables becoming empty."""
    if isinstance(obj, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), obj)
    if isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


def _anchor_roots(cfg: FoldSyncConfig, base: Path) -> FoldSyncConfig:
    updates = {}
    for field in ("source_root", "replica_root"):
        value = getattr(cfg, field)
        if value and not Path(value).expanduser().is_absolute():
            updates[field] = str(base / value)
    return cfg.model_copy(update=updates) if updates else cfg


def validate_roots(source: str | Path, replica: str | Path) -> tuple[Path, Path]:
    """Resolve both roots and check they can be synchronized.

    Both must be existing directories, distinct, and neither may contain
    the other.
    """
    src = Path(source).expanduser().resolve()
    rep = Path(replica).expanduser().resolve()
    for label, path in (("source", src), ("replica", rep)):
        if not path.is_dir():
            raise InvalidRootsError(f"{label} root is not an existing directory: {path}")
    if src == rep:
        raise InvalidRootsError(f"source and replica are the same directory: {src}")
    if src in rep.parents:
        raise InvalidRootsError(f"replica {rep} is inside source {src}")
    if rep in src.parents:
        raise InvalidRootsError(f"source {src} is inside replica {rep}")
    return src, rep


# Default YAML template for `foldsync config init`
DEFAULT_CONFIG_TEMPLATE = """\
# foldsync.yaml

# Roots (the --source/--replica flags override these)
# source_root: "${HOME}/Documents"
# replica_root: "/mnt/backup/Documents"

# Synchronization
sync:
  interval_ms: 1000            # time between reconciliation cycles
  max_concurrency: 16          # concurrent filesystem tasks
  chunk_size: 65536            # bytes per streamed read/copy
  deferred_add_limit: 1000     # adds parked until their parent is indexed

# Change notifications
watch:
  enabled: true
  max_pending_events: 10000    # beyond this the tree is rebuilt from disk

# Logging
log_level: "info"              # debug | info | warn | error
log_format: "text"             # text | json
# log_file: "foldsync.log"
"""
