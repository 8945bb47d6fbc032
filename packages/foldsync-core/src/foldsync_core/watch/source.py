"""Thread-safe change buffer that drains into ChangeBatch snapshots."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from foldsync_core.merkle.hashing import normalize_address
from foldsync_core.watch.models import ChangeBatch, ChangeEvent, ChangeKind

logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING = 10_000


def _within(path: str, base: str) -> bool:
    return path == base or path.startswith(base + os.sep)


def _rebase(paths: dict[str, None], old: str, new: str) -> None:
    """Re-key pending entries at or below *old* so they sit under *new*."""
    for path in [p for p in paths if _within(p, old)]:
        del paths[path]
        paths[new + path[len(old):]] = None


def coalesce(events: list[ChangeEvent], root: str) -> ChangeBatch:
    """Fold a run of events into one batch.

    Events on *root* itself are dropped, as are directory "modified"
    events (a directory hash is derived from its children). Rename chains
    ``a -> b``, ``b -> c`` collapse to ``a -> c``. Pending adds and updates
    follow a later move of their path. Deleting a rename target cancels
    the rename and deletes its origin instead.
    """
    added: dict[str, None] = {}
    deleted: dict[str, None] = {}
    updated: dict[str, None] = {}
    renamed: dict[str, str] = {}

    for event in events:
        path = normalize_address(event.path)
        if path == root:
            continue
        if event.kind is ChangeKind.created:
            added[path] = None
        elif event.kind is ChangeKind.deleted:
            updated.pop(path, None)
            origin = next((old for old, new in renamed.items() if _within(path, new)), None)
            if origin is None:
                deleted[path] = None
            elif path == renamed[origin]:
                del renamed[origin]
                deleted[origin] = None
                # The target may have replaced an indexed entry
                deleted[path] = None
            else:
                # Deletes run before renames, so name the entry by its old path
                deleted[origin + path[len(renamed[origin]):]] = None
        elif event.kind is ChangeKind.modified:
            if not event.is_directory:
                updated[path] = None
        elif event.kind is ChangeKind.moved:
            dest = normalize_address(event.dest)
            if dest == root:
                continue
            _rebase(added, path, dest)
            _rebase(updated, path, dest)
            origin = next((old for old, new in renamed.items() if new == path), path)
            renamed.pop(origin, None)
            if origin != dest:
                renamed[origin] = dest

    return ChangeBatch(
        added=list(added),
        deleted=list(deleted),
        updated=list(updated),
        renamed=renamed,
    )


class ChangeSource:
    """Buffers change events for one watched root until the next drain.

    ``record`` may be called from any thread (watchdog delivers on its own
    observer thread). When more than *max_pending* events pile up the
    buffer is discarded and the next drain reports an overflow.
    """

    def __init__(self, root: str | Path, max_pending: int = DEFAULT_MAX_PENDING) -> None:
        self.root = normalize_address(root)
        self.max_pending = max_pending
        self._lock = threading.Lock()
        self._events: list[ChangeEvent] = []
        self._overflowed = False

    @property
    def pending(self) -> int:
        """Number of buffered events."""
        with self._lock:
            return len(self._events)

    @property
    def overflowed(self) -> bool:
        with self._lock:
            return self._overflowed

    def record(self, event: ChangeEvent) -> None:
        with self._lock:
            if self._overflowed:
                return
            if len(self._events) >= self.max_pending:
                self._overflowed = True
                self._events.clear()
                logger.warning(
                    "Change buffer for %s exceeded %d events; a rebuild will follow",
                    self.root,
                    self.max_pending,
                )
                return
            self._events.append(event)

    def signal_overflow(self, reason: str) -> None:
        """Mark the buffered history as lost."""
        with self._lock:
            self._overflowed = True
            self._events.clear()
        logger.warning("Change notifications lost for %s: %s", self.root, reason)

    def drain(self) -> ChangeBatch:
        """Return everything since the last drain and reset the buffer."""
        with self._lock:
            events, self._events = self._events, []
            overflowed, self._overflowed = self._overflowed, False
        if overflowed:
            return ChangeBatch(overflowed=True)
        return coalesce(events, self.root)
