"""watchdog-backed change source for a directory tree."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from foldsync_core.watch.models import ChangeBatch, ChangeEvent, ChangeKind
from foldsync_core.watch.source import DEFAULT_MAX_PENDING, ChangeSource

logger = logging.getLogger(__name__)

_KINDS = {
    "created": ChangeKind.created,
    "deleted": ChangeKind.deleted,
    "modified": ChangeKind.modified,
    "moved": ChangeKind.moved,
}


class _RecordingHandler(FileSystemEventHandler):
    """Translates watchdog events into ChangeEvents on a ChangeSource."""

    def __init__(self, source: ChangeSource) -> None:
        super().__init__()
        self._source = source

    def on_any_event(self, event: FileSystemEvent) -> None:
        kind = _KINDS.get(event.event_type)
        if kind is None:
            # opened/closed notifications carry no structural change
            return
        dest = getattr(event, "dest_path", "") or None
        try:
            self._source.record(
                ChangeEvent(
                    kind=kind,
                    path=os.fsdecode(event.src_path),
                    dest=os.fsdecode(dest) if dest else None,
                    is_directory=event.is_directory,
                )
            )
        except ValueError:
            logger.exception("Malformed watcher event for %s", event.src_path)


class WatchdogChangeSource(ChangeSource):
    """Watches a root recursively and buffers its change notifications."""

    def __init__(self, root: str | Path, max_pending: int = DEFAULT_MAX_PENDING) -> None:
        super().__init__(root, max_pending=max_pending)
        self._observer: Observer | None = None
        self._handler = _RecordingHandler(self)

    @property
    def running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> None:
        """Begin watching the root recursively."""
        if self._observer is not None:
            return
        self._observer = Observer()
        self._observer.schedule(self._handler, self.root, recursive=True)
        self._observer.start()
        logger.info("Watching %s for changes", self.root)

    def stop(self) -> None:
        """Stop watching and clean up."""
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
        logger.info("Stopped watching %s", self.root)

    def drain(self) -> ChangeBatch:
        if self._observer is not None and not self._observer.is_alive():
            # The emitter thread died; whatever it saw since is gone
            self.signal_overflow("observer thread stopped")
            self._observer = None
            self.start()
        return super().drain()
