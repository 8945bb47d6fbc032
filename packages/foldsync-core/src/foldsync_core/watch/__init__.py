"""Change notifications: typed events, the drainable buffer, the watchdog adapter."""

from foldsync_core.watch.models import ChangeBatch, ChangeEvent, ChangeKind
from foldsync_core.watch.source import ChangeSource, coalesce
from foldsync_core.watch.watcher import WatchdogChangeSource

__all__ = [
    "ChangeBatch",
    "ChangeEvent",
    "ChangeKind",
    "ChangeSource",
    "WatchdogChangeSource",
    "coalesce",
]
