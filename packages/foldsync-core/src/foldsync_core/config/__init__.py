from foldsync_core.config.loader import DEFAULT_CONFIG_TEMPLATE, load_config, validate_roots
from foldsync_core.config.models import FoldSyncConfig, SyncSettings, WatchSettings

__all__ = [
    "DEFAULT_CONFIG_TEMPLATE",
    "FoldSyncConfig",
    "SyncSettings",
    "WatchSettings",
    "load_config",
    "validate_roots",
]
