from pydantic import BaseModel, Field
from typing import Literal


class SyncSettings(BaseModel):
    interval_ms: int = Field(default=1000, gt=0)
    max_concurrency: int = Field(default=16, gt=0)
    chunk_size: int = Field(default=65536, gt=0)
    deferred_add_limit: int = Field(default=1000, ge=0)


class WatchSettings(BaseModel):
    enabled: bool = True
    max_pending_events: int = Field(default=10000, gt=0)


class FoldSyncConfig(BaseModel):
    source_root: str | None = None
    replica_root: str | None = None
    sync: SyncSettings = Field(default_factory=SyncSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)
    log_level: Literal["debug", "info", "warn", "error"] = "info"
    log_format: Literal["text", "json"] = "text"
    log_file: str | None = None
