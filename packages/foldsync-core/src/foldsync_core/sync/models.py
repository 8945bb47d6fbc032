"""Report models for a synchronization cycle."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class SyncAction(str, Enum):
    """Kinds of mutating filesystem actions, one log event each."""

    file_copied = "file_copied"
    file_updated = "file_updated"
    directory_created = "directory_created"
    file_deleted = "file_deleted"
    directory_deleted = "directory_deleted"
    rename_applied = "rename_applied"


class SyncError(BaseModel):
    path: str
    error: str


class SyncReport(BaseModel):
    """What one cycle did to the replica."""

    copied: int = 0
    updated: int = 0
    created_dirs: int = 0
    deleted: int = 0
    renamed: int = 0
    rebuilt: list[str] = Field(default_factory=list)
    errors: list[SyncError] = Field(default_factory=list)
    duration: float = 0.0
    root_hashes_equal: bool = False

    @property
    def operations(self) -> int:
        """Copy, delete and rename operations issued on the replica."""
        return self.copied + self.updated + self.created_dirs + self.deleted + self.renamed

    def merge(self, other: SyncReport) -> None:
        self.copied += other.copied
        self.updated += other.updated
        self.created_dirs += other.created_dirs
        self.deleted += other.deleted
        self.renamed += other.renamed
        self.rebuilt.extend(other.rebuilt)
        self.errors.extend(other.errors)
