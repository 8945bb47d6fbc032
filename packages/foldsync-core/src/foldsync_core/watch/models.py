"""Typed change notifications and the batches drained from a change source."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ChangeKind(str, Enum):
    created = "created"
    deleted = "deleted"
    modified = "modified"
    moved = "moved"


@dataclass(frozen=True)
class ChangeEvent:
    """One filesystem notification for a path under a watched root."""

    kind: ChangeKind
    path: str
    dest: str | None = None
    is_directory: bool = False

    def __post_init__(self) -> None:
        if self.kind is ChangeKind.moved and not self.dest:
            raise ValueError("moved events need a dest path")


@dataclass
class ChangeBatch:
    """Everything observed on one root since the previous drain.

    Lists keep arrival order with duplicates removed. ``overflowed`` means
    events were dropped and the batch cannot be trusted; the consumer
    rebuilds the tree instead of applying it.
    """

    added: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    renamed: dict[str, str] = field(default_factory=dict)
    overflowed: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.deleted or self.updated or self.renamed or self.overflowed)

    @property
    def total_changes(self) -> int:
        return len(self.added) + len(self.deleted) + len(self.updated) + len(self.renamed)
