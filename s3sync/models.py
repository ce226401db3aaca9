from __future__ import annotations
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, Iterator, Optional, Tuple


class SyncState(str, Enum):
    LISTING = "listing"
    DIFFING = "diffing"
    COPYING = "copying"
    DELETING = "deleting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Scope:
    """A (bucket, prefix) pair naming one logical directory."""

    bucket: str
    prefix: str = ""

    def key_for(self, relative_key: str) -> str:
        return f"{self.prefix}{relative_key}" if self.prefix else relative_key

    def relative(self, key: str) -> str:
        if self.prefix and key.startswith(self.prefix):
            return key[len(self.prefix):]
        return key

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.prefix}"


@dataclass(frozen=True)
class ObjectRecord:
    relative_key: str
    size: int = 0
    fingerprint: Optional[str] = None
    last_modified: Optional[datetime] = None

    @property
    def is_dir_marker(self) -> bool:
        return self.relative_key.endswith("/") and self.size == 0

    @property
    def has_simple_fingerprint(self) -> bool:
        # multipart ETags look like "<md5>-<parts>" and are not content hashes
        return bool(self.fingerprint) and "-" not in self.fingerprint


class DirectorySnapshot(Mapping):
    """
    Read-only, key-ordered view of every object under one scope.
    Mapping of relative key -> ObjectRecord.
    """

    __slots__ = ("_scope", "_records")

    def __init__(self, scope: Scope, records: Iterable[ObjectRecord] = ()):
        by_key: Dict[str, ObjectRecord] = {}
        for rec in records:
            by_key[rec.relative_key] = rec
        self._scope = scope
        self._records = {k: by_key[k] for k in sorted(by_key)}

    @property
    def scope(self) -> Scope:
        return self._scope

    @property
    def total_bytes(self) -> int:
        return sum(r.size for r in self._records.values())

    def __getitem__(self, key: str) -> ObjectRecord:
        return self._records[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"DirectorySnapshot({self._scope}, {len(self)} objects)"


@dataclass(frozen=True)
class DiffResult:
    to_copy: Tuple[ObjectRecord, ...] = ()
    to_delete: Tuple[ObjectRecord, ...] = ()

    @property
    def copy_bytes(self) -> int:
        return sum(r.size for r in self.to_copy)

    @property
    def delete_bytes(self) -> int:
        return sum(r.size for r in self.to_delete)

    @property
    def is_empty(self) -> bool:
        return not self.to_copy and not self.to_delete


@dataclass(frozen=True)
class SyncFailure:
    key: str
    operation: str  # "copy" | "delete"
    cause: str

    def __str__(self) -> str:
        return f"{self.operation} {self.key}: {self.cause}"


@dataclass(frozen=True)
class SyncSummary:
    count_add: int = 0
    bytes_add: int = 0
    count_remove: int = 0
    bytes_remove: int = 0
    failures: Tuple[SyncFailure, ...] = ()
    state: SyncState = SyncState.DONE
    cancelled: bool = False
    dry_run: bool = False
    stats: Dict[str, object] = field(default_factory=dict, compare=False)

    @property
    def ok(self) -> bool:
        return not self.failures

    def merge(self, other: "SyncSummary") -> "SyncSummary":
        """Combine two partial summaries; order of merging does not matter for totals."""
        return SyncSummary(
            count_add=self.count_add + other.count_add,
            bytes_add=self.bytes_add + other.bytes_add,
            count_remove=self.count_remove + other.count_remove,
            bytes_remove=self.bytes_remove + other.bytes_remove,
            failures=tuple(sorted(self.failures + other.failures, key=lambda f: (f.operation, f.key))),
            state=self.state,
            cancelled=self.cancelled or other.cancelled,
            dry_run=self.dry_run and other.dry_run,
            stats={**self.stats, **other.stats},
        )
