from __future__ import annotations
from dataclasses import replace
from functools import reduce
from typing import Iterable

from .models import ObjectRecord, SyncFailure, SyncSummary


def summarize_copied(records: Iterable[ObjectRecord]) -> SyncSummary:
    records = list(records)
    return SyncSummary(count_add=len(records), bytes_add=sum(r.size for r in records))


def summarize_deleted(records: Iterable[ObjectRecord]) -> SyncSummary:
    records = list(records)
    return SyncSummary(count_remove=len(records), bytes_remove=sum(r.size for r in records))


def aggregate(
    copied: Iterable[ObjectRecord],
    deleted: Iterable[ObjectRecord],
    failures: Iterable[SyncFailure],
    **extra,
) -> SyncSummary:
    """
    Fold successful copies/deletes into counts and bytes. Failed objects never
    reach here, so their bytes are excluded; failures are carried through.
    Extra keyword arguments (state, cancelled, dry_run, stats) are set on the result.
    """
    failures = tuple(failures)
    parts = [
        summarize_copied(copied),
        summarize_deleted(deleted),
        SyncSummary(failures=failures),
    ]
    total = reduce(SyncSummary.merge, parts, SyncSummary())
    # merge sorts failures; hand back the caller's order
    return replace(total, failures=failures, **extra)
