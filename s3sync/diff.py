from __future__ import annotations
from typing import List, Optional

from .models import DiffResult, DirectorySnapshot, ObjectRecord


def needs_copy(src: ObjectRecord, dst: Optional[ObjectRecord]) -> bool:
    """
    Decide whether src must be copied over dst.

    Directory markers only ever compare by presence. Plain content hashes are
    compared when both sides have one; otherwise (multipart ETags, missing
    ETags) size is used as an approximation.
    """
    if dst is None:
        return True
    if src.is_dir_marker and dst.is_dir_marker:
        return False
    if src.has_simple_fingerprint and dst.has_simple_fingerprint:
        return src.fingerprint != dst.fingerprint
    return src.size != dst.size


def diff_snapshots(
    source: DirectorySnapshot,
    dest: DirectorySnapshot,
    delete_extra: bool = False,
) -> DiffResult:
    """
    Reduce two snapshots to the records to copy (from source) and, when
    delete_extra is set, the records to delete (from dest).
    """
    to_copy: List[ObjectRecord] = [
        rec for key, rec in source.items() if needs_copy(rec, dest.get(key))
    ]
    to_delete: List[ObjectRecord] = []
    if delete_extra:
        to_delete = [rec for key, rec in dest.items() if key not in source]
    return DiffResult(to_copy=tuple(to_copy), to_delete=tuple(to_delete))
