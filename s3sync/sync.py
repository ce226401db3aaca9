from __future__ import annotations
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from .aggregate import aggregate
from .config import SyncOptions
from .core import list_all
from .diff import diff_snapshots
from .errors import InvalidScopeError, SyncError, get_logger
from .models import Scope, SyncState, SyncSummary
from .reconcile import Reconciler

log = get_logger(__name__)


def _validate_scopes(src: Scope, dest: Scope) -> None:
    if not src.bucket or not dest.bucket:
        raise InvalidScopeError("source and destination buckets are required")
    if src.bucket == dest.bucket and (
        src.prefix.startswith(dest.prefix) or dest.prefix.startswith(src.prefix)
    ):
        raise InvalidScopeError(f"source {src} and destination {dest} overlap")


def sync_prefix(
    s3_client,
    source_bucket: str,
    source_prefix: str,
    dest_bucket: str,
    dest_prefix: str,
    delete_extra: bool = False,
    options: Optional[SyncOptions] = None,
    stop_event: Optional[threading.Event] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> SyncSummary:
    """
    Make dest_bucket/dest_prefix mirror source_bucket/source_prefix.

    New or changed source objects are copied server-side; with delete_extra,
    objects that only exist under the destination prefix are removed.
    Per-object failures are reported in the summary. Errors that prevent a
    snapshot (bad bucket, access denied on listing) raise SyncError.
    """
    options = options or SyncOptions()
    src = Scope(source_bucket, source_prefix or "")
    dest = Scope(dest_bucket, dest_prefix or "")
    started = time.monotonic()
    state = SyncState.LISTING

    try:
        _validate_scopes(src, dest)
        log.info("Sync %s -> %s (delete_extra=%s, dry_run=%s)", src, dest, delete_extra, options.dry_run)

        # source and destination listings are independent
        with ThreadPoolExecutor(max_workers=2) as ex:
            f_src = ex.submit(list_all, s3_client, src.bucket, src.prefix, options.page_size)
            f_dst = ex.submit(list_all, s3_client, dest.bucket, dest.prefix, options.page_size)
            src_snap = f_src.result()
            dst_snap = f_dst.result()

        state = SyncState.DIFFING
        diff = diff_snapshots(src_snap, dst_snap, delete_extra=delete_extra)
        log.info(
            "Diff: %d to copy (%d bytes), %d to delete (%d bytes)",
            len(diff.to_copy), diff.copy_bytes, len(diff.to_delete), diff.delete_bytes,
        )
    except SyncError:
        log.error("Sync %s -> %s failed during %s", src, dest, state.value)
        raise

    result = Reconciler(s3_client, options, sleep=sleep).reconcile(src, dest, diff, stop_event=stop_event)

    summary = aggregate(
        result.copied,
        result.deleted,
        result.failures,
        state=SyncState.DONE,
        cancelled=result.cancelled,
        dry_run=options.dry_run,
        stats={
            "source": str(src),
            "dest": str(dest),
            "total_src": len(src_snap),
            "total_dst": len(dst_snap),
            "to_copy": len(diff.to_copy),
            "to_delete": len(diff.to_delete),
            "elapsed": round(time.monotonic() - started, 3),
        },
    )
    log.info(
        "Sync done: +%d (%d bytes) -%d (%d bytes), %d failures%s",
        summary.count_add, summary.bytes_add, summary.count_remove, summary.bytes_remove,
        len(summary.failures), " [cancelled]" if summary.cancelled else "",
    )
    return summary
