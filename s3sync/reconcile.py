from __future__ import annotations
import functools
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from tqdm import tqdm

from .config import SyncOptions
from .errors import get_logger, is_transient
from .models import DiffResult, ObjectRecord, Scope, SyncFailure, SyncState
from .utils import chunked

log = get_logger(__name__)

_SKIPPED = object()

# (item, result, error) as seen by the join loop
Outcome = Tuple[Any, Any, Optional[BaseException]]


def call_with_retry(
    fn: Callable[[], Any],
    max_attempts: int = 5,
    backoff_base: float = 0.5,
    backoff_max: float = 20.0,
    sleep: Callable[[float], None] = time.sleep,
    describe: str = "request",
):
    """
    Call fn, retrying transient errors with exponential backoff.
    Non-transient errors, and the last transient one, propagate.
    """
    attempt = 1
    while True:
        try:
            return fn()
        except Exception as e:
            if attempt >= max_attempts or not is_transient(e):
                raise
            delay = min(backoff_max, backoff_base * (2 ** (attempt - 1)))
            log.warning("%s failed (attempt %d/%d): %s; retrying in %.2fs", describe, attempt, max_attempts, e, delay)
            sleep(delay)
            attempt += 1


@dataclass
class ReconcileResult:
    copied: List[ObjectRecord] = field(default_factory=list)
    deleted: List[ObjectRecord] = field(default_factory=list)
    failures: List[SyncFailure] = field(default_factory=list)
    cancelled: bool = False


class Reconciler:
    """
    Applies a DiffResult to the destination scope: server-side copies through a
    bounded pool, then batched deletes. Only the destination is ever written.
    """

    def __init__(self, s3_client, options: Optional[SyncOptions] = None, sleep: Callable[[float], None] = time.sleep):
        self.s3 = s3_client
        self.options = options or SyncOptions()
        self._sleep = sleep

    def _retry(self, fn: Callable[[], Any], describe: str):
        o = self.options
        return call_with_retry(
            fn,
            max_attempts=o.max_attempts,
            backoff_base=o.backoff_base,
            backoff_max=o.backoff_max,
            sleep=self._sleep,
            describe=describe,
        )

    def _run_pool(
        self,
        desc: str,
        items: Sequence[Any],
        work: Callable[[Any], Any],
        stop: threading.Event,
    ) -> List[Outcome]:
        """
        Run work(item) for every item on the worker pool and hand each outcome
        back to the calling thread. Once stop is set no new item starts; items
        already running are allowed to finish.
        """
        outcomes: List[Outcome] = []
        if not items:
            return outcomes

        def _guarded(item):
            if stop.is_set():
                return _SKIPPED
            return work(item)

        bar = tqdm(total=len(items), desc=desc, unit="obj") if self.options.progress else None
        seen = set()

        def _collect(f, item):
            seen.add(f)
            try:
                res = f.result()
            except Exception as e:
                outcomes.append((item, None, e))
            else:
                if res is not _SKIPPED:
                    outcomes.append((item, res, None))
            if bar:
                bar.update(1)

        with ThreadPoolExecutor(max_workers=self.options.max_workers) as ex:
            futs = {ex.submit(_guarded, it): it for it in items}
            try:
                for f in as_completed(futs):
                    _collect(f, futs[f])
            except KeyboardInterrupt:
                log.warning("%s interrupted; waiting for in-flight operations", desc)
                stop.set()
                for f in futs:
                    f.cancel()
                wait([f for f in futs if not f.cancelled()])
                for f, it in futs.items():
                    if f not in seen and not f.cancelled():
                        _collect(f, it)

        if bar:
            bar.close()
        return outcomes

    # ---------------- copy ----------------
    def _copy_one(self, src: Scope, dest: Scope, rec: ObjectRecord) -> ObjectRecord:
        src_key = src.key_for(rec.relative_key)
        dst_key = dest.key_for(rec.relative_key)
        kwargs: Dict[str, Any] = {}
        if self.options.copy_extra_args:
            kwargs["ExtraArgs"] = self.options.copy_extra_args
        self._retry(
            functools.partial(
                self.s3.copy,
                {"Bucket": src.bucket, "Key": src_key},
                dest.bucket,
                dst_key,
                **kwargs,
            ),
            describe=f"copy {src_key}",
        )
        log.debug("Copied s3://%s/%s -> s3://%s/%s", src.bucket, src_key, dest.bucket, dst_key)
        return rec

    def copy_phase(
        self,
        src: Scope,
        dest: Scope,
        records: Iterable[ObjectRecord],
        stop: Optional[threading.Event] = None,
    ) -> Tuple[List[ObjectRecord], List[SyncFailure]]:
        records = list(records)
        if self.options.dry_run:
            return records, []
        stop = stop or threading.Event()
        copied: List[ObjectRecord] = []
        failures: List[SyncFailure] = []
        for rec, _, err in self._run_pool("Copy", records, lambda r: self._copy_one(src, dest, r), stop):
            if err is None:
                copied.append(rec)
            else:
                log.warning("Copy failed for %s: %s", rec.relative_key, err)
                failures.append(SyncFailure(rec.relative_key, "copy", str(err)))
        return copied, failures

    # ---------------- delete ----------------
    def _delete_batch(self, dest: Scope, keys: List[str]) -> dict:
        return self._retry(
            functools.partial(
                self.s3.delete_objects,
                Bucket=dest.bucket,
                Delete={"Objects": [{"Key": k} for k in keys], "Quiet": False},
            ),
            describe=f"delete batch of {len(keys)} in {dest}",
        )

    def delete_phase(
        self,
        dest: Scope,
        records: Iterable[ObjectRecord],
        stop: Optional[threading.Event] = None,
    ) -> Tuple[List[ObjectRecord], List[SyncFailure]]:
        records = list(records)
        if self.options.dry_run:
            return records, []
        stop = stop or threading.Event()
        by_key = {dest.key_for(r.relative_key): r for r in records}
        batches = list(chunked(by_key, self.options.effective_delete_batch))

        deleted: List[ObjectRecord] = []
        failures: List[SyncFailure] = []
        for batch, resp, err in self._run_pool("Delete", batches, lambda b: self._delete_batch(dest, b), stop):
            if err is not None:
                log.warning("Delete batch of %d keys failed: %s", len(batch), err)
                failures.extend(SyncFailure(by_key[k].relative_key, "delete", str(err)) for k in batch)
                continue
            errored = set()
            for e in (resp or {}).get("Errors", []) or []:
                k = e.get("Key")
                if k not in by_key or e.get("Code") == "NoSuchKey":
                    continue
                errored.add(k)
                cause = f"{e.get('Code')} {e.get('Message')}".strip()
                log.warning("Delete failed for %s: %s", k, cause)
                failures.append(SyncFailure(by_key[k].relative_key, "delete", cause))
            # keys not reported as errors are gone, including ones already absent
            deleted.extend(by_key[k] for k in batch if k not in errored)
        return deleted, failures

    def reconcile(
        self,
        src: Scope,
        dest: Scope,
        diff: DiffResult,
        stop_event: Optional[threading.Event] = None,
    ) -> ReconcileResult:
        stop = stop_event or threading.Event()
        result = ReconcileResult()

        log.info("%s: copying %d objects into %s", SyncState.COPYING.value, len(diff.to_copy), dest)
        copied, failures = self.copy_phase(src, dest, diff.to_copy, stop)
        result.copied.extend(copied)
        result.failures.extend(failures)

        if diff.to_delete and not stop.is_set():
            log.info("%s: removing %d objects from %s", SyncState.DELETING.value, len(diff.to_delete), dest)
            deleted, failures = self.delete_phase(dest, diff.to_delete, stop)
            result.deleted.extend(deleted)
            result.failures.extend(failures)

        result.cancelled = stop.is_set()
        return result
