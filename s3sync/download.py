from __future__ import annotations
from typing import List, Optional, Tuple, Dict, Any
from pathlib import Path
from concurrent.futures import ThreadPoolExecutor, as_completed

from tqdm import tqdm

from .core import list_all
from .errors import S3DownloadError, get_logger
from .models import ObjectRecord, Scope
from .utils import ensure_dir, set_mtime

log = get_logger(__name__)


def download_file(
    s3_client,
    bucket: str,
    key: str,
    dst_path: str | Path,
    overwrite: bool = True,
) -> Path:
    dst = Path(dst_path)
    if dst.exists() and not overwrite:
        return dst
    ensure_dir(dst.parent)
    try:
        s3_client.download_file(bucket, key, str(dst))
    except Exception as e:
        raise S3DownloadError(f"s3://{bucket}/{key}: {e}") from e
    return dst


def _local_target(root: Path, relative_key: str, prefix: str) -> Optional[Path]:
    """
    Map a relative key under root. Returns None for keys that would land
    outside root (absolute after prefix stripping, or climbing with "..").
    """
    rel = relative_key.lstrip("/") or Path(prefix.rstrip("/")).name
    target = (root / rel).resolve()
    try:
        target.relative_to(root.resolve())
    except ValueError:
        return None
    if target == root.resolve():
        return None
    return target


def download_scope(
    s3_client,
    bucket: str,
    prefix: str = "",
    dst_root: str | Path = ".",
    overwrite: bool = True,
    max_workers: int = 8,
    progress: bool = False,
    preserve_mtime: bool = False,
) -> Dict[str, Any]:
    """
    Download every object under (bucket, prefix) into dst_root, keeping the
    layout below the prefix. Zero-byte objects are folder placeholders and
    are skipped.
    """
    scope = Scope(bucket, prefix)
    snapshot = list_all(s3_client, bucket, prefix)
    dst_root = Path(dst_root)

    downloaded: List[Tuple[str, str]] = []
    errors: List[str] = []
    pairs: List[Tuple[ObjectRecord, Path]] = []
    for rec in snapshot.values():
        if rec.size <= 0:
            continue
        target = _local_target(dst_root, rec.relative_key, prefix)
        if target is None:
            key = scope.key_for(rec.relative_key)
            log.warning("Skipping %s: resolves outside %s", key, dst_root)
            errors.append(f"s3://{bucket}/{key}: resolves outside {dst_root}")
            continue
        pairs.append((rec, target))
    markers = sum(1 for rec in snapshot.values() if rec.size <= 0)
    bar = tqdm(total=len(pairs), desc="Download", unit="obj") if progress and pairs else None

    def _do(pair: Tuple[ObjectRecord, Path]) -> Tuple[str, Path]:
        rec, dst = pair
        key = scope.key_for(rec.relative_key)
        p = download_file(s3_client, bucket, key, dst, overwrite=overwrite)
        if preserve_mtime and rec.last_modified:
            set_mtime(p, rec.last_modified)
        return key, p

    with ThreadPoolExecutor(max_workers=max_workers) as ex:
        futs = [ex.submit(_do, p) for p in pairs]
        for f in as_completed(futs):
            try:
                key, p = f.result()
                downloaded.append((key, str(p)))
            except Exception as e:
                log.warning("Download failed: %s", e)
                errors.append(str(e))
            finally:
                if bar:
                    bar.update(1)

    if bar:
        bar.close()

    downloaded.sort()
    return {
        "downloaded": downloaded,
        "errors": errors,
        "stats": {
            "bucket": bucket,
            "prefix": prefix,
            "dst_root": str(dst_root),
            "total": len(pairs),
            "skipped_markers": markers,
            "bytes": sum(rec.size for rec, _ in pairs),
        },
    }
