from __future__ import annotations
from typing import Iterable, Iterator, Tuple, Dict, Any
from pathlib import Path
import re
import yaml
import os
from datetime import datetime, timezone


def ensure_dir(path: Path | str) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def set_mtime(path: Path | str, dt: datetime) -> None:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    ts = int(dt.timestamp())
    os.utime(path, times=(ts, ts))


def read_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


_S3_URI_RE = re.compile(r"^s3://[a-zA-Z0-9.\-_]+(/.*)?$")

def is_s3_uri(uri: str) -> bool:
    return bool(_S3_URI_RE.match(uri))


def parse_s3_uri(uri: str) -> Tuple[str, str]:
    """'s3://bucket/some/prefix/' -> ('bucket', 'some/prefix/'); the prefix may be empty."""
    if not is_s3_uri(uri):
        raise ValueError(f"Invalid S3 URI: {uri}")
    rest = uri.replace("s3://", "", 1)
    bucket, _, key = rest.partition("/")
    return bucket, key


def chunked(seq: Iterable[Any], size: int) -> Iterator[list[Any]]:
    if size <= 0:
        raise ValueError("size must be > 0")
    batch: list[Any] = []
    for item in seq:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def human_bytes(n: int) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    s = float(n)
    for u in units:
        if s < 1024 or u == units[-1]:
            return f"{s:.1f} {u}"
        s /= 1024.0
