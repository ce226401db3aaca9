from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Iterator, List
import boto3
from botocore.config import Config

from .errors import ListingError, get_logger, log_and_reraise
from .models import DirectorySnapshot, ObjectRecord, Scope

log = get_logger(__name__)

# list_objects_v2 never returns more than this per page
MAX_PAGE_SIZE = 1000


def get_s3_client(
    aws_profile: Optional[str] = None,
    aws_access_key_id: Optional[str] = None,
    aws_secret_access_key: Optional[str] = None,
    region_name: Optional[str] = None,
    endpoint_url: Optional[str] = None,
    retries_max_attempts: int = 8,
    retries_mode: str = "standard",
    connect_timeout: int = 15,
    read_timeout: int = 180,
    max_pool_connections: int = 20,
):
    """
    Create a boto3 S3 client with retries and timeouts applied.
    Read timeout is generous because large server-side copies hold the connection.
    """
    cfg = Config(
        retries={"max_attempts": retries_max_attempts, "mode": retries_mode},
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        max_pool_connections=max_pool_connections,
    )
    if aws_profile:
        session = boto3.Session(profile_name=aws_profile, region_name=region_name)
    else:
        session = boto3.Session(
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
            region_name=region_name,
        )
    return session.client("s3", config=cfg, endpoint_url=endpoint_url)


@dataclass(frozen=True)
class ListPage:
    items: List[ObjectRecord]
    next_cursor: Optional[str]
    truncated: bool


def _record_from_listing(obj: dict, scope: Scope) -> ObjectRecord:
    etag = (obj.get("ETag") or "").strip('"')
    return ObjectRecord(
        relative_key=scope.relative(obj["Key"]),
        size=int(obj.get("Size") or 0),
        fingerprint=etag or None,
        last_modified=obj.get("LastModified"),
    )


def _clamp_page_size(size: int) -> int:
    return max(1, min(int(size), MAX_PAGE_SIZE))


def _page_records(page: dict, scope: Scope) -> List[ObjectRecord]:
    return [_record_from_listing(obj, scope) for obj in page.get("Contents", []) or [] if obj.get("Key")]


def list_page(
    s3_client,
    bucket: str,
    prefix: str = "",
    cursor: Optional[str] = None,
    max_keys: int = MAX_PAGE_SIZE,
) -> ListPage:
    """Fetch one page of the listing under prefix, starting at cursor."""
    scope = Scope(bucket, prefix)
    params = {
        "Bucket": bucket,
        "Prefix": prefix,
        "MaxKeys": _clamp_page_size(max_keys),
    }
    if cursor:
        params["ContinuationToken"] = cursor
    resp = s3_client.list_objects_v2(**params)
    items = _page_records(resp, scope)
    truncated = bool(resp.get("IsTruncated"))
    next_cursor = resp.get("NextContinuationToken") if truncated else None
    return ListPage(items=items, next_cursor=next_cursor, truncated=truncated)


def iter_records(
    s3_client,
    bucket: str,
    prefix: str = "",
    page_size: int = MAX_PAGE_SIZE,
) -> Iterator[ObjectRecord]:
    """
    Yield every object under prefix; the paginator follows continuation
    tokens until the service reports the listing is complete.
    """
    scope = Scope(bucket, prefix)
    paginator = s3_client.get_paginator("list_objects_v2")
    pages = paginator.paginate(
        Bucket=bucket,
        Prefix=prefix,
        PaginationConfig={"PageSize": _clamp_page_size(page_size)},
    )
    for n, page in enumerate(pages, 1):
        records = _page_records(page, scope)
        log.debug("%s page %d: %d objects", scope, n, len(records))
        yield from records


@log_and_reraise(ListingError)
def list_all(s3_client, bucket: str, prefix: str = "", page_size: int = MAX_PAGE_SIZE) -> DirectorySnapshot:
    """
    Snapshot every object under (bucket, prefix), keyed by relative key.
    An empty scope yields an empty snapshot.
    """
    scope = Scope(bucket, prefix)
    snapshot = DirectorySnapshot(scope, iter_records(s3_client, bucket, prefix, page_size=page_size))
    log.info("Listed %s: %d objects", scope, len(snapshot))
    return snapshot


def list_objects(s3_client, bucket: str, prefix: str = "", suffix: str = "") -> Iterator[str]:
    """
    Yield full object keys in a bucket filtered by prefix/suffix.
    """
    for rec in iter_records(s3_client, bucket, prefix):
        key = f"{prefix}{rec.relative_key}"
        if key.endswith(suffix):
            yield key
