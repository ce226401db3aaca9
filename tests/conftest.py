"""Shared fixtures: an in-memory stand-in for the boto3 S3 client."""

import hashlib
import threading
from datetime import datetime, timezone

import pytest
from botocore.exceptions import ClientError
from typer.testing import CliRunner

from s3sync.config import SyncOptions


def client_error(code, op="Operation", status=400):
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        op,
    )


class FakeS3:
    """
    Just enough of the S3 client surface for the sync engine:
    list_objects_v2 with continuation tokens and its paginator, managed copy, delete_objects
    and download_file. Failures are injected per (operation, key).
    """

    def __init__(self):
        self.buckets = {}
        self.lock = threading.Lock()
        self.calls = []
        # (op, key) -> list of exceptions raised one per call, then success
        self.fail_plan = {}
        # (op, key) -> exception raised on every call
        self.always_fail = {}
        # key -> (code, message) reported inside a delete_objects response
        self.delete_errors = {}
        self.list_error = None
        self.last_max_keys = None
        self.last_page_size = None

    # ---------------- helpers ----------------
    def put(self, bucket, key, data=b"", etag=None):
        if isinstance(data, int):
            data = b"x" * data
        self.buckets.setdefault(bucket, {})[key] = {
            "Body": data,
            "ETag": '"%s"' % (etag or hashlib.md5(data).hexdigest()),
            "LastModified": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "ACL": None,
        }

    def keys(self, bucket):
        return sorted(self.buckets.get(bucket, {}))

    def _maybe_fail(self, op, key):
        with self.lock:
            self.calls.append((op, key))
            if (op, key) in self.always_fail:
                raise self.always_fail[(op, key)]
            plan = self.fail_plan.get((op, key))
            if plan:
                raise plan.pop(0)

    def _bucket(self, bucket, op):
        if bucket not in self.buckets:
            raise client_error("NoSuchBucket", op, 404)
        return self.buckets[bucket]

    # ---------------- S3 API ----------------
    def list_objects_v2(self, Bucket, Prefix="", MaxKeys=1000, ContinuationToken=None):
        with self.lock:
            self.calls.append(("list", Prefix))
            self.last_max_keys = MaxKeys
        if self.list_error is not None:
            raise self.list_error
        objs = self._bucket(Bucket, "ListObjectsV2")
        keys = sorted(k for k in objs if k.startswith(Prefix))
        start = int(ContinuationToken) if ContinuationToken else 0
        page = keys[start:start + MaxKeys]
        truncated = start + MaxKeys < len(keys)
        resp = {
            "Name": Bucket,
            "KeyCount": len(page),
            "IsTruncated": truncated,
            "MaxKeys": MaxKeys,
        }
        if page:
            resp["Contents"] = [
                {
                    "Key": k,
                    "Size": len(objs[k]["Body"]),
                    "ETag": objs[k]["ETag"],
                    "LastModified": objs[k]["LastModified"],
                }
                for k in page
            ]
        if truncated:
            resp["NextContinuationToken"] = str(start + MaxKeys)
        return resp

    def get_paginator(self, operation_name):
        assert operation_name == "list_objects_v2"
        with self.lock:
            self.calls.append(("get_paginator", operation_name))
        return FakePaginator(self)

    def copy(self, CopySource, Bucket, Key, ExtraArgs=None):
        self._maybe_fail("copy", CopySource["Key"])
        src = self._bucket(CopySource["Bucket"], "CopyObject")
        if CopySource["Key"] not in src:
            raise client_error("NoSuchKey", "CopyObject", 404)
        obj = dict(src[CopySource["Key"]])
        obj["ACL"] = (ExtraArgs or {}).get("ACL")
        with self.lock:
            self._bucket(Bucket, "CopyObject")[Key] = obj

    def delete_objects(self, Bucket, Delete):
        keys = [o["Key"] for o in Delete["Objects"]]
        self._maybe_fail("delete_objects", tuple(keys))
        objs = self._bucket(Bucket, "DeleteObjects")
        deleted, errors = [], []
        with self.lock:
            for k in keys:
                if k in self.delete_errors:
                    code, msg = self.delete_errors[k]
                    errors.append({"Key": k, "Code": code, "Message": msg})
                    continue
                objs.pop(k, None)
                deleted.append({"Key": k})
        resp = {"Errors": errors} if errors else {}
        if not Delete.get("Quiet"):
            resp["Deleted"] = deleted
        return resp

    def download_file(self, Bucket, Key, Filename):
        self._maybe_fail("download", Key)
        objs = self._bucket(Bucket, "GetObject")
        if Key not in objs:
            raise client_error("404", "HeadObject", 404)
        with open(Filename, "wb") as f:
            f.write(objs[Key]["Body"])


class FakePaginator:
    """Mirrors botocore's list_objects_v2 paginator: PageSize becomes MaxKeys."""

    def __init__(self, client):
        self.client = client

    def paginate(self, Bucket, Prefix="", PaginationConfig=None):
        page_size = (PaginationConfig or {}).get("PageSize", 1000)
        self.client.last_page_size = page_size
        token = None
        while True:
            kwargs = {"Bucket": Bucket, "Prefix": Prefix, "MaxKeys": page_size}
            if token:
                kwargs["ContinuationToken"] = token
            resp = self.client.list_objects_v2(**kwargs)
            yield resp
            if not resp.get("IsTruncated"):
                return
            token = resp["NextContinuationToken"]


@pytest.fixture
def s3():
    fake = FakeS3()
    fake.buckets["src"] = {}
    fake.buckets["dst"] = {}
    return fake


@pytest.fixture
def options():
    """Fast options: no backoff sleeping, small pool."""
    return SyncOptions(max_workers=4, max_attempts=3, backoff_base=0.0)


@pytest.fixture
def no_sleep():
    delays = []
    return delays, delays.append


@pytest.fixture
def make_error():
    return client_error


@pytest.fixture
def runner():
    return CliRunner()
