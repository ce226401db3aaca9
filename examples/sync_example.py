from __future__ import annotations
from s3sync.config import SyncOptions
from s3sync.core import get_s3_client
from s3sync.sync import sync_prefix
from s3sync.utils import human_bytes

if __name__ == "__main__":
    s3 = get_s3_client()
    summary = sync_prefix(
        s3,
        source_bucket="my-source",
        source_prefix="public/",
        dest_bucket="my-target",
        dest_prefix="public/",
        delete_extra=True,
        options=SyncOptions(max_workers=8, progress=True),
    )
    print("Added:", summary.count_add, human_bytes(summary.bytes_add))
    print("Removed:", summary.count_remove, human_bytes(summary.bytes_remove))
    for failure in summary.failures:
        print("Failed:", failure)
