from __future__ import annotations
from s3sync.core import get_s3_client
from s3sync.download import download_scope

if __name__ == "__main__":
    s3 = get_s3_client()
    res = download_scope(
        s3,
        bucket="my-bucket",
        prefix="public/images/",
        dst_root="downloads",
        overwrite=False,
        progress=True,
        max_workers=8,
    )
    print("Downloaded:", len(res["downloaded"]), "Errors:", len(res["errors"]))
