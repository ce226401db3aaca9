"""Tests for paginated listing (list_page / iter_records / list_all)."""

import pytest

from s3sync.core import MAX_PAGE_SIZE, list_all, list_objects, list_page
from s3sync.errors import ListingError, SyncError


def _fill(s3, bucket, prefix, n, size=3):
    for i in range(n):
        s3.put(bucket, f"{prefix}f{i:04d}.txt", size)


class TestListPage:
    def test_single_page(self, s3):
        _fill(s3, "src", "public/", 3)
        page = list_page(s3, "src", "public/")
        assert [r.relative_key for r in page.items] == ["f0000.txt", "f0001.txt", "f0002.txt"]
        assert not page.truncated
        assert page.next_cursor is None

    def test_truncated_page_has_cursor(self, s3):
        _fill(s3, "src", "public/", 5)
        page = list_page(s3, "src", "public/", max_keys=2)
        assert page.truncated
        assert page.next_cursor == "2"
        nxt = list_page(s3, "src", "public/", cursor=page.next_cursor, max_keys=2)
        assert [r.relative_key for r in nxt.items] == ["f0002.txt", "f0003.txt"]

    def test_page_size_is_capped(self, s3):
        list_page(s3, "src", "", max_keys=20000)
        assert s3.last_max_keys == MAX_PAGE_SIZE
        list_page(s3, "src", "", max_keys=0)
        assert s3.last_max_keys == 1

    def test_record_fields(self, s3):
        s3.put("src", "p/a.bin", b"hello", etag="abc")
        (rec,) = list_page(s3, "src", "p/").items
        assert rec.relative_key == "a.bin"
        assert rec.size == 5
        assert rec.fingerprint == "abc"
        assert rec.last_modified is not None


class TestListAll:
    def test_empty_scope_is_empty_snapshot(self, s3):
        snap = list_all(s3, "src", "nothing/here/")
        assert len(snap) == 0
        assert snap.total_bytes == 0

    def test_follows_pagination_exactly_once(self, s3):
        _fill(s3, "src", "public/", 25)
        snap = list_all(s3, "src", "public/", page_size=10)
        assert len(snap) == 25
        assert list(snap) == sorted(snap)
        list_calls = [c for c in s3.calls if c[0] == "list"]
        assert len(list_calls) == 3

    def test_listing_goes_through_paginator(self, s3):
        _fill(s3, "src", "public/", 5)
        snap = list_all(s3, "src", "public/", page_size=20000)
        assert len(snap) == 5
        assert ("get_paginator", "list_objects_v2") in s3.calls
        assert s3.last_page_size == MAX_PAGE_SIZE
        assert s3.last_max_keys == MAX_PAGE_SIZE

    def test_exact_page_multiple(self, s3):
        _fill(s3, "src", "public/", 20)
        snap = list_all(s3, "src", "public/", page_size=10)
        assert len(snap) == 20

    def test_prefix_is_stripped_and_other_prefixes_ignored(self, s3):
        s3.put("src", "public/a.txt", 1)
        s3.put("src", "public/sub/b.txt", 2)
        s3.put("src", "private/c.txt", 3)
        snap = list_all(s3, "src", "public/")
        assert sorted(snap) == ["a.txt", "sub/b.txt"]
        assert snap.scope.prefix == "public/"
        assert snap.total_bytes == 3

    def test_missing_bucket_is_fatal(self, s3):
        with pytest.raises(ListingError) as exc:
            list_all(s3, "nope", "")
        assert isinstance(exc.value, SyncError)

    def test_access_denied_is_fatal(self, s3, make_error):
        s3.list_error = make_error("AccessDenied", "ListObjectsV2", 403)
        with pytest.raises(ListingError, match="AccessDenied"):
            list_all(s3, "src", "")


def test_list_objects_yields_full_keys(s3):
    s3.put("src", "public/a.jpg", 1)
    s3.put("src", "public/b.txt", 1)
    assert list(list_objects(s3, "src", "public/", suffix=".jpg")) == ["public/a.jpg"]
