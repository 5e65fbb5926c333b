"""Tests for cache layout and maintenance."""
import os
import time

from node_archive.cache import (
    canonical_path,
    commit,
    discard,
    is_partial,
    list_entries,
    open_partial,
    sweep_partials,
)
from node_archive.platforms import PlatformTag
from node_archive.types import Version


def test_canonical_path(cache_dir):
    path = canonical_path(cache_dir, Version.parse("18.16.0"), PlatformTag.parse("linux-x64"))
    assert path == cache_dir / "node-v18.16.0-linux-x64.tar.gz"


def test_partial_is_distinguishable_and_committed_by_rename(cache_dir):
    canonical = cache_dir / "node-v18.16.0-linux-x64.tar.gz"
    partial, handle = open_partial(canonical)
    with handle:
        handle.write(b"data")

    assert partial.parent == cache_dir
    assert partial.name.startswith(canonical.name + ".")
    assert is_partial(partial)
    assert not canonical.exists()
    assert list_entries(cache_dir) == []

    commit(partial, canonical)
    assert canonical.read_bytes() == b"data"
    assert not partial.exists()
    assert list_entries(cache_dir) == [canonical]


def test_discard_tolerates_missing_file(cache_dir):
    partial, handle = open_partial(cache_dir / "x.zip")
    handle.close()
    discard(partial)
    discard(partial)
    assert not partial.exists()


def test_list_entries_missing_dir(tmp_path):
    assert list_entries(tmp_path / "nope") == []


def test_sweep_partials_only_removes_old_partials(cache_dir):
    entry = cache_dir / "node-v18.16.0-linux-x64.tar.gz"
    entry.write_bytes(b"complete")

    old, handle = open_partial(entry)
    handle.close()
    stale = time.time() - 3 * 24 * 60 * 60
    os.utime(old, (stale, stale))

    fresh, handle = open_partial(entry)
    handle.close()

    removed = sweep_partials(cache_dir)

    assert removed == [old]
    assert entry.exists()
    assert fresh.exists()
    assert not old.exists()
