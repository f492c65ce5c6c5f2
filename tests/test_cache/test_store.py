"""Tests for the CacheStore and cache key derivation."""

from __future__ import annotations

import os
import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from fluxcache.cache import CacheStore, cache_key, shard_path
from fluxcache.config import process_umask
from fluxcache.exceptions import StorageError
from fluxcache.models import LookupStatus

ABC_SHA256 = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


# ------------------------------------------------------------------ #
# Key derivation
# ------------------------------------------------------------------ #


class TestCacheKey:
    def test_known_digest(self) -> None:
        assert cache_key("abc") == ABC_SHA256

    def test_empty_path(self) -> None:
        assert cache_key("") == EMPTY_SHA256

    def test_key_is_lowercase_hex_of_32_bytes(self) -> None:
        key = cache_key("github.com/foo/bar/@v/list")
        assert len(key) == 64
        assert key == key.lower()
        int(key, 16)

    def test_surrogate_escaped_bytes_hash_as_raw_bytes(self) -> None:
        """An undecodable byte kept as a surrogate hashes like the raw byte."""
        import hashlib

        raw = b"mod/\xff"
        assert cache_key(raw.decode("utf-8", "surrogateescape")) == hashlib.sha256(raw).hexdigest()

    def test_shard_path_layout(self) -> None:
        assert shard_path(ABC_SHA256).parts == ("ba", "78", ABC_SHA256)


# ------------------------------------------------------------------ #
# Locate
# ------------------------------------------------------------------ #


class TestLocate:
    def test_layout_under_root(self, store: CacheStore, cache_dir: Path) -> None:
        assert store.locate("abc") == cache_dir / "ba" / "78" / ABC_SHA256

    def test_deterministic_across_instances(self, cache_dir: Path) -> None:
        path = "github.com/foo/bar@v1.0.0.info"
        assert CacheStore(cache_dir).locate(path) == CacheStore(cache_dir).locate(path)

    def test_distinct_paths_distinct_locations(self, store: CacheStore) -> None:
        paths = [
            "github.com/foo/bar/@v/list",
            "github.com/foo/bar/@v/v1.0.0.info",
            "github.com/foo/bar/@v/v1.0.0.mod",
            "github.com/foo/baz/@v/list",
        ]
        assert len({store.locate(p) for p in paths}) == len(paths)

    def test_locate_does_not_touch_disk(self, store: CacheStore) -> None:
        location = store.locate("never/written")
        assert not location.exists()
        assert not location.parent.exists()


# ------------------------------------------------------------------ #
# Read / write
# ------------------------------------------------------------------ #


class TestReadWrite:
    def test_constructor_creates_root(self, cache_dir: Path) -> None:
        assert not cache_dir.exists()
        CacheStore(cache_dir)
        assert cache_dir.is_dir()

    def test_read_missing_is_miss(self, store: CacheStore) -> None:
        lookup = store.read("github.com/missing/@v/list")
        assert lookup.status == LookupStatus.MISS
        assert not lookup.found
        assert lookup.data is None

    def test_write_then_read_round_trip(self, store: CacheStore) -> None:
        store.write("github.com/foo/bar/@v/list", b"v1.0.0\nv1.1.0\n")
        lookup = store.read("github.com/foo/bar/@v/list")
        assert lookup.found
        assert lookup.data == b"v1.0.0\nv1.1.0\n"

    def test_write_returns_location(self, store: CacheStore) -> None:
        location = store.write("abc", b"x")
        assert location == store.locate("abc")
        assert location.read_bytes() == b"x"

    def test_write_twice_is_idempotent(self, store: CacheStore) -> None:
        store.write("abc", b"same")
        store.write("abc", b"same")
        assert store.read("abc").data == b"same"

    def test_write_replaces_previous_content(self, store: CacheStore) -> None:
        store.write("abc", b"a much longer first body")
        store.write("abc", b"short")
        assert store.read("abc").data == b"short"

    def test_empty_body_round_trip(self, store: CacheStore) -> None:
        store.write("abc", b"")
        lookup = store.read("abc")
        assert lookup.found
        assert lookup.data == b""

    def test_binary_body_round_trip(self, store: CacheStore) -> None:
        body = bytes(range(256)) * 4
        store.write("github.com/foo/bar/@v/v1.0.0.zip", body)
        assert store.read("github.com/foo/bar/@v/v1.0.0.zip").data == body

    def test_no_temp_files_left_behind(self, store: CacheStore) -> None:
        location = store.write("abc", b"data")
        assert os.listdir(location.parent) == [location.name]

    def test_unreadable_artifact_is_storage_error(self, store: CacheStore) -> None:
        """A directory where the artifact should be is not reported as a miss."""
        store.locate("abc").mkdir(parents=True)
        lookup = store.read("abc")
        assert lookup.status == LookupStatus.STORAGE_ERROR
        assert not lookup.found
        assert lookup.error

    def test_write_failure_raises_storage_error(self, store: CacheStore) -> None:
        store.locate("abc").mkdir(parents=True)
        with pytest.raises(StorageError):
            store.write("abc", b"data")

    def test_write_failure_from_os_error(self, store: CacheStore) -> None:
        with patch("fluxcache.cache.store.atomic_write", side_effect=OSError("disk full")):
            with pytest.raises(StorageError, match="disk full"):
                store.write("abc", b"data")

    def test_unwritable_root_raises_storage_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(StorageError):
            CacheStore(blocker / "cache")


# ------------------------------------------------------------------ #
# exists / stats
# ------------------------------------------------------------------ #


class TestExistsAndStats:
    def test_exists(self, store: CacheStore) -> None:
        assert not store.exists("abc")
        store.write("abc", b"1")
        assert store.exists("abc")

    def test_stats_empty(self, store: CacheStore, cache_dir: Path) -> None:
        assert store.stats() == {"directory": str(cache_dir), "entries": 0, "size_bytes": 0}

    def test_stats_counts_entries_and_bytes(self, store: CacheStore) -> None:
        store.write("a", b"12345")
        store.write("b", b"123")
        stats = store.stats()
        assert stats["entries"] == 2
        assert stats["size_bytes"] == 8

    def test_stats_ignores_leftover_temp_files(self, store: CacheStore) -> None:
        location = store.write("a", b"12345")
        (location.parent / f".{location.name}.abc.tmp").write_bytes(b"partial")
        assert store.stats()["entries"] == 1


# ------------------------------------------------------------------ #
# Permissions
# ------------------------------------------------------------------ #


class TestArtifactPermissions:
    def test_artifact_mode_follows_umask(self, store: CacheStore) -> None:
        old = os.umask(0o022)
        process_umask.cache_clear()
        try:
            location = store.write("m/@v/list", b"v1\n")
        finally:
            os.umask(old)
            process_umask.cache_clear()
        assert stat.S_IMODE(location.stat().st_mode) == 0o644

    def test_artifact_readable_by_others(self, store: CacheStore) -> None:
        location = store.write("m/@v/list", b"v1\n")
        umask = process_umask()
        mode = stat.S_IMODE(location.stat().st_mode)
        assert mode == 0o666 & ~umask
        if not umask & 0o044:
            assert mode & 0o044 == 0o044

    def test_rewrite_keeps_mode(self, store: CacheStore) -> None:
        first = stat.S_IMODE(store.write("abc", b"one").stat().st_mode)
        second = stat.S_IMODE(store.write("abc", b"two").stat().st_mode)
        assert first == second
