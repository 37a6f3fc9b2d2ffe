"""Unit tests for cache management."""

import sys
from pathlib import Path

import pytest

from crashpad_build.config.build_config import MARKER_NAME
from crashpad_build.packages.cache import (
    CacheEntry,
    FileCacheStore,
    default_cache_root,
    has_marker,
    write_marker,
)


class TestDefaultCacheRoot:
    """Tests for default_cache_root()."""

    def test_override(self, tmp_path):
        assert default_cache_root({"CRASHPAD_CACHE_DIR": str(tmp_path / "c")}) == tmp_path / "c"

    @pytest.mark.skipif(sys.platform in ("win32", "darwin"), reason="XDG layout is Linux-only")
    def test_xdg_cache_home(self, tmp_path):
        assert default_cache_root({"XDG_CACHE_HOME": str(tmp_path)}) == tmp_path / "crashpad-rs"

    @pytest.mark.skipif(sys.platform in ("win32", "darwin"), reason="XDG layout is Linux-only")
    def test_home_fallback(self, tmp_path):
        assert default_cache_root({"HOME": str(tmp_path)}) == tmp_path / ".cache" / "crashpad-rs"


class TestMarkers:
    """Tests for marker helpers."""

    def test_write_marker_creates_zero_byte_file(self, tmp_path):
        marker = write_marker(tmp_path / "build")
        assert marker == tmp_path / "build" / MARKER_NAME
        assert marker.stat().st_size == 0
        assert has_marker(tmp_path / "build")

    def test_has_marker_false_when_missing(self, tmp_path):
        assert not has_marker(tmp_path)


class TestFileCacheStore:
    """Tests for FileCacheStore."""

    def test_entry_layout(self, tmp_path):
        store = FileCacheStore(tmp_path)
        entry = store.entry("0.2.7", "x86_64-unknown-linux-gnu")
        assert entry == CacheEntry(tmp_path, "0.2.7", "x86_64-unknown-linux-gnu")
        assert entry.path == tmp_path / "prebuilt" / "0.2.7" / "x86_64-unknown-linux-gnu"
        assert store.tools_dir("linux-x86_64") == tmp_path / "tools" / "linux-x86_64"

    def test_valid_only_with_marker(self, tmp_path):
        store = FileCacheStore(tmp_path)
        entry = store.entry("1.0", "t")
        entry.path.mkdir(parents=True)
        (entry.path / "libclient.a").write_bytes(b"x")

        assert not store.is_valid(entry)
        store.mark_valid(entry)
        assert store.is_valid(entry)

    def test_prepare_discards_partial_content(self, tmp_path):
        store = FileCacheStore(tmp_path)
        entry = store.entry("1.0", "t")
        entry.path.mkdir(parents=True)
        (entry.path / "half-downloaded.tar.gz").write_bytes(b"x")

        path = store.prepare(entry)

        assert path == entry.path
        assert list(path.iterdir()) == []

    def test_invalidate(self, tmp_path):
        store = FileCacheStore(tmp_path)
        entry = store.entry("1.0", "t")
        store.prepare(entry)
        store.mark_valid(entry)

        store.invalidate(entry)
        store.invalidate(entry)  # idempotent

        assert not store.is_valid(entry)

    def test_from_env_uses_cache_dir(self, make_env, tmp_path):
        store = FileCacheStore.from_env(make_env(cache_dir=tmp_path / "explicit"))
        assert store.root == Path(tmp_path / "explicit")
