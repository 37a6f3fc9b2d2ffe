"""Cache management for downloaded tools and prebuilt packages.

Cache Structure:
    {cache_root}/
    ├── tools/
    │   └── {os}-{arch}/            # Host tag, e.g. linux-x86_64
    │       ├── gn
    │       └── ninja
    └── prebuilt/
        └── {version}/              # Release version
            └── {target}/           # Target triple
                ├── .crashpad-ok    # Marker: extraction completed
                ├── lib/
                ├── bindings.py
                └── crashpad_handler

The cache root is CRASHPAD_CACHE_DIR when set, otherwise the per-user cache
directory of the host OS. A prebuilt entry is valid only when its marker
file exists; a directory without the marker is a partial download and gets
replaced.
"""

import logging
import shutil
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from ..config.build_config import MARKER_NAME
from ..config.environment import BuildEnvironment

logger = logging.getLogger(__name__)

CACHE_DIR_NAME = "crashpad-rs"


def default_cache_root(environ: Mapping[str, str]) -> Path:
    """Resolve the cache root.

    Args:
        environ: Environment variables

    Returns:
        CRASHPAD_CACHE_DIR if set, else the user cache directory
    """
    override = environ.get("CRASHPAD_CACHE_DIR")
    if override:
        return Path(override)

    home = Path(environ.get("HOME") or Path.home())
    if sys.platform == "win32":
        base = environ.get("LOCALAPPDATA")
        root = Path(base) if base else home / "AppData" / "Local"
    elif sys.platform == "darwin":
        root = home / "Library" / "Caches"
    else:
        xdg = environ.get("XDG_CACHE_HOME")
        root = Path(xdg) if xdg else home / ".cache"
    return root / CACHE_DIR_NAME


def has_marker(directory: Path) -> bool:
    return (directory / MARKER_NAME).is_file()


def write_marker(directory: Path) -> Path:
    """Create the zero-byte completion marker in a directory."""
    directory.mkdir(parents=True, exist_ok=True)
    marker = directory / MARKER_NAME
    marker.touch()
    return marker


@dataclass(frozen=True)
class CacheEntry:
    """Identity of one cached package: (root, version, platform key)."""

    root: Path
    version: str
    key: str

    @property
    def path(self) -> Path:
        return self.root / "prebuilt" / self.version / self.key

    @property
    def marker_path(self) -> Path:
        return self.path / MARKER_NAME


class CacheStore(ABC):
    """Abstract cache store.

    Callers ask for an entry, check validity, fill the entry directory and
    mark it valid. Validity is decided by the marker alone.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def entry(self, version: str, key: str) -> CacheEntry:
        return CacheEntry(root=self.root, version=version, key=key)

    def tools_dir(self, host_tag: str) -> Path:
        """Directory holding gn/ninja for a host."""
        return self.root / "tools" / host_tag

    @abstractmethod
    def is_valid(self, entry: CacheEntry) -> bool:
        """Whether the entry has completed and may be reused."""

    @abstractmethod
    def prepare(self, entry: CacheEntry) -> Path:
        """Return an empty directory ready to be filled for the entry."""

    @abstractmethod
    def mark_valid(self, entry: CacheEntry) -> None:
        """Record that the entry was filled completely."""

    @abstractmethod
    def invalidate(self, entry: CacheEntry) -> None:
        """Forget an entry so the next run fetches it again."""


class FileCacheStore(CacheStore):
    """Filesystem-backed cache store using marker files."""

    @classmethod
    def from_env(cls, env: BuildEnvironment) -> "FileCacheStore":
        if env.cache_dir is not None:
            return cls(env.cache_dir)
        return cls(default_cache_root(dict(env.variables)))

    def is_valid(self, entry: CacheEntry) -> bool:
        return has_marker(entry.path)

    def prepare(self, entry: CacheEntry) -> Path:
        """Remove any partial content and recreate the entry directory.

        Args:
            entry: Cache entry

        Returns:
            The (empty) entry directory
        """
        if entry.path.exists():
            logger.info(f"Removing incomplete cache entry {entry.path}")
            shutil.rmtree(entry.path)
        entry.path.mkdir(parents=True, exist_ok=True)
        return entry.path

    def mark_valid(self, entry: CacheEntry) -> None:
        write_marker(entry.path)

    def invalidate(self, entry: CacheEntry) -> None:
        entry.marker_path.unlink(missing_ok=True)
