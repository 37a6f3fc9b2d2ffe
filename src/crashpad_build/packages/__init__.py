"""Package management for crashpad-build.

This module handles downloading, caching, and managing everything the build
needs from outside the source tree: gn and ninja, the Crashpad checkout and
its third-party dependencies, and prebuilt release packages.
"""

from .cache import CacheEntry, CacheStore, FileCacheStore, default_cache_root, has_marker, write_marker
from .dependencies import DEPENDENCIES, DependencyLinker, LinkReport
from .downloader import PackageDownloader
from .prebuilt import PrebuiltFetcher
from .source_sync import DepotTools, SourceSync
from .tools import ToolAcquisition, ToolPaths

__all__ = [
    "CacheEntry",
    "CacheStore",
    "FileCacheStore",
    "default_cache_root",
    "has_marker",
    "write_marker",
    "DEPENDENCIES",
    "DependencyLinker",
    "LinkReport",
    "PackageDownloader",
    "PrebuiltFetcher",
    "DepotTools",
    "SourceSync",
    "ToolAcquisition",
    "ToolPaths",
]
