"""Prebuilt package strategy.

Instead of building Crashpad, download a release archive that already holds
the static libraries, the generated bindings and the handler:

    https://github.com/bahamoth/crashpad-rs/releases/download/v{version}/crashpad-{version}-{target}.tar.gz

The archive is cached per (version, target) and reused while its marker
exists.
"""

import logging
import shutil
from pathlib import Path
from typing import Dict, Optional, Tuple

from ..build.distributor import ArtifactDistributor
from ..config.build_config import BuildConfig
from ..config.environment import BuildEnvironment
from ..errors import DownloadError
from ..metadata import MetadataChannel, emit_link_plan
from .cache import CacheEntry, CacheStore
from .downloader import PackageDownloader

logger = logging.getLogger(__name__)

PREBUILT_URL_TEMPLATE = (
    "https://github.com/bahamoth/crashpad-rs/releases/download/"
    + "v{version}/crashpad-{version}-{target}.tar.gz"
)

# Static libraries shipped in a prebuilt package, in link order
PREBUILT_LIBS: Dict[str, Tuple[str, ...]] = {
    "windows": (
        "crashpad_wrapper",
        "client",
        "common",
        "util",
        "base",
        "snapshot",
        "minidump",
        "format",
        "handler",
        "handler_common",
        "context",
        "compat",
        "net",
        "getopt",
        "zlib",
    ),
    "macos": ("crashpad_wrapper", "client", "common", "util", "format", "base", "mig_output"),
    "ios": (
        "crashpad_wrapper",
        "client",
        "common",
        "util",
        "format",
        "base",
        "mig_output",
        "snapshot",
        "context",
        "minidump",
    ),
    "linux": ("crashpad_wrapper", "client", "common", "util", "format", "base"),
    "android": ("crashpad_wrapper", "client", "common", "util", "format", "base"),
}


class PrebuiltFetcher:
    """Fetches, caches and links a prebuilt Crashpad package.

    Example usage:
        fetcher = PrebuiltFetcher(env, config, cache, downloader, channel, distributor)
        package_dir = fetcher.run()
    """

    def __init__(
        self,
        env: BuildEnvironment,
        config: BuildConfig,
        cache: CacheStore,
        downloader: PackageDownloader,
        channel: MetadataChannel,
        distributor: ArtifactDistributor,
    ):
        self.env = env
        self.config = config
        self.cache = cache
        self.downloader = downloader
        self.channel = channel
        self.distributor = distributor
        self.distributed_handler: Optional[Path] = None

    @property
    def version(self) -> str:
        return self.env.crashpad_version

    @property
    def entry(self) -> CacheEntry:
        return self.cache.entry(self.version, self.env.target)

    def url(self) -> str:
        template = self.env.prebuilt_url or PREBUILT_URL_TEMPLATE
        return template.format(version=self.version, target=self.env.target)

    def fetch(self) -> Path:
        """Ensure the package is in the cache.

        Returns:
            Package directory

        Raises:
            DownloadError: If the package cannot be downloaded
            ExtractionError: If the archive is unreadable
        """
        entry = self.entry
        if self.cache.is_valid(entry):
            logger.info(f"Using cached prebuilt from {entry.path}")
            return entry.path

        url = self.url()
        logger.info(f"Downloading prebuilt Crashpad {self.version} for {self.env.target}")
        package_dir = self.cache.prepare(entry)
        archive = package_dir / "download.tar.gz"
        try:
            self.downloader.download(url, archive)
        except DownloadError:
            self.channel.warning(
                f"Prebuilt binaries not available at {url}. "
                + "This is expected if the release has not been published yet."
            )
            raise

        self.downloader.extract_archive(archive, package_dir)
        archive.unlink()
        self.cache.mark_valid(entry)
        return package_dir

    def copy_bindings(self, package_dir: Path) -> Optional[Path]:
        source = package_dir / self.config.bindings_path.name
        if not source.exists():
            self.channel.warning(f"{source.name} not found in prebuilt package")
            return None
        self.config.out_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, self.config.bindings_path)
        return self.config.bindings_path

    def emit_link(self, package_dir: Path) -> None:
        search_paths = [package_dir]
        lib_dir = package_dir / "lib"
        if lib_dir.is_dir():
            search_paths.append(lib_dir)
        emit_link_plan(
            self.channel,
            search_paths,
            PREBUILT_LIBS[self.config.platform.family],
            system_libs=self.config.system_libs,
            frameworks=self.config.frameworks,
        )

    def run(self) -> Path:
        """Fetch the package, copy bindings, emit link directives, distribute the handler.

        Returns:
            Package directory
        """
        package_dir = self.fetch()
        self.copy_bindings(package_dir)
        self.emit_link(package_dir)

        dest_name = self.config.handler_dest_name
        handler = package_dir / dest_name if dest_name else None
        self.distributed_handler = self.distributor.distribute(handler, dest_name)
        return package_dir
