"""GN and Ninja acquisition.

Both tools are fetched as CIPD zip packages pinned to the versions used by
Crashpad's DEPS file, and cached per host under <cache>/tools/<os>-<arch>/.
A cached binary is reused when `<tool> --version` exits 0; in that case no
network I/O happens.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from ..build.process_runner import ProcessRunner
from ..config.platform import detect_host_tag
from ..errors import ConfigurationError, ToolAcquisitionError
from .cache import CacheStore
from .downloader import PackageDownloader

logger = logging.getLogger(__name__)

GN_VERSION = "git_revision:5e19d2fb166fbd4f6f32147fbb2f497091a54ad8"
NINJA_VERSION = "version:2@1.8.2.chromium.3"

GN_URL_TEMPLATE = "https://chrome-infra-packages.appspot.com/dl/gn/gn/{platform}/+/{version}"
NINJA_URL_TEMPLATE = (
    "https://chrome-infra-packages.appspot.com/dl/infra/3pp/tools/ninja/{platform}/+/{version}"
)

# Host tag -> CIPD platform name
CIPD_PLATFORMS: Dict[str, str] = {
    "linux-x86_64": "linux-amd64",
    "linux-aarch64": "linux-arm64",
    "darwin-x86_64": "mac-amd64",
    "darwin-aarch64": "mac-arm64",
    "windows-x86_64": "windows-amd64",
}


@dataclass(frozen=True)
class ToolPaths:
    """Resolved tool executables."""

    gn: Path
    ninja: Path


class ToolAcquisition:
    """Ensures gn and ninja executables exist in the tool cache.

    Example usage:
        tools = ToolAcquisition(cache, runner, downloader)
        paths = tools.ensure_all()
        runner.run([paths.gn, "gen", "out"])
    """

    def __init__(
        self,
        cache: CacheStore,
        runner: ProcessRunner,
        downloader: PackageDownloader,
        gn_version: Optional[str] = None,
        ninja_version: Optional[str] = None,
        host_tag: Optional[str] = None,
    ):
        """Initialize tool acquisition.

        Args:
            cache: Cache store providing the tools directory
            runner: Runner used for the --version probe
            downloader: Downloader for cache misses
            gn_version: GN version pin (default: GN_VERSION)
            ninja_version: Ninja version pin (default: NINJA_VERSION)
            host_tag: Host '<os>-<arch>' (default: detected)
        """
        self.runner = runner
        self.downloader = downloader
        self.host_tag = host_tag or detect_host_tag()
        self.tools_dir = cache.tools_dir(self.host_tag)
        self.versions = {
            "gn": gn_version or GN_VERSION,
            "ninja": ninja_version or NINJA_VERSION,
        }

    @property
    def exe_suffix(self) -> str:
        return ".exe" if self.host_tag.startswith("windows") else ""

    @property
    def cipd_platform(self) -> str:
        platform = CIPD_PLATFORMS.get(self.host_tag)
        if platform is None:
            raise ConfigurationError(
                f"No prebuilt gn/ninja for host {self.host_tag}. Supported hosts: {sorted(CIPD_PLATFORMS)}"
            )
        return platform

    def tool_path(self, name: str) -> Path:
        return self.tools_dir / f"{name}{self.exe_suffix}"

    def download_url(self, name: str) -> str:
        template = GN_URL_TEMPLATE if name == "gn" else NINJA_URL_TEMPLATE
        return template.format(platform=self.cipd_platform, version=self.versions[name])

    def is_cached(self, name: str) -> bool:
        """Whether a working executable for the tool is already cached."""
        path = self.tool_path(name)
        return path.is_file() and self.runner.probe([path, "--version"])

    def ensure(self, name: str) -> Path:
        """Ensure one tool is available.

        Args:
            name: 'gn' or 'ninja'

        Returns:
            Path to the executable

        Raises:
            ToolAcquisitionError: If the download or extraction fails
        """
        if name not in self.versions:
            raise ValueError(f"Unknown tool: {name}")

        path = self.tool_path(name)
        if self.is_cached(name):
            logger.debug(f"Using cached {name}: {path}")
            return path

        url = self.download_url(name)
        logger.info(f"Downloading {name} ({self.versions[name]}) for {self.host_tag}")
        self.tools_dir.mkdir(parents=True, exist_ok=True)
        temp_zip = self.tools_dir / f"{name}_temp.zip"

        try:
            self.downloader.download(url, temp_zip)
            self.downloader.extract_member(
                temp_zip, [f"{name}{self.exe_suffix}", name], path
            )
        except ToolAcquisitionError as e:
            if e.url is None:
                e.url = url
                e.message = f"{e.message} (url: {url})"
            raise
        finally:
            if temp_zip.exists():
                temp_zip.unlink()

        if os.name != "nt":
            path.chmod(0o755)

        if not self.runner.probe([path, "--version"]):
            raise ToolAcquisitionError(f"Downloaded {name} does not run: {path}", url=url)

        logger.info(f"{name} ready at {path}")
        return path

    def ensure_all(self) -> ToolPaths:
        return ToolPaths(gn=self.ensure("gn"), ninja=self.ensure("ninja"))
