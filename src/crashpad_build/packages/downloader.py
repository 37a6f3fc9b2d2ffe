"""Package downloader with progress tracking and bounded retries.

This module handles downloading tool and prebuilt archives from URLs and
extracting them, either whole or a single named member.
"""

import logging
import tarfile
import time
import zipfile
from pathlib import Path
from typing import Callable, Iterable, Optional
from urllib.parse import urlparse

import requests
from tqdm import tqdm

from ..errors import DownloadError, ExtractionError, ProcessTimeoutError

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({500, 502, 503, 504})


class PackageDownloader:
    """Downloads and extracts packages with progress tracking.

    Transient failures (connection errors, HTTP 5xx) are retried a bounded
    number of times with exponential backoff. Timeouts are reported as
    ProcessTimeoutError once all attempts time out.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        retries: int = 3,
        timeout: float = 60.0,
        backoff: float = 1.0,
        chunk_size: int = 8192,
        show_progress: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize downloader.

        Args:
            session: HTTP session (default: a new requests.Session)
            retries: Attempts per download before giving up
            timeout: Per-request timeout in seconds
            backoff: Base delay between attempts, doubled after each failure
            chunk_size: Size of chunks for downloading
            show_progress: Whether to show a progress bar
            sleep: Delay function, replaced in tests
        """
        self.session = session if session is not None else requests.Session()
        self.retries = max(1, retries)
        self.timeout = timeout
        self.backoff = backoff
        self.chunk_size = chunk_size
        self.show_progress = show_progress
        self._sleep = sleep

    def download(self, url: str, dest_path: Path) -> Path:
        """Download a file from a URL, retrying transient failures.

        Args:
            url: URL to download from
            dest_path: Destination file path

        Returns:
            Path to the downloaded file

        Raises:
            DownloadError: If the download fails permanently or after all retries
            ProcessTimeoutError: If every attempt timed out
        """
        dest_path = Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)

        last_error: Optional[Exception] = None
        for attempt in range(1, self.retries + 1):
            try:
                return self._download_once(url, dest_path)
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status not in TRANSIENT_STATUS_CODES:
                    raise DownloadError(f"Failed to download {url}: HTTP {status}", url=url) from e
                last_error = e
            except (requests.ConnectionError, requests.Timeout, requests.exceptions.ChunkedEncodingError) as e:
                last_error = e
            except requests.RequestException as e:
                raise DownloadError(f"Failed to download {url}: {e}", url=url) from e

            if attempt < self.retries:
                delay = self.backoff * (2 ** (attempt - 1))
                logger.warning(
                    f"Download attempt {attempt}/{self.retries} failed for {url}: {last_error}. "
                    + f"Retrying in {delay:.1f}s"
                )
                self._sleep(delay)

        if isinstance(last_error, requests.Timeout):
            raise ProcessTimeoutError(
                f"Download of {url} timed out after {self.retries} attempts ({self.timeout}s each)",
                timeout=self.timeout,
            ) from last_error
        raise DownloadError(
            f"Failed to download {url} after {self.retries} attempts: {last_error}", url=url
        ) from last_error

    def _download_once(self, url: str, dest_path: Path) -> Path:
        # Use temporary file during download
        temp_file = dest_path.with_suffix(dest_path.suffix + ".tmp")

        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
            response.raise_for_status()

            total_size = int(response.headers.get("content-length", 0))

            progress_bar = None
            if self.show_progress and total_size > 0:
                filename = Path(urlparse(url).path).name
                progress_bar = tqdm(
                    total=total_size,
                    unit="B",
                    unit_scale=True,
                    unit_divisor=1024,
                    desc=f"Downloading {filename}",
                )

            try:
                with open(temp_file, "wb") as f:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            f.write(chunk)
                            if progress_bar:
                                progress_bar.update(len(chunk))
            finally:
                if progress_bar:
                    progress_bar.close()

            if dest_path.exists():
                dest_path.unlink()
            temp_file.rename(dest_path)
            return dest_path

        except BaseException:
            if temp_file.exists():
                temp_file.unlink()
            raise

    def extract_archive(self, archive_path: Path, dest_dir: Path) -> Path:
        """Extract an archive file.

        Supports .tar.gz, .tar.bz2, .tar.xz, .tgz and .zip formats.

        Args:
            archive_path: Path to the archive file
            dest_dir: Destination directory for extraction

        Returns:
            Path to the extracted directory

        Raises:
            ExtractionError: If extraction fails
        """
        archive_path = Path(archive_path)
        dest_dir = Path(dest_dir)

        if not archive_path.exists():
            raise ExtractionError(f"Archive not found: {archive_path}")

        dest_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Extracting {archive_path.name}...")

        try:
            if archive_path.suffix == ".zip":
                with zipfile.ZipFile(archive_path, "r") as zip_file:
                    zip_file.extractall(dest_dir)
            elif archive_path.name.endswith((".tar.gz", ".tgz", ".tar.bz2", ".tar.xz")):
                with tarfile.open(archive_path, "r:*") as tar:
                    _safe_extractall(tar, dest_dir)
            else:
                raise ExtractionError(f"Unsupported archive format: {archive_path.suffix}")
        except (OSError, zipfile.BadZipFile, tarfile.TarError) as e:
            raise ExtractionError(f"Failed to extract {archive_path}: {e}") from e

        return dest_dir

    def extract_member(self, archive_path: Path, names: Iterable[str], dest_path: Path) -> Path:
        """Extract one named entry from a zip archive.

        The entry is matched by exact name first, then by path suffix. When
        neither matches, the whole archive is extracted next to dest_path and
        dest_path must then exist.

        Args:
            archive_path: Path to the zip archive
            names: Acceptable entry names, in order of preference
            dest_path: Where the entry is written

        Returns:
            dest_path

        Raises:
            ExtractionError: If the archive is unreadable or lacks the entry
        """
        names = list(names)
        try:
            with zipfile.ZipFile(archive_path, "r") as zip_file:
                members = zip_file.namelist()
                member = _match_member(members, names)
                if member is None:
                    logger.warning(
                        f"{archive_path.name} has no entry named {names}; extracting all of {members}"
                    )
                    zip_file.extractall(dest_path.parent)
                else:
                    dest_path.parent.mkdir(parents=True, exist_ok=True)
                    with zip_file.open(member) as src, open(dest_path, "wb") as dst:
                        dst.write(src.read())
        except (OSError, zipfile.BadZipFile) as e:
            raise ExtractionError(f"Failed to extract {archive_path}: {e}") from e

        if not dest_path.exists():
            raise ExtractionError(f"{archive_path.name} does not contain {names}")
        return dest_path


def _match_member(members: Iterable[str], names: Iterable[str]) -> Optional[str]:
    members = list(members)
    for name in names:
        if name in members:
            return name
    for name in names:
        for member in members:
            if member.endswith("/" + name):
                return member
    return None


def _safe_extractall(tar: tarfile.TarFile, dest_dir: Path) -> None:
    root = dest_dir.resolve()
    for member in tar.getmembers():
        target = (dest_dir / member.name).resolve()
        if target != root and root not in target.parents:
            raise ExtractionError(f"Archive entry escapes extraction directory: {member.name}")
    tar.extractall(dest_dir)
