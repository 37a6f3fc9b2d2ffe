"""Unit tests for the package downloader."""

import tarfile
import zipfile

import pytest
import requests

from crashpad_build.errors import DownloadError, ExtractionError, ProcessTimeoutError
from crashpad_build.packages.downloader import PackageDownloader


def make_downloader(session, retries=3):
    delays = []
    downloader = PackageDownloader(
        session=session, retries=retries, backoff=0.5, show_progress=False, sleep=delays.append
    )
    return downloader, delays


class TestDownload:
    """Tests for PackageDownloader.download()."""

    def test_success(self, failing_session, tmp_path):
        session = failing_session(content=b"gn binary")
        downloader, delays = make_downloader(session)

        path = downloader.download("https://example.com/gn.zip", tmp_path / "gn.zip")

        assert path.read_bytes() == b"gn binary"
        assert delays == []
        assert not (tmp_path / "gn.zip.tmp").exists()

    def test_retries_transient_failures_with_backoff(self, failing_session, tmp_path):
        session = failing_session(failures=[requests.ConnectionError("reset"), 503])
        downloader, delays = make_downloader(session)

        path = downloader.download("https://example.com/gn.zip", tmp_path / "gn.zip")

        assert path.read_bytes() == b"payload"
        assert len(session.calls) == 3
        assert delays == [0.5, 1.0]

    def test_gives_up_after_bounded_attempts(self, failing_session, tmp_path):
        session = failing_session(failures=[requests.ConnectionError("down")] * 5)
        downloader, delays = make_downloader(session, retries=3)

        with pytest.raises(DownloadError) as exc_info:
            downloader.download("https://example.com/ninja.zip", tmp_path / "ninja.zip")

        assert len(session.calls) == 3
        assert len(delays) == 2
        assert exc_info.value.url == "https://example.com/ninja.zip"
        assert "https://example.com/ninja.zip" in str(exc_info.value)
        assert not (tmp_path / "ninja.zip").exists()

    def test_permanent_http_error_is_not_retried(self, failing_session, tmp_path):
        session = failing_session(failures=[404])
        downloader, delays = make_downloader(session)

        with pytest.raises(DownloadError, match="HTTP 404"):
            downloader.download("https://example.com/missing.tar.gz", tmp_path / "x.tar.gz")

        assert len(session.calls) == 1
        assert delays == []

    def test_broken_body_is_retried(self, failing_session, tmp_path):
        session = failing_session(
            failures=[requests.exceptions.ChunkedEncodingError("Connection broken: IncompleteRead")]
        )
        downloader, delays = make_downloader(session)

        path = downloader.download("https://example.invalid/gn.zip", tmp_path / "gn.zip")

        assert path.read_bytes() == b"payload"
        assert len(session.calls) == 2
        assert delays == [0.5]

    def test_broken_body_gives_up_with_url(self, failing_session, tmp_path):
        session = failing_session(failures=[requests.exceptions.ChunkedEncodingError("IncompleteRead")] * 3)
        downloader, _delays = make_downloader(session, retries=3)

        with pytest.raises(DownloadError) as exc_info:
            downloader.download("https://example.invalid/gn.zip", tmp_path / "gn.zip")

        assert len(session.calls) == 3
        assert exc_info.value.url == "https://example.invalid/gn.zip"

    @pytest.mark.parametrize(
        "error",
        [
            requests.exceptions.MissingSchema("No scheme supplied"),
            requests.exceptions.InvalidURL("bad host"),
            requests.exceptions.TooManyRedirects("Exceeded 30 redirects"),
            requests.exceptions.ContentDecodingError("bad gzip"),
        ],
    )
    def test_other_request_errors_are_download_errors(self, failing_session, tmp_path, error):
        session = failing_session(failures=[error])
        downloader, delays = make_downloader(session)

        with pytest.raises(DownloadError) as exc_info:
            downloader.download("https://example.invalid/pkg.tar.gz", tmp_path / "pkg.tar.gz")

        assert len(session.calls) == 1
        assert delays == []
        assert exc_info.value.url == "https://example.invalid/pkg.tar.gz"

    def test_timeouts_surface_as_timeout_error(self, failing_session, tmp_path):
        session = failing_session(failures=[requests.Timeout("slow")] * 2)
        downloader, _delays = make_downloader(session, retries=2)

        with pytest.raises(ProcessTimeoutError):
            downloader.download("https://example.com/gn.zip", tmp_path / "gn.zip")


class TestExtraction:
    """Tests for archive extraction."""

    def test_extract_member_exact_name(self, tmp_path):
        archive = tmp_path / "gn.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("gn", "binary")
            zf.writestr(".versions/gn.cipd_version", "{}")

        dest = PackageDownloader(show_progress=False).extract_member(archive, ["gn"], tmp_path / "tools" / "gn")

        assert dest.read_text() == "binary"
        assert not (tmp_path / "tools" / ".versions").exists()

    def test_extract_member_nested_name(self, tmp_path):
        archive = tmp_path / "ninja.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("bin/ninja", "binary")

        dest = PackageDownloader(show_progress=False).extract_member(archive, ["ninja"], tmp_path / "ninja")

        assert dest.read_text() == "binary"

    def test_extract_member_missing(self, tmp_path):
        archive = tmp_path / "gn.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("README", "nothing here")

        with pytest.raises(ExtractionError, match="does not contain"):
            PackageDownloader(show_progress=False).extract_member(archive, ["gn"], tmp_path / "out" / "gn")

    def test_extract_member_corrupt_archive(self, tmp_path):
        archive = tmp_path / "gn.zip"
        archive.write_bytes(b"not a zip")

        with pytest.raises(ExtractionError):
            PackageDownloader(show_progress=False).extract_member(archive, ["gn"], tmp_path / "gn")

    def test_extract_tarball(self, tmp_path):
        payload = tmp_path / "payload"
        payload.mkdir()
        (payload / "libclient.a").write_bytes(b"!<arch>\n")
        archive = tmp_path / "pkg.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            tar.add(payload / "libclient.a", arcname="libclient.a")

        dest = PackageDownloader(show_progress=False).extract_archive(archive, tmp_path / "out")

        assert (dest / "libclient.a").read_bytes() == b"!<arch>\n"

    def test_extract_tarball_rejects_escaping_paths(self, tmp_path):
        evil = tmp_path / "evil.txt"
        evil.write_text("x")
        archive = tmp_path / "evil.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            tar.add(evil, arcname="../evil.txt")

        with pytest.raises(ExtractionError, match="escapes"):
            PackageDownloader(show_progress=False).extract_archive(archive, tmp_path / "out")

    def test_unsupported_format(self, tmp_path):
        archive = tmp_path / "pkg.rar"
        archive.write_bytes(b"x")
        with pytest.raises(ExtractionError, match="Unsupported archive format"):
            PackageDownloader(show_progress=False).extract_archive(archive, tmp_path / "out")
