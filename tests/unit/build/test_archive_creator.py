"""Unit tests for static library creation."""

from pathlib import Path

import pytest

from crashpad_build.build.archive_creator import ArchiveCreator, archiver_style
from crashpad_build.build.process_runner import ProcessResult
from crashpad_build.errors import ExternalProcessError, PostconditionError


class TestArchiverStyle:
    @pytest.mark.parametrize(
        "archiver,style",
        [
            ("ar", "ar"),
            ("/opt/ndk/bin/llvm-ar", "ar"),
            ("libtool", "libtool"),
            ("/usr/bin/libtool", "libtool"),
            ("lib.exe", "lib"),
            ("llvm-lib", "lib"),
        ],
    )
    def test_style(self, archiver, style):
        assert archiver_style(archiver) == style


class TestArchiveCreator:
    """Tests for ArchiveCreator."""

    def test_ar_command(self, recording_runner, tmp_path):
        creator = ArchiveCreator(recording_runner)
        cmd = creator.build_command("ar", tmp_path / "libcrashpad_wrapper.a", [tmp_path / "wrapper.o"])
        assert cmd == ["ar", "rcs", str(tmp_path / "libcrashpad_wrapper.a"), str(tmp_path / "wrapper.o")]

    def test_libtool_merges_archives(self, recording_runner, tmp_path):
        creator = ArchiveCreator(recording_runner)
        cmd = creator.build_command(
            "libtool", tmp_path / "libcrashpad_wrapper.a", [tmp_path / "wrapper.o"], [tmp_path / "libclient.a"]
        )
        assert cmd == [
            "libtool",
            "-static",
            "-o",
            str(tmp_path / "libcrashpad_wrapper.a"),
            str(tmp_path / "wrapper.o"),
            str(tmp_path / "libclient.a"),
        ]

    def test_lib_exe_command(self, recording_runner, tmp_path):
        creator = ArchiveCreator(recording_runner)
        cmd = creator.build_command("lib.exe", tmp_path / "crashpad_wrapper.lib", [tmp_path / "wrapper.obj"])
        assert cmd == ["lib.exe", "/nologo", f"/OUT:{tmp_path / 'crashpad_wrapper.lib'}", str(tmp_path / "wrapper.obj")]

    def test_create_archive(self, recording_runner, tmp_path):
        archive = tmp_path / "out" / "libcrashpad_wrapper.a"
        result = ArchiveCreator(recording_runner).create_archive("ar", archive, [tmp_path / "wrapper.o"])

        assert result == archive
        assert archive.exists()
        assert recording_runner.programs() == ["ar"]

    def test_stale_archive_is_replaced(self, recording_runner, tmp_path):
        archive = tmp_path / "libcrashpad_wrapper.a"
        archive.write_bytes(b"stale contents")

        ArchiveCreator(recording_runner).create_archive("ar", archive, [tmp_path / "wrapper.o"])

        assert archive.read_bytes() == b"!<arch>\n"

    def test_no_objects(self, recording_runner, tmp_path):
        with pytest.raises(ValueError, match="No object files"):
            ArchiveCreator(recording_runner).create_archive("ar", tmp_path / "lib.a", [])

    def test_archiver_failure(self, recording_runner, tmp_path):
        recording_runner.failures["ar"] = 1
        with pytest.raises(ExternalProcessError):
            ArchiveCreator(recording_runner).create_archive("ar", tmp_path / "lib.a", [Path("wrapper.o")])

    def test_missing_output_is_postcondition_error(self, recording_runner, tmp_path):
        recording_runner.handlers["ar"] = lambda args: ProcessResult(command=args, returncode=0)
        with pytest.raises(PostconditionError, match="was not created"):
            ArchiveCreator(recording_runner).create_archive("ar", tmp_path / "lib.a", [Path("wrapper.o")])
