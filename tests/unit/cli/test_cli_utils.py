"""Unit tests for CLI utilities."""

import logging
import sys

import pytest

from crashpad_build.cli_utils import ErrorFormatter, PathValidator, setup_logging
from crashpad_build.errors import ConfigurationError, ExternalProcessError


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_logs_go_to_stderr(self, capsys):
        setup_logging()
        logging.getLogger("crashpad_build.test").info("hello from the pipeline")

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "hello from the pipeline" in captured.err

    def test_repeated_setup_keeps_one_handler(self):
        setup_logging()
        setup_logging(verbose=True)

        ours = [h for h in logging.getLogger().handlers if getattr(h, "_crashpad_build", False)]
        assert len(ours) == 1
        assert ours[0].level == logging.DEBUG
        assert ours[0].stream is sys.stderr


class TestErrorFormatter:
    """Tests for ErrorFormatter."""

    def test_print_error(self, capsys):
        ErrorFormatter.print_error("Build failed", "details")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "✗ Build failed" in captured.err
        assert "details" in captured.err

    def test_print_success(self, capsys):
        ErrorFormatter.print_success("done")
        assert "✓ done" in capsys.readouterr().err

    def test_build_error_with_phase(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            ErrorFormatter.handle_build_error(ConfigurationError("ANDROID_NDK_HOME not set", phase="resolve"))

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "Build failed in phase 'resolve'" in err
        assert "ANDROID_NDK_HOME not set" in err
        assert "[resolve]" not in err

    def test_build_error_without_phase(self, capsys):
        with pytest.raises(SystemExit):
            ErrorFormatter.handle_build_error(ConfigurationError("bad"))
        assert "Build failed\n" in capsys.readouterr().err.replace("\033[0m", "")

    def test_external_process_output_is_verbatim(self, capsys):
        error = ExternalProcessError(
            "ninja failed",
            command=["ninja", "-C", "out"],
            returncode=1,
            stdout="[1/2] CXX obj/client.o",
            stderr="fatal error: 'windows.h' file not found",
            phase="build",
        )
        with pytest.raises(SystemExit):
            ErrorFormatter.handle_build_error(error)

        err = capsys.readouterr().err
        assert "command: ninja -C out" in err
        assert "[1/2] CXX obj/client.o" in err
        assert "fatal error: 'windows.h' file not found" in err

    def test_keyboard_interrupt(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            ErrorFormatter.handle_keyboard_interrupt()
        assert exc_info.value.code == 130
        assert "Build interrupted" in capsys.readouterr().err

    def test_unexpected_error_with_traceback(self, capsys):
        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            with pytest.raises(SystemExit) as exc_info:
                ErrorFormatter.handle_unexpected_error(e, verbose=True)

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "RuntimeError: boom" in err
        assert "Traceback:" in err


class TestPathValidator:
    def test_missing_path(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            PathValidator.validate_dir(tmp_path / "missing")
        assert exc_info.value.code == 2
        assert "Path does not exist" in capsys.readouterr().err

    def test_file_is_not_a_directory(self, tmp_path):
        path = tmp_path / "file"
        path.write_text("")
        with pytest.raises(SystemExit) as exc_info:
            PathValidator.validate_dir(path)
        assert exc_info.value.code == 2

    def test_directory(self, tmp_path):
        PathValidator.validate_dir(tmp_path)
