"""Unit tests for the environment snapshot."""

from pathlib import Path

import pytest

from crashpad_build import __version__
from crashpad_build.config.environment import BuildEnvironment
from crashpad_build.errors import ConfigurationError


class TestBuildEnvironment:
    """Tests for BuildEnvironment.from_env()."""

    def test_minimal(self, tmp_path):
        env = BuildEnvironment.from_env(
            {"TARGET": "x86_64-unknown-linux-gnu", "CARGO_MANIFEST_DIR": str(tmp_path)}
        )
        assert env.target == "x86_64-unknown-linux-gnu"
        assert env.host == env.target
        assert env.profile == "debug"
        assert env.manifest_dir == tmp_path
        assert env.strategy is None
        assert env.link_type == "static"
        assert env.crashpad_version == __version__
        assert not env.is_cross_compile

    def test_missing_target(self):
        with pytest.raises(ConfigurationError, match="TARGET environment variable not set"):
            BuildEnvironment.from_env({})

    def test_invalid_profile(self):
        with pytest.raises(ConfigurationError, match="Unsupported PROFILE"):
            BuildEnvironment.from_env({"TARGET": "x86_64-unknown-linux-gnu", "PROFILE": "bench"})

    def test_invalid_strategy(self):
        with pytest.raises(ConfigurationError, match="CRASHPAD_BUILD_STRATEGY"):
            BuildEnvironment.from_env(
                {"TARGET": "x86_64-unknown-linux-gnu", "CRASHPAD_BUILD_STRATEGY": "magic"}
            )

    def test_invalid_directive_dialect(self):
        with pytest.raises(ConfigurationError, match="CRASHPAD_DIRECTIVE_DIALECT 'json'"):
            BuildEnvironment.from_env(
                {"TARGET": "x86_64-unknown-linux-gnu", "CRASHPAD_DIRECTIVE_DIALECT": "json"}
            )

    def test_plain_directive_dialect(self):
        env = BuildEnvironment.from_env(
            {"TARGET": "x86_64-unknown-linux-gnu", "CRASHPAD_DIRECTIVE_DIALECT": "plain"}
        )
        assert env.directive_dialect == "plain"

    def test_all_inputs(self, tmp_path):
        env = BuildEnvironment.from_env(
            {
                "TARGET": "aarch64-linux-android",
                "HOST": "x86_64-unknown-linux-gnu",
                "PROFILE": "release",
                "OUT_DIR": str(tmp_path / "out"),
                "CRASHPAD_BUILD_VERBOSE": "1",
                "CRASHPAD_EXTRA_FLAGS": "-DA=1  -DB=2",
                "CRASHPAD_LINK_TYPE": "dynamic",
                "CRASHPAD_VERSION": "0.3.0",
                "CRASHPAD_BUILD_STRATEGY": "prebuilt",
                "CRASHPAD_PROCESS_TIMEOUT": "900",
                "CRASHPAD_DOWNLOAD_RETRIES": "5",
                "CRASHPAD_DIRECTIVE_DIALECT": "plain",
            }
        )
        assert env.is_cross_compile
        assert env.profile == "release"
        assert env.out_dir == tmp_path / "out"
        assert env.verbose is True
        assert env.extra_flags == ("-DA=1", "-DB=2")
        assert env.link_type == "shared"
        assert env.crashpad_version == "0.3.0"
        assert env.strategy == "prebuilt"
        assert env.process_timeout == 900.0
        assert env.download_retries == 5
        assert env.directive_dialect == "plain"

    @pytest.mark.parametrize("value", ["abc", "0", "-5"])
    def test_invalid_timeout(self, value):
        with pytest.raises(ConfigurationError, match="CRASHPAD_PROCESS_TIMEOUT"):
            BuildEnvironment.from_env({"TARGET": "x86_64-unknown-linux-gnu", "CRASHPAD_PROCESS_TIMEOUT": value})

    def test_get_reads_snapshot(self):
        env = BuildEnvironment.from_env({"TARGET": "x86_64-unknown-linux-gnu", "ANDROID_HOME": "/sdk"})
        assert env.get("ANDROID_HOME") == "/sdk"
        assert env.get("MISSING", "fallback") == "fallback"

    def test_with_overrides_returns_copy(self):
        env = BuildEnvironment.from_env({"TARGET": "x86_64-unknown-linux-gnu"})
        verbose = env.with_overrides(verbose=True)
        assert verbose.verbose is True
        assert env.verbose is False


class TestTargetRoot:
    """Tests for BuildEnvironment.target_root."""

    def test_explicit_target_dir(self, tmp_path):
        env = BuildEnvironment(target="x", host="x", target_dir=tmp_path / "custom")
        assert env.target_root == tmp_path / "custom"

    def test_found_above_out_dir(self, tmp_path):
        out_dir = tmp_path / "target" / "debug" / "build" / "crashpad-sys-1234" / "out"
        env = BuildEnvironment(target="x", host="x", out_dir=out_dir)
        assert env.target_root == tmp_path / "target"

    def test_falls_back_to_workspace(self, tmp_path):
        env = BuildEnvironment(target="x", host="x", manifest_dir=tmp_path / "ws" / "crashpad-sys")
        assert env.target_root == Path(tmp_path / "ws" / "target")
