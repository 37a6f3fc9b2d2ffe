"""Unit tests for depot_tools and gclient synchronization."""

import pytest

from crashpad_build.errors import ConfigurationError, PostconditionError
from crashpad_build.packages.source_sync import CRASHPAD_URL, DEPOT_TOOLS_URL, DepotTools, SourceSync


@pytest.fixture
def depot(tmp_path, recording_runner):
    return DepotTools(tmp_path / "depot_tools", recording_runner)


def fake_gclient(crashpad_dir):
    def handler(args):
        (crashpad_dir / "BUILD.gn").parent.mkdir(parents=True, exist_ok=True)
        (crashpad_dir / "BUILD.gn").write_text("# synced\n")

    return handler


class TestDepotTools:
    """Tests for DepotTools."""

    def test_clones_when_missing(self, depot, recording_runner):
        depot.ensure()
        assert recording_runner.commands == [
            ["git", "clone", "--depth", "1", DEPOT_TOOLS_URL, str(depot.path)]
        ]

    def test_existing_checkout_is_reused(self, depot, recording_runner):
        depot.path.mkdir()
        (depot.path / "gclient.py").write_text("")
        depot.ensure()
        assert recording_runner.commands == []

    def test_env_prepends_path(self, depot):
        env = depot.env()
        assert env["PATH"].startswith(str(depot.path))
        assert env["DEPOT_TOOLS_UPDATE"] == "0"


class TestSourceSync:
    """Tests for SourceSync.sync()."""

    def test_synced_checkout_is_left_alone(self, tmp_path, depot, recording_runner):
        crashpad = tmp_path / "src" / "crashpad"
        crashpad.mkdir(parents=True)
        (crashpad / "BUILD.gn").write_text("")

        assert SourceSync(crashpad, depot, recording_runner).sync() == crashpad
        assert recording_runner.commands == []

    def test_sync_writes_gclient_and_runs_sync(self, tmp_path, depot, recording_runner):
        crashpad = tmp_path / "src" / "crashpad"
        recording_runner.handlers["gclient"] = fake_gclient(crashpad)

        SourceSync(crashpad, depot, recording_runner, revision="abc123").sync()

        gclient = (tmp_path / "src" / ".gclient").read_text()
        assert '"name": "crashpad"' in gclient
        assert f"{CRASHPAD_URL}@abc123" in gclient
        sync_command = recording_runner.commands[-1]
        assert sync_command[1:] == ["sync", "--no-history"]

    def test_checkout_must_be_named_crashpad(self, tmp_path, depot, recording_runner):
        with pytest.raises(ConfigurationError, match="must be named 'crashpad'"):
            SourceSync(tmp_path / "checkout", depot, recording_runner).sync()
        assert recording_runner.commands == []

    def test_sync_without_result_is_postcondition_error(self, tmp_path, depot, recording_runner):
        with pytest.raises(PostconditionError, match="BUILD.gn"):
            SourceSync(tmp_path / "src" / "crashpad", depot, recording_runner).sync()
