"""Shared fixtures for the crashpad-build unit tests.

Fakes:
    - RecordingRunner: records commands and simulates gn, ninja, the compiler
      and the archiver by creating the files they would produce
    - MemoryCacheStore: cache store whose validity lives in memory
    - FailingSession: requests-like session that fails a given number of times
"""

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
import requests

from crashpad_build.build.process_runner import ProcessResult, ProcessRunner
from crashpad_build.config.environment import BuildEnvironment
from crashpad_build.errors import ExternalProcessError
from crashpad_build.packages.cache import CacheEntry, CacheStore

PREPROCESSED_HEADER = """\
# 1 "/work/crashpad-sys/wrapper.h"
# 1 "<built-in>" 1
# 1 "/usr/include/stdbool.h" 1 3 4
typedef int system_only_t;
# 7 "/work/crashpad-sys/wrapper.h" 2
# 1 "/usr/include/stddef.h" 1 3 4
typedef unsigned long size_t;
# 8 "/work/crashpad-sys/wrapper.h" 2

typedef void* crashpad_client_t;

crashpad_client_t crashpad_client_new();

void crashpad_client_delete(crashpad_client_t client);

_Bool crashpad_client_start_handler(
    crashpad_client_t client,
    const char* handler_path,
    const char* database_path,
    const char* metrics_path,
    const char* url,
    const char** annotations_keys,
    const char** annotations_values,
    size_t annotations_count);
"""


class RecordingRunner(ProcessRunner):
    """ProcessRunner that never spawns anything.

    Commands are recorded in order. Programs are simulated by basename:
    gn creates the build dir, ninja creates the handler, the compiler writes
    its -o/-Fo object or returns PREPROCESSED_HEADER for -E, archivers create
    their output. Individual programs can be made to fail or raise.
    """

    def __init__(self):
        super().__init__()
        self.commands: List[List[str]] = []
        self.failures: Dict[str, int] = {}
        self.raises: Dict[str, BaseException] = {}
        self.handlers: Dict[str, Callable[[List[str]], Optional[ProcessResult]]] = {}
        self.probe_ok = True
        self.handler_name = "crashpad_handler"

    def programs(self) -> List[str]:
        return [Path(cmd[0]).name for cmd in self.commands]

    def run(self, command, cwd=None, env=None, timeout=None, check=True) -> ProcessResult:
        args = [str(part) for part in command]
        self.commands.append(args)
        program = Path(args[0]).name

        if program in self.raises:
            raise self.raises[program]
        if program in self.failures:
            if check:
                raise ExternalProcessError(
                    f"{program} failed",
                    command=args,
                    returncode=self.failures[program],
                    stdout="",
                    stderr=f"{program}: simulated failure",
                )
            return ProcessResult(command=args, returncode=self.failures[program])

        handler = self.handlers.get(program)
        if handler is not None:
            result = handler(args)
            if result is not None:
                return result

        stdout = self._simulate(program, args)
        return ProcessResult(command=args, returncode=0, stdout=stdout)

    def _simulate(self, program: str, args: List[str]) -> str:
        if program == "gn" and "gen" in args:
            Path(args[args.index("gen") + 1]).mkdir(parents=True, exist_ok=True)
        elif program == "ninja" and "-C" in args:
            build_dir = Path(args[args.index("-C") + 1])
            build_dir.mkdir(parents=True, exist_ok=True)
            (build_dir / self.handler_name).write_bytes(b"\x7fELF handler")
        elif "-E" in args or "/E" in args:
            return PREPROCESSED_HEADER
        elif "-o" in args and "-c" in args:
            _touch(Path(args[args.index("-o") + 1]))
        elif any(a.startswith("/Fo") for a in args):
            _touch(Path(next(a for a in args if a.startswith("/Fo"))[3:]))
        elif program == "libtool" and "-o" in args:
            _touch(Path(args[args.index("-o") + 1]))
        elif any(a.startswith("/OUT:") for a in args):
            _touch(Path(next(a for a in args if a.startswith("/OUT:"))[5:]))
        elif len(args) > 2 and args[1] == "rcs":
            _touch(Path(args[2]))
        return ""

    def probe(self, command, timeout: float = 30.0) -> bool:
        self.commands.append([str(part) for part in command])
        return self.probe_ok


def _touch(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"!<arch>\n")


class MemoryCacheStore(CacheStore):
    """Cache store that tracks validity in memory; directories live on disk."""

    def __init__(self, root: Path):
        super().__init__(root)
        self.valid = set()
        self.prepared: List[CacheEntry] = []

    def is_valid(self, entry: CacheEntry) -> bool:
        return entry in self.valid

    def prepare(self, entry: CacheEntry) -> Path:
        self.prepared.append(entry)
        entry.path.mkdir(parents=True, exist_ok=True)
        return entry.path

    def mark_valid(self, entry: CacheEntry) -> None:
        self.valid.add(entry)

    def invalidate(self, entry: CacheEntry) -> None:
        self.valid.discard(entry)


class FakeResponse:
    def __init__(self, content: bytes = b"", status_code: int = 200):
        self.content = content
        self.status_code = status_code
        self.headers = {"content-length": str(len(content))}

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)

    def iter_content(self, chunk_size: int = 8192):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i : i + chunk_size]


class FailingSession:
    """Session whose first responses are failures.

    Each item of `failures` is either an exception instance to raise or an
    HTTP status code to answer with; once exhausted, `content` is served.
    """

    def __init__(self, failures=(), content: bytes = b"payload"):
        self.failures = list(failures)
        self.content = content
        self.calls: List[str] = []

    def get(self, url, stream=False, timeout=None):
        self.calls.append(url)
        if self.failures:
            failure = self.failures.pop(0)
            if isinstance(failure, BaseException):
                raise failure
            return FakeResponse(status_code=failure)
        return FakeResponse(self.content)


@pytest.fixture
def preprocessed_header():
    """Preprocessor output for wrapper.h with system-header noise."""
    return PREPROCESSED_HEADER


@pytest.fixture
def recording_runner():
    """A fresh RecordingRunner."""
    return RecordingRunner()


@pytest.fixture
def memory_cache(tmp_path):
    """An in-memory cache store rooted in the temp directory."""
    return MemoryCacheStore(tmp_path / "cache")


@pytest.fixture
def failing_session():
    """Factory for FailingSession instances."""
    return FailingSession


@pytest.fixture
def manifest_dir(tmp_path):
    """A package directory with the glue sources and a Crashpad checkout."""
    manifest = tmp_path / "workspace" / "crashpad-sys"
    checkout = manifest / "third_party" / "crashpad"
    (checkout / "third_party" / "mini_chromium" / "mini_chromium").mkdir(parents=True)
    (checkout / "BUILD.gn").write_text("# crashpad\n")
    (manifest / "wrapper.h").write_text("typedef void* crashpad_client_t;\n")
    (manifest / "crashpad_wrapper.cc").write_text('#include "wrapper.h"\n')
    return manifest


@pytest.fixture
def make_env(tmp_path, manifest_dir):
    """Factory for BuildEnvironment snapshots rooted in the temp directory."""

    def _make(target: str = "x86_64-unknown-linux-gnu", variables: Optional[Dict[str, str]] = None, **fields):
        fields.setdefault("host", target)
        fields.setdefault("manifest_dir", manifest_dir)
        fields.setdefault("target_dir", tmp_path / "target")
        fields.setdefault("cache_dir", tmp_path / "cache")
        return BuildEnvironment(
            target=target,
            variables=tuple(sorted((variables or {}).items())),
            **fields,
        )

    return _make


@pytest.fixture(autouse=True)
def reset_cli_logging():
    """Drop the console handler CLI commands install on the root logger."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_crashpad_build", False):
            root.removeHandler(handler)
