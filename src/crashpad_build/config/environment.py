"""Environment inputs for a build invocation.

The enclosing build orchestrator communicates everything through environment
variables. BuildEnvironment takes one immutable snapshot of them so the rest
of the pipeline never reads os.environ directly.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional, Tuple

from .. import __version__
from ..errors import ConfigurationError
from ..metadata import DIALECTS

# Variables whose change must invalidate the orchestrator's cached build
WATCHED_VARIABLES = (
    "TARGET",
    "PROFILE",
    "CXX",
    "AR",
    "ANDROID_NDK_HOME",
    "ANDROID_NDK_ROOT",
    "NDK_HOME",
    "DEVELOPER_DIR",
    "CRASHPAD_SOURCE_DIR",
    "CRASHPAD_CACHE_DIR",
    "CRASHPAD_BUILD_VERBOSE",
    "CRASHPAD_EXTRA_FLAGS",
    "CRASHPAD_LINK_TYPE",
    "CRASHPAD_VERSION",
    "CRASHPAD_REVISION",
    "CRASHPAD_GN_VERSION",
    "CRASHPAD_NINJA_VERSION",
    "CRASHPAD_BUILD_STRATEGY",
)

STRATEGIES = ("source", "depot", "prebuilt")
PROFILES = ("debug", "release")


def _optional_path(value: Optional[str]) -> Optional[Path]:
    return Path(value) if value else None


def _parse_float(name: str, value: Optional[str]) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        parsed = float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number of seconds, got '{value}'")
    if parsed <= 0:
        raise ConfigurationError(f"{name} must be positive, got '{value}'")
    return parsed


@dataclass(frozen=True)
class BuildEnvironment:
    """Immutable snapshot of the environment driving one pipeline invocation.

    Attributes:
        target: Target triple (e.g., 'x86_64-unknown-linux-gnu')
        host: Host triple; equals target for native builds
        profile: 'debug' or 'release'
        manifest_dir: Directory holding wrapper.h, crashpad_wrapper.cc and third_party/
        out_dir: Per-invocation output directory (None: derived from target_root)
        target_dir: Explicit artifact root (CARGO_TARGET_DIR)
        source_dir: Explicit Crashpad checkout override
        cache_dir: Explicit cache root override
        verbose: Verbose diagnostics
        cxx: Compiler override
        ar: Archiver override
        extra_flags: Extra compile flags for the glue translation unit
        link_type: 'static' or 'shared'
        crashpad_version: Release version used for prebuilt packages
        crashpad_revision: Optional Crashpad git revision to check out
        gn_version: GN version pin override
        ninja_version: Ninja version pin override
        strategy: Explicit strategy ('source', 'depot', 'prebuilt') or None
        prebuilt_url: URL template override for prebuilt packages
        process_timeout: Timeout for each subprocess, in seconds (None: no limit)
        download_timeout: Timeout for each download request, in seconds
        download_retries: Attempts per download before giving up
        directive_dialect: Metadata channel dialect
        variables: The raw variables the snapshot was taken from
    """

    target: str
    host: str
    profile: str = "debug"
    manifest_dir: Path = field(default_factory=Path.cwd)
    out_dir: Optional[Path] = None
    target_dir: Optional[Path] = None
    source_dir: Optional[Path] = None
    cache_dir: Optional[Path] = None
    verbose: bool = False
    cxx: Optional[str] = None
    ar: Optional[str] = None
    extra_flags: Tuple[str, ...] = ()
    link_type: str = "static"
    crashpad_version: str = __version__
    crashpad_revision: Optional[str] = None
    gn_version: Optional[str] = None
    ninja_version: Optional[str] = None
    strategy: Optional[str] = None
    prebuilt_url: Optional[str] = None
    process_timeout: Optional[float] = None
    download_timeout: float = 60.0
    download_retries: int = 3
    directive_dialect: str = "cargo"
    variables: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BuildEnvironment":
        """Take a snapshot of the environment.

        Args:
            environ: Variables to read (default: os.environ)

        Returns:
            BuildEnvironment snapshot

        Raises:
            ConfigurationError: If TARGET is missing or a value is invalid
        """
        env = dict(os.environ if environ is None else environ)

        target = env.get("TARGET", "").strip()
        if not target:
            raise ConfigurationError(
                "TARGET environment variable not set. "
                + "Set it to a target triple such as x86_64-unknown-linux-gnu."
            )

        profile = env.get("PROFILE", "debug") or "debug"
        if profile not in PROFILES:
            raise ConfigurationError(f"Unsupported PROFILE '{profile}'. Expected one of {PROFILES}")

        strategy = env.get("CRASHPAD_BUILD_STRATEGY") or None
        if strategy is not None and strategy not in STRATEGIES:
            raise ConfigurationError(
                f"Unsupported CRASHPAD_BUILD_STRATEGY '{strategy}'. Expected one of {STRATEGIES}"
            )

        dialect = env.get("CRASHPAD_DIRECTIVE_DIALECT") or "cargo"
        if dialect not in DIALECTS:
            raise ConfigurationError(
                f"Unsupported CRASHPAD_DIRECTIVE_DIALECT '{dialect}'. Expected one of {tuple(DIALECTS)}"
            )

        link_type = "shared" if env.get("CRASHPAD_LINK_TYPE") in ("shared", "dynamic") else "static"

        retries_raw = env.get("CRASHPAD_DOWNLOAD_RETRIES", "3")
        try:
            retries = int(retries_raw)
        except ValueError:
            raise ConfigurationError(f"CRASHPAD_DOWNLOAD_RETRIES must be an integer, got '{retries_raw}'")
        if retries < 1:
            raise ConfigurationError("CRASHPAD_DOWNLOAD_RETRIES must be at least 1")

        download_timeout = _parse_float("CRASHPAD_DOWNLOAD_TIMEOUT", env.get("CRASHPAD_DOWNLOAD_TIMEOUT"))

        manifest_dir = Path(env.get("CARGO_MANIFEST_DIR") or Path.cwd())

        return cls(
            target=target,
            host=env.get("HOST") or target,
            profile=profile,
            manifest_dir=manifest_dir,
            out_dir=_optional_path(env.get("OUT_DIR")),
            target_dir=_optional_path(env.get("CARGO_TARGET_DIR")),
            source_dir=_optional_path(env.get("CRASHPAD_SOURCE_DIR")),
            cache_dir=_optional_path(env.get("CRASHPAD_CACHE_DIR")),
            verbose="CRASHPAD_BUILD_VERBOSE" in env,
            cxx=env.get("CXX") or None,
            ar=env.get("AR") or None,
            extra_flags=tuple(env.get("CRASHPAD_EXTRA_FLAGS", "").split()),
            link_type=link_type,
            crashpad_version=env.get("CRASHPAD_VERSION") or env.get("CARGO_PKG_VERSION") or __version__,
            crashpad_revision=env.get("CRASHPAD_REVISION") or None,
            gn_version=env.get("CRASHPAD_GN_VERSION") or None,
            ninja_version=env.get("CRASHPAD_NINJA_VERSION") or None,
            strategy=strategy,
            prebuilt_url=env.get("CRASHPAD_PREBUILT_URL") or None,
            process_timeout=_parse_float("CRASHPAD_PROCESS_TIMEOUT", env.get("CRASHPAD_PROCESS_TIMEOUT")),
            download_timeout=download_timeout if download_timeout is not None else 60.0,
            download_retries=retries,
            directive_dialect=dialect,
            variables=tuple(sorted(env.items())),
        )

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Look up a raw variable from the snapshot."""
        for key, value in self.variables:
            if key == name:
                return value
        return default

    def with_overrides(self, **changes) -> "BuildEnvironment":
        """Return a copy with some fields replaced (used by CLI flags)."""
        return replace(self, **changes)

    @property
    def is_cross_compile(self) -> bool:
        return self.host != self.target

    @property
    def target_root(self) -> Path:
        """Root of the per-target artifact tree.

        CARGO_TARGET_DIR when set, else the nearest 'target' directory above
        OUT_DIR, else <workspace>/target.
        """
        if self.target_dir is not None:
            return self.target_dir
        if self.out_dir is not None:
            for parent in list(self.out_dir.parents)[:5]:
                if parent.name == "target":
                    return parent
        return self.manifest_dir.parent / "target"
