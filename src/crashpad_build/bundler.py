"""Consumer-side handler bundling.

A program that links the Crashpad client still needs the crashpad_handler
executable next to it at runtime. The build pipeline distributes the handler
into its own artifact tree; crates or packages further down the dependency
graph use this module to place a copy where *their* binaries are built.

Handler sources, in order of precedence:
    1. CRASHPAD_HANDLER          explicit path set by the user
    2. DEP_CRASHPAD_HANDLER      published by the build that produced it
    3. an existing handler at the destination
    4. DEP_CRASHPAD_RS_HANDLER   passed through by an intermediate package

Example usage:
    from crashpad_build.bundler import HandlerBundler

    dest = HandlerBundler().bundle()
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Mapping, Optional

from .build.distributor import HANDLER_ENV_VAR
from .config.environment import BuildEnvironment
from .errors import CrashpadBuildError
from .metadata import MetadataChannel

logger = logging.getLogger(__name__)

SOURCE_VARIABLES = ("CRASHPAD_HANDLER", "DEP_CRASHPAD_HANDLER", "DEP_CRASHPAD_RS_HANDLER")


class HandlerNotFoundError(CrashpadBuildError):
    """Raised when no handler source or existing destination can be found."""

    pass


def handler_basename(target: str) -> str:
    """File name the handler is installed under for a target triple."""
    if "android" in target:
        return "libcrashpad_handler.so"
    if "windows" in target:
        return "crashpad_handler.exe"
    return "crashpad_handler"


def copy_atomic(source: Path, dest: Path) -> None:
    """Copy source to dest through a temporary file.

    Skipped when dest already has the same size and modification time.
    """
    if dest.exists():
        src_stat = source.stat()
        dest_stat = dest.stat()
        if src_stat.st_size == dest_stat.st_size and src_stat.st_mtime == dest_stat.st_mtime:
            logger.debug(f"{dest} is up to date")
            return

    dest.parent.mkdir(parents=True, exist_ok=True)
    temp = dest.with_suffix(".tmp")
    shutil.copy2(source, temp)
    try:
        os.replace(temp, dest)
    except OSError as e:
        # e.g. dest is held open on Windows
        logger.debug(f"Rename onto {dest} failed ({e}); copying directly")
        temp.unlink()
        if dest.exists():
            dest.unlink()
        shutil.copy2(source, dest)


def ensure_executable(path: Path) -> None:
    if os.name == "nt" or not path.exists():
        return
    mode = path.stat().st_mode
    if mode & 0o111 == 0:
        path.chmod(mode | 0o111)


class HandlerBundler:
    """Places crashpad_handler into the consumer's artifact tree."""

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        channel: Optional[MetadataChannel] = None,
    ):
        """Initialize bundler.

        Args:
            environ: Variables to read (default: os.environ)
            channel: Metadata channel (default: stdout, cargo dialect)
        """
        self.environ = dict(os.environ if environ is None else environ)
        self.channel = channel or MetadataChannel(
            dialect=self.environ.get("CRASHPAD_DIRECTIVE_DIALECT") or "cargo"
        )

    @property
    def target(self) -> str:
        return self.environ.get("TARGET", "")

    def target_root(self) -> Path:
        """Consumer's artifact root, resolved the same way the build pipeline does."""
        manifest = self.environ.get("CARGO_MANIFEST_DIR")
        if not manifest and not self.environ.get("CARGO_TARGET_DIR") and not self.environ.get("OUT_DIR"):
            return Path("target")

        target = self.target
        env = BuildEnvironment(
            target=target,
            host=self.environ.get("HOST") or target,
            manifest_dir=Path(manifest) if manifest else Path.cwd(),
            out_dir=Path(self.environ["OUT_DIR"]) if self.environ.get("OUT_DIR") else None,
            target_dir=Path(self.environ["CARGO_TARGET_DIR"]) if self.environ.get("CARGO_TARGET_DIR") else None,
        )
        return env.target_root

    def default_dest(self) -> Path:
        """Destination inside the consumer's artifact tree, created if missing."""
        root = self.target_root()
        profile = self.environ.get("PROFILE") or "debug"
        host = self.environ.get("HOST", "")
        if host and self.target and host != self.target:
            directory = root / self.target / profile
        else:
            directory = root / profile
        directory.mkdir(parents=True, exist_ok=True)
        return directory / handler_basename(self.target)

    def _source(self, name: str) -> Optional[Path]:
        value = self.environ.get(name)
        if not value:
            return None
        path = Path(value)
        if not path.exists():
            raise HandlerNotFoundError(f"{name} points to a missing handler: {path}")
        return path

    def _install(self, source: Path, dest: Path) -> Path:
        copy_atomic(source, dest)
        ensure_executable(dest)
        self.channel.env(HANDLER_ENV_VAR, dest)
        self.channel.rerun_if_changed(source)
        self.channel.warning(f"crashpad_handler copied to {dest}")
        return dest

    def _bundle_into(self, dest: Path) -> Path:
        for name in SOURCE_VARIABLES:
            self.channel.rerun_if_env_changed(name)

        for name in ("CRASHPAD_HANDLER", "DEP_CRASHPAD_HANDLER"):
            source = self._source(name)
            if source is not None:
                logger.info(f"Bundling handler from {name}={source}")
                return self._install(source, dest)

        if dest.exists():
            ensure_executable(dest)
            self.channel.env(HANDLER_ENV_VAR, dest)
            return dest

        source = self._source("DEP_CRASHPAD_RS_HANDLER")
        if source is not None:
            logger.info(f"Bundling handler from DEP_CRASHPAD_RS_HANDLER={source}")
            return self._install(source, dest)

        raise HandlerNotFoundError(
            "crashpad_handler not found. Set CRASHPAD_HANDLER or depend on a package "
            + f"exposing DEP_CRASHPAD_HANDLER. Expected at {dest}"
        )

    def bundle(self) -> Path:
        """Bundle the handler into the default destination.

        Returns:
            Path of the bundled handler

        Raises:
            HandlerNotFoundError: If no source is set and nothing is at the destination
        """
        return self._bundle_into(self.default_dest())

    def bundle_to(self, dest_dir: Path) -> Path:
        """Bundle the handler into dest_dir, using the target's handler file name."""
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        return self._bundle_into(dest_dir / handler_basename(self.target))

    def find(self) -> Path:
        """Locate the handler without copying anything.

        Returns:
            The first source variable's path, else the existing default destination

        Raises:
            HandlerNotFoundError: If neither exists
        """
        for name in SOURCE_VARIABLES:
            source = self._source(name)
            if source is not None:
                return source

        dest = self.default_dest()
        if dest.exists():
            return dest
        raise HandlerNotFoundError(
            f"crashpad_handler not found at {dest} and CRASHPAD_HANDLER/DEP_CRASHPAD_HANDLER not set"
        )


def bundle(environ: Optional[Mapping[str, str]] = None) -> Path:
    return HandlerBundler(environ).bundle()


def bundle_to(dest_dir: Path, environ: Optional[Mapping[str, str]] = None) -> Path:
    return HandlerBundler(environ).bundle_to(dest_dir)


def find(environ: Optional[Mapping[str, str]] = None) -> Path:
    return HandlerBundler(environ).find()
