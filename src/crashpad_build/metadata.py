"""Metadata channel consumed by the enclosing build orchestrator.

The channel is a line-oriented text stream on standard output, one directive
per line. Two dialects are supported:

    cargo:  cargo:rustc-link-search=native=/path
            cargo:rustc-link-lib=static=client
            cargo:rerun-if-changed=wrapper.h
            cargo:rustc-env=CRASHPAD_HANDLER_PATH=/path
            cargo:warning=text
            cargo:handler=/path

    plain:  link-search=native=/path
            link-lib=static=client
            rerun-if-changed=wrapper.h
            env=CRASHPAD_HANDLER_PATH=/path
            warning=text
            metadata=handler=/path

Library directives that refer to native search paths must come after at least
one search-path directive; the channel enforces this ordering.
"""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, TextIO, Tuple, Union

logger = logging.getLogger(__name__)

DIALECTS: Dict[str, Dict[str, str]] = {
    "cargo": {
        "link-search": "cargo:rustc-link-search=",
        "link-lib": "cargo:rustc-link-lib=",
        "rerun-if-changed": "cargo:rerun-if-changed=",
        "rerun-if-env-changed": "cargo:rerun-if-env-changed=",
        "env": "cargo:rustc-env=",
        "warning": "cargo:warning=",
        "metadata": "cargo:",
    },
    "plain": {
        "link-search": "link-search=",
        "link-lib": "link-lib=",
        "rerun-if-changed": "rerun-if-changed=",
        "rerun-if-env-changed": "rerun-if-env-changed=",
        "env": "env=",
        "warning": "warning=",
        "metadata": "metadata=",
    },
}


class DirectiveOrderError(Exception):
    """Raised when a library directive is emitted before any search path."""

    pass


@dataclass(frozen=True)
class Directive:
    """One emitted directive, kept for inspection by callers and tests."""

    kind: str
    value: str
    line: str


class MetadataChannel:
    """Writes directives to a stream and records them in order."""

    def __init__(self, stream: Optional[TextIO] = None, dialect: str = "cargo"):
        """Initialize the channel.

        Args:
            stream: Output stream (default: sys.stdout at write time)
            dialect: Directive dialect, 'cargo' or 'plain'

        Raises:
            ValueError: If the dialect is unknown
        """
        if dialect not in DIALECTS:
            raise ValueError(f"Unknown directive dialect: {dialect}. Available: {sorted(DIALECTS)}")
        self._stream = stream
        self.dialect = dialect
        self.directives: List[Directive] = []

    def _emit(self, kind: str, value: str) -> None:
        line = DIALECTS[self.dialect][kind] + value
        self.directives.append(Directive(kind=kind, value=value, line=line))
        stream = self._stream if self._stream is not None else sys.stdout
        stream.write(line + "\n")
        stream.flush()

    def link_search(self, path: Union[str, Path], kind: str = "native") -> None:
        """Declare a library search path."""
        value = f"{kind}={path}" if kind else str(path)
        self._emit("link-search", value)

    def link_lib(self, name: str, kind: Optional[str] = None) -> None:
        """Declare a library to link.

        Args:
            name: Library name without prefix/suffix
            kind: 'static', 'dylib', 'framework' or None for the linker default

        Raises:
            DirectiveOrderError: If a static library is declared before any search path
        """
        if kind == "static" and not self.search_paths():
            raise DirectiveOrderError(
                f"static library '{name}' declared before any link-search directive"
            )
        value = f"{kind}={name}" if kind else name
        self._emit("link-lib", value)

    def rerun_if_changed(self, path: Union[str, Path]) -> None:
        self._emit("rerun-if-changed", str(path))

    def rerun_if_env_changed(self, name: str) -> None:
        self._emit("rerun-if-env-changed", name)

    def env(self, name: str, value: Union[str, Path]) -> None:
        """Publish an environment variable to downstream compilation units."""
        self._emit("env", f"{name}={value}")

    def warning(self, text: str) -> None:
        """Publish a non-fatal warning."""
        logger.warning(text)
        for line in text.splitlines() or [""]:
            self._emit("warning", line)

    def metadata(self, key: str, value: Union[str, Path]) -> None:
        """Publish key/value metadata to dependent packages."""
        self._emit("metadata", f"{key}={value}")

    def search_paths(self) -> List[str]:
        """Return the values of all link-search directives emitted so far."""
        return [d.value for d in self.directives if d.kind == "link-search"]

    def of_kind(self, kind: str) -> List[str]:
        return [d.value for d in self.directives if d.kind == kind]


def emit_link_plan(
    channel: MetadataChannel,
    search_paths: Sequence[Union[str, Path]],
    static_libs: Sequence[str],
    static_kind: str = "static",
    system_libs: Sequence[Tuple[Optional[str], str]] = (),
    frameworks: Sequence[str] = (),
) -> None:
    """Emit link directives in the order the linker needs them.

    Search paths come first, then the static libraries (dependents before
    dependencies), then system libraries and frameworks.

    Args:
        channel: Metadata channel
        search_paths: Library search directories
        static_libs: Static libraries in link order
        static_kind: Link kind for static_libs ('static' or 'dylib')
        system_libs: (kind, name) pairs; kind None uses the linker default
        frameworks: Apple frameworks
    """
    for path in search_paths:
        channel.link_search(path)
    for name in static_libs:
        channel.link_lib(name, static_kind)
    for kind, name in system_libs:
        channel.link_lib(name, kind)
    for name in frameworks:
        channel.link_lib(name, "framework")
