"""
Build system components for crashpad-build.

This module provides the build system implementation including:
- Subprocess execution with timeouts and process-tree cancellation
- Static archive creation (ar, libtool, lib.exe)
- ctypes binding generation from the glue header
- Handler distribution

The phase implementations and the pipeline live in
crashpad_build.build.phases and crashpad_build.build.pipeline.
"""

from .archive_creator import ArchiveCreator, archiver_style
from .bindings import BindingError, BindingGenerator
from .distributor import HANDLER_ENV_VAR, ArtifactDistributor
from .process_runner import BuildLock, BuildLockError, ProcessResult, ProcessRunner, kill_process_tree

__all__ = [
    "ArchiveCreator",
    "archiver_style",
    "BindingError",
    "BindingGenerator",
    "HANDLER_ENV_VAR",
    "ArtifactDistributor",
    "BuildLock",
    "BuildLockError",
    "ProcessResult",
    "ProcessRunner",
    "kill_process_tree",
]
