"""
Command-line interface for crashpad-build.

This module provides the `crashpad-build` CLI tool. The enclosing build
orchestrator normally drives the pipeline through environment variables;
the flags here override them for manual runs.

stdout carries the metadata channel only. Logs, progress and summaries go to
stderr.
"""

import argparse
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from . import __version__
from .build.pipeline import BuildPipeline, PipelineResult
from .build.process_runner import BuildLock, ProcessRunner
from .bundler import HandlerBundler
from .cli_utils import ErrorFormatter, PathValidator, setup_logging
from .config.environment import STRATEGIES, BuildEnvironment
from .errors import BuildCancelledError, CrashpadBuildError
from .packages.cache import FileCacheStore, default_cache_root
from .packages.dependencies import DependencyLinker
from .packages.downloader import PackageDownloader
from .packages.tools import ToolAcquisition

LOCK_NAME = ".crashpad-build.lock"


@dataclass
class BuildArgs:
    """Arguments for the build and prebuilt commands."""

    target: Optional[str] = None
    profile: Optional[str] = None
    out_dir: Optional[Path] = None
    strategy: Optional[str] = None
    verbose: bool = False


@dataclass
class ToolsArgs:
    """Arguments for the tools command."""

    cache_dir: Optional[Path] = None
    gn_version: Optional[str] = None
    ninja_version: Optional[str] = None
    verbose: bool = False


@dataclass
class LinkDepsArgs:
    """Arguments for the link-deps command."""

    manifest_dir: Path
    crashpad_dir: Optional[Path] = None
    copy: bool = False
    verbose: bool = False


@dataclass
class FindHandlerArgs:
    """Arguments for the find-handler command."""

    bundle_to: Optional[Path] = None
    verbose: bool = False


def load_environment(args: BuildArgs, environ: Optional[Dict[str, str]] = None) -> BuildEnvironment:
    """Snapshot the environment with command-line overrides applied.

    String overrides go through BuildEnvironment.from_env so they are
    validated exactly like their environment variable counterparts.
    """
    variables = dict(os.environ if environ is None else environ)
    if args.target:
        variables["TARGET"] = args.target
    if args.profile:
        variables["PROFILE"] = args.profile
    if args.strategy:
        variables["CRASHPAD_BUILD_STRATEGY"] = args.strategy

    env = BuildEnvironment.from_env(variables)
    if args.out_dir is not None:
        env = env.with_overrides(out_dir=args.out_dir)
    if args.verbose:
        env = env.with_overrides(verbose=True)
    return env


def print_summary(result: PipelineResult) -> None:
    print(file=sys.stderr)
    for phase in result.phases:
        if phase.skipped:
            status = "cached"
        else:
            status = f"{phase.duration:.2f}s"
        print(f"  {phase.name:<10} {status}", file=sys.stderr)

    ErrorFormatter.print_success("Crashpad build successful!")
    print(file=sys.stderr)
    print(f"Strategy:  {result.strategy}", file=sys.stderr)
    print(f"Target:    {result.config.target}", file=sys.stderr)
    print(f"Library:   {result.config.static_library}", file=sys.stderr)
    if result.handler_path is not None:
        print(f"Handler:   {result.handler_path}", file=sys.stderr)
    print(f"Build time: {result.build_time:.2f}s", file=sys.stderr)


def build_command(args: BuildArgs) -> None:
    """Build Crashpad and emit link metadata.

    Examples:
        crashpad-build build                                   # Use TARGET/PROFILE from the environment
        crashpad-build build --target aarch64-linux-android    # Cross-compile for Android
        crashpad-build build --profile release --strategy depot
        crashpad-build build --verbose                         # Debug logging
    """
    try:
        env = load_environment(args)
        setup_logging(env.verbose)

        lock_path = env.target_root / env.target / env.profile / LOCK_NAME
        with BuildLock(lock_path):
            result = BuildPipeline(env).run()

        print_summary(result)
        sys.exit(0)

    except BuildCancelledError:
        ErrorFormatter.handle_keyboard_interrupt()
    except CrashpadBuildError as e:
        ErrorFormatter.handle_build_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def prebuilt_command(args: BuildArgs) -> None:
    """Fetch a prebuilt Crashpad package instead of building it."""
    args.strategy = "prebuilt"
    build_command(args)


def tools_command(args: ToolsArgs) -> None:
    """Download gn and ninja into the tool cache.

    Examples:
        crashpad-build tools                        # Default cache directory
        crashpad-build tools --cache-dir /tmp/cache # Explicit cache directory
    """
    setup_logging(args.verbose)
    try:
        cache_root = args.cache_dir or default_cache_root(os.environ)
        tools = ToolAcquisition(
            FileCacheStore(cache_root),
            ProcessRunner(verbose=args.verbose),
            PackageDownloader(),
            gn_version=args.gn_version,
            ninja_version=args.ninja_version,
        )
        paths = tools.ensure_all()

        ErrorFormatter.print_success("Build tools ready")
        print(f"gn:    {paths.gn}", file=sys.stderr)
        print(f"ninja: {paths.ninja}", file=sys.stderr)
        sys.exit(0)

    except CrashpadBuildError as e:
        ErrorFormatter.handle_build_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def link_deps_command(args: LinkDepsArgs) -> None:
    """Create the third_party dependency links inside a Crashpad checkout.

    Examples:
        crashpad-build link-deps                      # Current directory
        crashpad-build link-deps path/to/crashpad-sys --copy
    """
    setup_logging(args.verbose)
    try:
        crashpad_dir = args.crashpad_dir or args.manifest_dir / "third_party" / "crashpad"
        linker = DependencyLinker(
            args.manifest_dir,
            crashpad_dir,
            allow_symlinks=False if args.copy else None,
        )
        report = linker.link_all()

        ErrorFormatter.print_success("Dependency links in place")
        for label, names in (
            ("Linked", report.linked),
            ("Copied", report.copied),
            ("Already present", report.skipped),
            ("Missing", report.missing),
        ):
            if names:
                print(f"{label}: {', '.join(names)}", file=sys.stderr)
        sys.exit(1 if report.missing else 0)

    except CrashpadBuildError as e:
        ErrorFormatter.handle_build_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def find_handler_command(args: FindHandlerArgs) -> None:
    """Locate crashpad_handler, optionally copying it into a directory.

    Examples:
        crashpad-build find-handler                    # Print the handler path
        crashpad-build find-handler --bundle-to dist/  # Copy it next to a binary
    """
    setup_logging(args.verbose)
    try:
        bundler = HandlerBundler()
        if args.bundle_to is not None:
            path = bundler.bundle_to(args.bundle_to)
            ErrorFormatter.print_success(f"Handler bundled to {path}")
        else:
            print(bundler.find())
        sys.exit(0)

    except CrashpadBuildError as e:
        ErrorFormatter.handle_build_error(e)
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def _add_build_arguments(parser: argparse.ArgumentParser, with_strategy: bool = True) -> None:
    parser.add_argument(
        "-t",
        "--target",
        default=None,
        help="Target triple (default: $TARGET)",
    )
    parser.add_argument(
        "-p",
        "--profile",
        choices=["debug", "release"],
        default=None,
        help="Build profile (default: $PROFILE or debug)",
    )
    parser.add_argument(
        "-o",
        "--out-dir",
        type=Path,
        default=None,
        help="Output directory for the wrapper library and bindings (default: $OUT_DIR)",
    )
    if with_strategy:
        parser.add_argument(
            "-s",
            "--strategy",
            choices=list(STRATEGIES),
            default=None,
            help="Build strategy (default: $CRASHPAD_BUILD_STRATEGY, else depot on Windows, source elsewhere)",
        )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose build output",
    )


def main(argv: Optional[List[str]] = None) -> None:
    """crashpad-build - Crashpad build pipeline

    Builds Google Crashpad for a target triple, packages the C glue layer,
    generates ctypes bindings and reports link instructions to the enclosing
    build orchestrator.
    """
    parser = argparse.ArgumentParser(
        prog="crashpad-build",
        description="crashpad-build - Crashpad build pipeline",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"crashpad-build {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Build command
    build_parser = subparsers.add_parser(
        "build",
        help="Build Crashpad and emit link metadata",
    )
    _add_build_arguments(build_parser)

    # Prebuilt command
    prebuilt_parser = subparsers.add_parser(
        "prebuilt",
        help="Fetch a prebuilt Crashpad package and emit link metadata",
    )
    _add_build_arguments(prebuilt_parser, with_strategy=False)

    # Tools command
    tools_parser = subparsers.add_parser(
        "tools",
        help="Download gn and ninja into the tool cache",
    )
    tools_parser.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Cache directory (default: $CRASHPAD_CACHE_DIR or the user cache directory)",
    )
    tools_parser.add_argument("--gn-version", default=None, help="GN version pin")
    tools_parser.add_argument("--ninja-version", default=None, help="Ninja version pin")
    tools_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )

    # Link-deps command
    link_parser = subparsers.add_parser(
        "link-deps",
        help="Link third_party dependencies into the Crashpad checkout",
    )
    link_parser.add_argument(
        "manifest_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Directory holding third_party/ (default: current directory)",
    )
    link_parser.add_argument(
        "--crashpad-dir",
        type=Path,
        default=None,
        help="Crashpad checkout (default: <manifest_dir>/third_party/crashpad)",
    )
    link_parser.add_argument(
        "--copy",
        action="store_true",
        help="Copy dependencies instead of symlinking them",
    )
    link_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )

    # Find-handler command
    find_parser = subparsers.add_parser(
        "find-handler",
        help="Locate crashpad_handler for the current build",
    )
    find_parser.add_argument(
        "--bundle-to",
        type=Path,
        default=None,
        help="Copy the handler into this directory",
    )
    find_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )

    # Parse arguments
    parsed_args = parser.parse_args(argv)

    # If no command specified, show help
    if not parsed_args.command:
        parser.print_help(sys.stderr)
        sys.exit(0)

    # Execute command
    if parsed_args.command in ("build", "prebuilt"):
        build_args = BuildArgs(
            target=parsed_args.target,
            profile=parsed_args.profile,
            out_dir=parsed_args.out_dir,
            strategy=getattr(parsed_args, "strategy", None),
            verbose=parsed_args.verbose,
        )
        if parsed_args.command == "build":
            build_command(build_args)
        else:
            prebuilt_command(build_args)
    elif parsed_args.command == "tools":
        tools_args = ToolsArgs(
            cache_dir=parsed_args.cache_dir,
            gn_version=parsed_args.gn_version,
            ninja_version=parsed_args.ninja_version,
            verbose=parsed_args.verbose,
        )
        tools_command(tools_args)
    elif parsed_args.command == "link-deps":
        PathValidator.validate_dir(parsed_args.manifest_dir)
        link_args = LinkDepsArgs(
            manifest_dir=parsed_args.manifest_dir,
            crashpad_dir=parsed_args.crashpad_dir,
            copy=parsed_args.copy,
            verbose=parsed_args.verbose,
        )
        link_deps_command(link_args)
    elif parsed_args.command == "find-handler":
        find_args = FindHandlerArgs(
            bundle_to=parsed_args.bundle_to,
            verbose=parsed_args.verbose,
        )
        find_handler_command(find_args)


if __name__ == "__main__":
    main()
