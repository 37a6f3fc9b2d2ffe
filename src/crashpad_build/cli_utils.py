"""CLI utility functions for crashpad-build.

This module provides common utilities used across CLI commands including:
- Logging setup
- Error handling and formatting
- Directory validation

Everything here writes to stderr. stdout carries only the metadata channel.
"""

import logging
import sys
from pathlib import Path

from .errors import CrashpadBuildError, ExternalProcessError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Setup logging for the CLI.

    Args:
        verbose: Lower the level to DEBUG
    """
    level = logging.DEBUG if verbose else logging.INFO

    # Configure root logger
    logger = logging.getLogger()
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, "_crashpad_build", False):
            logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    console_handler._crashpad_build = True  # type: ignore[attr-defined]
    logger.addHandler(console_handler)


class ErrorFormatter:
    """Formats and displays error messages with ANSI color codes."""

    # ANSI color codes
    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @staticmethod
    def print_error(title: str, message: str) -> None:
        """Print formatted error message.

        Args:
            title: Error title (e.g., "Build failed in phase 'configure'")
            message: Error message details
        """
        print(file=sys.stderr)
        print(f"{ErrorFormatter.RED}✗ {title}{ErrorFormatter.RESET}", file=sys.stderr)
        print(file=sys.stderr)
        print(message, file=sys.stderr)
        print(file=sys.stderr)

    @staticmethod
    def print_success(message: str) -> None:
        print(file=sys.stderr)
        print(f"{ErrorFormatter.GREEN}✓ {message}{ErrorFormatter.RESET}", file=sys.stderr)

    @staticmethod
    def print_warning(message: str) -> None:
        print(file=sys.stderr)
        print(f"{ErrorFormatter.YELLOW}✗ {message}{ErrorFormatter.RESET}", file=sys.stderr)

    @staticmethod
    def handle_build_error(error: CrashpadBuildError) -> None:
        """Handle a pipeline failure: phase, message and captured tool output.

        Args:
            error: The failure to report
        """
        if error.phase:
            title = f"Build failed in phase '{error.phase}'"
        else:
            title = "Build failed"

        if isinstance(error, ExternalProcessError):
            # str() already appends command, exit status and captured output
            ErrorFormatter.print_error(title, str(error))
        else:
            ErrorFormatter.print_error(title, error.message)
        sys.exit(1)

    @staticmethod
    def handle_keyboard_interrupt() -> None:
        """Handle KeyboardInterrupt with standard formatting."""
        ErrorFormatter.print_warning("Build interrupted")
        sys.exit(130)  # Standard exit code for SIGINT

    @staticmethod
    def handle_unexpected_error(error: Exception, verbose: bool = False) -> None:
        """Handle unexpected errors with standard formatting.

        Args:
            error: The exception to handle
            verbose: Whether to print traceback
        """
        message = f"{type(error).__name__}: {error}"
        ErrorFormatter.print_error("Unexpected error", message)

        if verbose:
            import traceback

            print("Traceback:", file=sys.stderr)
            print(traceback.format_exc(), file=sys.stderr)

        sys.exit(1)


class PathValidator:
    """Validates directories given on the command line."""

    @staticmethod
    def validate_dir(path: Path) -> None:
        """Validate that a path exists and is a directory.

        Raises:
            SystemExit: If path doesn't exist or isn't a directory
        """
        if not path.exists():
            print(f"{ErrorFormatter.RED}✗ Error: Path does not exist: {path}{ErrorFormatter.RESET}", file=sys.stderr)
            sys.exit(2)
        if not path.is_dir():
            print(f"{ErrorFormatter.RED}✗ Error: Path is not a directory: {path}{ErrorFormatter.RESET}", file=sys.stderr)
            sys.exit(2)
