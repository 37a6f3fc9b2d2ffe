"""Subprocess execution for external build tools.

ProcessRunner runs one external command at a time, captures its output and
enforces an optional timeout. A timeout or a cancellation terminates the
whole process tree (gn and ninja spawn children of their own).

BuildLock serializes invocations that share a build directory.
"""

import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

import psutil

from ..errors import BuildCancelledError, CrashpadBuildError, ExternalProcessError, ProcessTimeoutError

logger = logging.getLogger(__name__)

Command = Sequence[Union[str, Path]]


@dataclass
class ProcessResult:
    """Outcome of one subprocess invocation."""

    command: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def kill_process_tree(pid: int, grace: float = 3.0) -> int:
    """Terminate a process and all of its descendants.

    Children are terminated before their parents; anything still alive after
    the grace period is killed.

    Args:
        pid: Root process id
        grace: Seconds to wait for graceful termination

    Returns:
        Number of processes signalled
    """
    try:
        root = psutil.Process(pid)
        processes = root.children(recursive=True) + [root]
    except psutil.NoSuchProcess:
        return 0

    signalled: List[psutil.Process] = []
    for proc in reversed(processes):
        try:
            proc.terminate()
            signalled.append(proc)
        except psutil.NoSuchProcess:
            pass  # Already dead

    _gone, alive = psutil.wait_procs(signalled, timeout=grace)
    for proc in alive:
        try:
            proc.kill()
            logger.warning(f"Force killed stubborn process {proc.pid}")
        except psutil.NoSuchProcess:
            pass

    return len(signalled)


class ProcessRunner:
    """Runs external commands synchronously."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
        verbose: bool = False,
    ):
        """Initialize runner.

        Args:
            timeout: Default timeout for each command in seconds (None: no limit)
            env: Extra environment variables for every command
            verbose: Log commands and their output at INFO level
        """
        self.timeout = timeout
        self.env = dict(env or {})
        self.verbose = verbose
        self._current: Optional[subprocess.Popen] = None
        self._cancelled = False

    def run(
        self,
        command: Command,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        check: bool = True,
    ) -> ProcessResult:
        """Run a command to completion.

        Args:
            command: Program and arguments
            cwd: Working directory
            env: Extra environment variables for this command
            timeout: Timeout override in seconds
            check: Raise ExternalProcessError on non-zero exit

        Returns:
            ProcessResult with captured output

        Raises:
            ExternalProcessError: If the program is missing or exits non-zero (with check)
            ProcessTimeoutError: If the command exceeds its timeout
            BuildCancelledError: If the run is interrupted
        """
        args = [str(part) for part in command]
        timeout = timeout if timeout is not None else self.timeout

        merged_env = dict(os.environ)
        merged_env.update(self.env)
        if env:
            merged_env.update(env)

        log = logger.info if self.verbose else logger.debug
        log(f"Running: {' '.join(args)}" + (f" (in {cwd})" if cwd else ""))

        start = time.time()
        try:
            proc = subprocess.Popen(
                args,
                cwd=str(cwd) if cwd else None,
                env=merged_env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as e:
            raise ExternalProcessError(f"Failed to start {args[0]}: {e}", command=args) from e

        self._current = proc
        self._cancelled = False
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            kill_process_tree(proc.pid)
            proc.communicate()
            raise ProcessTimeoutError(
                f"{Path(args[0]).name} exceeded its timeout of {timeout}s: {' '.join(args)}",
                timeout=timeout,
            ) from e
        except KeyboardInterrupt:
            kill_process_tree(proc.pid)
            raise BuildCancelledError(f"Interrupted while running {Path(args[0]).name}") from None
        finally:
            self._current = None

        if self._cancelled:
            raise BuildCancelledError(f"Cancelled while running {Path(args[0]).name}")

        result = ProcessResult(
            command=args,
            returncode=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration=time.time() - start,
        )
        if self.verbose:
            for line in (result.stdout + result.stderr).splitlines():
                logger.info(f"  {line}")

        if check and not result.ok:
            raise ExternalProcessError(
                f"{Path(args[0]).name} failed",
                command=args,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    def probe(self, command: Command, timeout: float = 30.0) -> bool:
        """Run a command and report whether it exited 0. Never raises for tool failures."""
        try:
            return self.run(command, timeout=timeout, check=False).ok
        except (ExternalProcessError, ProcessTimeoutError):
            return False

    def cancel(self) -> None:
        """Terminate the process tree of the running command, if any."""
        proc = self._current
        if proc is not None and proc.poll() is None:
            logger.warning(f"Cancelling process {proc.pid}")
            self._cancelled = True
            kill_process_tree(proc.pid)


class BuildLockError(CrashpadBuildError):
    """Raised when another live process holds the build lock."""

    pass


@dataclass
class BuildLock:
    """Lock file in a build directory holding the owner's pid.

    A lock whose pid no longer exists is stale and is taken over. A lock
    file without a pid counts as held until it is older than unowned_grace
    seconds.

    Example usage:
        with BuildLock(build_dir / ".crashpad-lock"):
            pipeline.run()
    """

    path: Path
    timeout: float = 600.0
    poll_interval: float = 0.5
    unowned_grace: float = 10.0
    pid: int = field(default_factory=os.getpid)

    def acquire(self) -> None:
        """Acquire the lock, waiting up to timeout seconds.

        Raises:
            BuildLockError: If a live process keeps the lock past the timeout
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.time() + self.timeout
        while True:
            try:
                fd = os.open(str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                owner = self._read_owner()
                if self._is_stale(owner):
                    logger.info(f"Removing stale lock file: {self.path}")
                    self.path.unlink(missing_ok=True)
                    continue
                if time.time() >= deadline:
                    holder = f"process {owner}" if owner is not None else "another process"
                    raise BuildLockError(f"Build directory is locked by {holder}: {self.path}")
                time.sleep(self.poll_interval)
                continue

            with os.fdopen(fd, "w") as f:
                f.write(str(self.pid))
            return

    def release(self) -> None:
        if self._read_owner() == self.pid:
            self.path.unlink(missing_ok=True)

    def _is_stale(self, owner: Optional[int]) -> bool:
        if owner is not None:
            return not psutil.pid_exists(owner)
        # No pid yet: the owner may be between creating the file and writing to it
        try:
            age = time.time() - self.path.stat().st_mtime
        except FileNotFoundError:
            return False
        return age > self.unowned_grace

    def _read_owner(self) -> Optional[int]:
        try:
            return int(self.path.read_text().strip())
        except (OSError, ValueError):
            return None

    def __enter__(self) -> "BuildLock":
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()
