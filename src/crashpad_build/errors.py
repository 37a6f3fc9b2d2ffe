"""Error taxonomy for the Crashpad build pipeline.

Every failure raised by this package derives from CrashpadBuildError. The
pipeline tags errors with the name of the phase that produced them, so the
CLI can always report which phase failed and what the underlying tool said.

Kinds:
    - ConfigurationError: missing/invalid environment, unsupported platform
    - ToolAcquisitionError: network or archive problems while fetching tools
    - ExternalProcessError: a subprocess exited non-zero
    - ProcessTimeoutError: a subprocess or download exceeded its timeout
    - PostconditionError: a tool reported success but its artifact is missing
    - BuildCancelledError: the run was interrupted; cache state left unmarked
"""

from typing import List, Optional, Sequence


class CrashpadBuildError(Exception):
    """Base class for all build failures."""

    def __init__(self, message: str, phase: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.phase = phase

    def __str__(self) -> str:
        if self.phase:
            return f"[{self.phase}] {self.message}"
        return self.message


class ConfigurationError(CrashpadBuildError):
    """Raised when the environment is missing or describes an unsupported platform."""

    pass


class ToolAcquisitionError(CrashpadBuildError):
    """Raised when a build tool or prebuilt package cannot be obtained."""

    def __init__(self, message: str, url: Optional[str] = None, phase: Optional[str] = None):
        if url and url not in message:
            message = f"{message} (url: {url})"
        super().__init__(message, phase)
        self.url = url


class DownloadError(ToolAcquisitionError):
    """Raised when a download fails after all retries."""

    pass


class ExtractionError(ToolAcquisitionError):
    """Raised when an archive is unreadable or lacks the expected entry."""

    pass


class ExternalProcessError(CrashpadBuildError):
    """Raised when an external tool exits with a non-zero status."""

    def __init__(
        self,
        message: str,
        command: Sequence[str] = (),
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        phase: Optional[str] = None,
    ):
        super().__init__(message, phase)
        self.command: List[str] = [str(part) for part in command]
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    def __str__(self) -> str:
        text = super().__str__()
        if self.command:
            text += f"\ncommand: {' '.join(self.command)}"
        if self.returncode is not None:
            text += f"\nexit status: {self.returncode}"
        if self.stdout:
            text += f"\nstdout:\n{self.stdout}"
        if self.stderr:
            text += f"\nstderr:\n{self.stderr}"
        return text


class ProcessTimeoutError(CrashpadBuildError):
    """Raised when a subprocess or download exceeds its configured timeout."""

    def __init__(self, message: str, timeout: Optional[float] = None, phase: Optional[str] = None):
        super().__init__(message, phase)
        self.timeout = timeout


class PostconditionError(CrashpadBuildError):
    """Raised when a tool reports success but the expected artifact is absent."""

    pass


class BuildCancelledError(CrashpadBuildError):
    """Raised when a run is cancelled; no marker is written."""

    pass
