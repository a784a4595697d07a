"""Exception hierarchy shared by the uegpm components."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .models import Target


class UegpmError(RuntimeError):
    """Base class for every error raised by uegpm."""


class ToolUnavailableError(UegpmError):
    """Raised when a required executable (usually ``git``) cannot be invoked."""

    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"'{tool}' is not installed or not on PATH")


class PermissionDeniedError(UegpmError):
    """Raised when a target directory cannot be written."""


class NotFoundError(UegpmError):
    """Raised when an expected path or manifest is absent."""


class DivergedError(UegpmError):
    """Raised when a working copy cannot be fast-forwarded to its remote ref."""


class InconsistentStateError(UegpmError):
    """Raised when escalating remediation leaves the filesystem in an unexpected state."""


class ManifestError(UegpmError):
    """Raised when the manifest of managed engines cannot be read."""


class StateError(UegpmError):
    """Raised when an operation is requested from a state it does not apply to."""


class ExternalToolError(UegpmError):
    """Raised when an external process exits with a non-zero status."""

    def __init__(self, args: Sequence[str], returncode: int, stdout: str = "", stderr: str = "") -> None:
        self.command = tuple(args)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"Command '{' '.join(self.command)}' failed with exit code {returncode}"
        details = (stderr or stdout).strip()
        if details:
            message = f"{message}\n{details}"
        super().__init__(message)


class TransitionError(UegpmError):
    """Raised when one step of an install/update/repair/uninstall transition fails."""

    def __init__(self, step: str, target: "Target", cause: BaseException) -> None:
        self.step = step
        self.target = target
        self.cause = cause
        super().__init__(f"UE {target.version} ({target.path}): {step} failed: {cause}")
