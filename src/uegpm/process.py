"""Thin wrapper around subprocess for the external tools uegpm drives."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Callable, Sequence

from .errors import ExternalToolError, ToolUnavailableError

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess[str]]


def run_command(
    args: Sequence[str],
    cwd: Path | None = None,
    *,
    check: bool = True,
    capture: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Run ``args`` and return the completed process.

    Args:
        args: Command and arguments.
        cwd: Working directory for the process.
        check: Raise ``ExternalToolError`` on a non-zero exit status.
        capture: Capture stdout/stderr. Long-running builds stream to the
            terminal instead.

    Raises:
        ToolUnavailableError: If the executable cannot be found.
        ExternalToolError: If the process fails and ``check`` is true.
    """
    cmd = [str(arg) for arg in args]
    logger.debug("Running command: %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            check=False,
        )
    except FileNotFoundError as exc:
        logger.error("%s is not installed or not in PATH", cmd[0])
        raise ToolUnavailableError(cmd[0]) from exc

    if check and result.returncode != 0:
        stderr = result.stderr or ""
        logger.debug("Command failed (%d): %s", result.returncode, stderr.strip())
        raise ExternalToolError(cmd, result.returncode, result.stdout or "", stderr)
    return result
