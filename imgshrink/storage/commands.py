"""External command execution for the shrink pipeline.

Every collaborator tool (parted, e2fsprogs, hdiutil/losetup, compressors) is
invoked through ``run_command`` so that commands and their output are logged
the same way, and through ``run_checked_command`` when a non-zero exit status
must become a typed pipeline error.
"""

from __future__ import annotations

import shutil
import subprocess
from typing import Iterable, Optional, Sequence, Type

from imgshrink.logging import LoggerFactory

from .exceptions import ToolInvocationError


log = LoggerFactory.for_command()

MISSING_TOOL_RETURNCODE = 127


def run_command(command: Sequence[str]):
    """Run ``command`` to completion and return the CompletedProcess.

    A missing executable is reported as returncode 127 with the error in
    stderr, the same status a shell would give.
    """
    log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(command, check=False, text=True, capture_output=True)
    except FileNotFoundError as error:
        log.debug(f"Command not found: {command[0]}")
        return subprocess.CompletedProcess(
            list(command), MISSING_TOOL_RETURNCODE, stdout="", stderr=str(error)
        )
    if result.stdout:
        log.debug(f"stdout: {result.stdout.strip()}")
    if result.stderr:
        log.debug(f"stderr: {result.stderr.strip()}")
    log.debug(f"Command completed with return code {result.returncode}")
    return result


def describe_failure(result) -> str:
    """Pick the most useful line of output from a failed command."""
    stderr = (result.stderr or "").strip()
    stdout = (result.stdout or "").strip()
    return stderr or stdout or "Command failed"


def run_checked_command(
    command: Sequence[str],
    *,
    error: Type[ToolInvocationError] = ToolInvocationError,
    message: Optional[str] = None,
    exit_code: Optional[int] = None,
    accept: Iterable[int] = (0,),
) -> str:
    """Run a command and raise ``error`` if its exit status is not accepted.

    Returns:
        The command's stdout
    """
    result = run_command(command)
    if result.returncode not in tuple(accept):
        detail = describe_failure(result)
        returncode: Optional[int] = result.returncode
        if returncode == MISSING_TOOL_RETURNCODE and shutil.which(command[0]) is None:
            returncode = None
            detail = f"{command[0]} not found in PATH"
        prefix = message or f"Command failed ({' '.join(command)})"
        raise error(
            f"{prefix}: {detail}",
            command=command,
            returncode=returncode,
            output=(result.stdout or "") + (result.stderr or ""),
            exit_code=exit_code,
        )
    return result.stdout


def tool_available(name: str) -> bool:
    """Return True if ``name`` resolves to an executable on PATH."""
    return shutil.which(name) is not None


def missing_tools(names: Iterable[str]) -> list[str]:
    """List the tools in ``names`` that are not installed."""
    return [name for name in names if not tool_available(name)]
