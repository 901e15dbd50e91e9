"""Custom exceptions for image shrinking.

This module defines a hierarchy of exceptions for every pipeline stage. Each
exception carries the process exit code the command line reports for it.

Exception Hierarchy:
    ShrinkError (base)
        ├── PreconditionError
        │   ├── ImageNotFoundError
        │   ├── PrivilegeError
        │   └── ImageBusyError
        ├── ToolInvocationError
        │   ├── ParseError
        │   ├── PartitionTableReadError
        │   ├── AttachError
        │   ├── InspectError
        │   ├── CheckError
        │   ├── MinimumSizeError
        │   ├── ResizeError
        │   ├── RewriteError
        │   ├── TruncateError
        │   └── CompressError
        │       └── UnsupportedStrategyError
        ├── StateInconsistencyError
        │   ├── DeviceNotResolvedError (also an AttachError)
        │   └── PartitionNodeNotFoundError (also an AttachError)
        └── ShrinkInterrupted

Usage:
    from imgshrink.storage.exceptions import ResizeError

    if result.returncode != 0:
        raise ResizeError("resize2fs failed", command=command, returncode=1)
"""

from __future__ import annotations

from typing import Optional, Sequence


class ShrinkError(Exception):
    """Base exception for all shrink operations."""

    exit_code = 1

    def __init__(self, message: str, *, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class PreconditionError(ShrinkError):
    """The run cannot start; nothing needs cleaning up."""


class ImageNotFoundError(PreconditionError):
    """Image file does not exist."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Image file not found: {path}")


class PrivilegeError(PreconditionError):
    """Not running with root privileges."""

    exit_code = 3

    def __init__(self, message: str = "This tool must be run as root (use sudo)."):
        super().__init__(message)


class ImageBusyError(PreconditionError):
    """Another run in this process already owns the image."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Image {path} is already being shrunk")


class ToolInvocationError(ShrinkError):
    """An external tool failed or produced output that could not be used."""

    def __init__(
        self,
        message: str,
        *,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        output: str = "",
        exit_code: Optional[int] = None,
    ):
        self.command = list(command) if command else None
        self.returncode = returncode
        self.output = output
        super().__init__(message, exit_code=exit_code)

    @property
    def tool(self) -> Optional[str]:
        """Name of the executable, when known."""
        return self.command[0] if self.command else None

    @property
    def tool_missing(self) -> bool:
        """True when the executable could not be started at all."""
        return self.command is not None and self.returncode is None


class ParseError(ToolInvocationError):
    """Tool output did not have the expected shape."""

    def __init__(self, tool: str, message: str, output: str = ""):
        self.tool_name = tool
        super().__init__(f"Could not parse {tool} output: {message}", output=output)


class PartitionTableReadError(ToolInvocationError):
    exit_code = 6


class AttachError(ToolInvocationError):
    exit_code = 7


class InspectError(ToolInvocationError):
    """Filesystem metadata could not be read."""

    exit_code = 10

    @property
    def reason(self) -> str:
        if self.tool_missing:
            return "tool unavailable"
        return "not an ext2/3/4 filesystem"


class CheckError(ToolInvocationError):
    exit_code = 11


class MinimumSizeError(ToolInvocationError):
    exit_code = 12


class ResizeError(ToolInvocationError):
    exit_code = 13


class RewriteError(ToolInvocationError):
    exit_code = 14


class TruncateError(ToolInvocationError):
    exit_code = 16


class CompressError(ToolInvocationError):
    exit_code = 19


class UnsupportedStrategyError(CompressError):
    """The compression tool for a strategy is not installed."""

    def __init__(self, strategy, tool: Optional[str], exit_code: Optional[int] = None):
        self.strategy = strategy
        super().__init__(
            f"Compression strategy '{strategy.value}' needs '{tool}', which is not installed",
            command=[tool] if tool else None,
            exit_code=exit_code,
        )


class StateInconsistencyError(ShrinkError):
    """The host or image is not in the state the pipeline expects."""


class DeviceNotResolvedError(AttachError, StateInconsistencyError):
    """Attach produced output but no device identifier."""

    exit_code = 8

    def __init__(self, output: str):
        super().__init__("Could not determine device from attach output", output=output)


class PartitionNodeNotFoundError(AttachError, StateInconsistencyError):
    """Partition device node is absent under every naming convention."""

    exit_code = 9

    def __init__(self, device: str, candidates: Sequence[str]):
        self.device = device
        self.candidates = list(candidates)
        super().__init__(
            f"Partition device not present for {device}; tried {', '.join(self.candidates)}"
        )


class ShrinkInterrupted(ShrinkError):
    """The run was interrupted by a signal."""

    exit_code = 130

    def __init__(self, signum: int):
        self.signum = signum
        super().__init__(f"Interrupted by signal {signum}")
