"""ext2/3/4 filesystem inspection, checking and resizing.

Wraps the e2fsprogs tools the pipeline needs:
    - tune2fs -l: block count and block size
    - e2fsck -pf / -fy: preen check and full repair
    - resize2fs -P: minimum block count
    - resize2fs -p: the resize itself
    - zerofree / debugfs: optional best-effort zeroing of freed space
"""

from __future__ import annotations

import os
import tempfile

from imgshrink.domain.models import AttachedDevice, CheckOutcome, FilesystemStats
from imgshrink.logging import LoggerFactory

from .commands import run_checked_command, run_command, tool_available
from .exceptions import (
    CheckError,
    InspectError,
    MinimumSizeError,
    ParseError,
    ResizeError,
)
from .parsers import parse_minimum_blocks, parse_tune2fs_output


log = LoggerFactory.for_filesystem()

# e2fsck exit status: 0 = no errors, 1 = errors corrected
E2FSCK_CLEAN = 0
E2FSCK_CORRECTED = 1

ZERO_FILE_NAME = "imgshrink_zero_file"


class FilesystemInspector:
    """Reads metadata from, and checks, the filesystem on an attached device."""

    def read_metadata(self, device: AttachedDevice) -> tuple[int, int]:
        """Return ``(block_count, block_size)`` of the filesystem.

        Raises:
            InspectError: If tune2fs is unavailable or the partition is not
                an ext2/3/4 filesystem
        """
        command = ["tune2fs", "-l", device.partition_path]
        try:
            output = run_checked_command(
                command,
                error=InspectError,
                message=(
                    "tune2fs failed. Ensure e2fsprogs is installed and the "
                    "partition is an ext2/3/4 filesystem"
                ),
            )
            return parse_tune2fs_output(output)
        except ParseError as error:
            raise InspectError(str(error), command=command, returncode=0) from error

    def query_minimum_blocks(self, device: AttachedDevice) -> int:
        """Return the smallest block count that still holds the data."""
        command = ["resize2fs", "-P", device.partition_path]
        output = run_checked_command(
            command, error=MinimumSizeError, message="resize2fs -P failed"
        )
        try:
            return parse_minimum_blocks(output)
        except ParseError as error:
            raise MinimumSizeError(str(error), command=command, output=output) from error

    def read_stats(self, device: AttachedDevice) -> FilesystemStats:
        """Take the metadata and minimum-size snapshot in one call."""
        block_count, block_size = self.read_metadata(device)
        minimum = self.query_minimum_blocks(device)
        return FilesystemStats(
            block_count=block_count,
            block_size=block_size,
            minimum_block_count=minimum,
        )

    def check(self, device: AttachedDevice, repair_allowed: bool) -> CheckOutcome:
        """Check the filesystem, repairing it only when allowed.

        A preen pass runs first. If it reports problems it cannot fix, the
        full repair pass runs when ``repair_allowed``; otherwise CheckError
        tells the user to re-run with repair enabled.
        """
        log.info("Checking filesystem")
        command = ["e2fsck", "-pf", device.partition_path]
        result = run_command(command)
        if result.returncode == E2FSCK_CLEAN:
            return CheckOutcome.HEALTHY
        if result.returncode == E2FSCK_CORRECTED:
            log.info("Filesystem errors were corrected automatically")
            return CheckOutcome.REPAIRED

        if not repair_allowed:
            raise CheckError(
                "e2fsck reported issues. Re-run with -r to attempt repair.",
                command=command,
                returncode=result.returncode,
                output=result.stdout or "",
            )

        log.info("Attempting full repair")
        run_checked_command(
            ["e2fsck", "-fy", device.partition_path],
            error=CheckError,
            message="Filesystem repair failed",
            accept=(E2FSCK_CLEAN, E2FSCK_CORRECTED),
        )
        return CheckOutcome.REPAIRED


class Resizer:
    """Resizes the filesystem on an attached device.

    Callers must have a successful ``FilesystemInspector.check`` for the run
    before calling ``resize``.
    """

    def resize(self, device: AttachedDevice, target_blocks: int) -> None:
        log.info(f"Shrinking filesystem to {target_blocks} blocks")
        run_checked_command(
            ["resize2fs", "-p", device.partition_path, str(target_blocks)],
            error=ResizeError,
            message="resize2fs failed",
        )


class ZeroFill:
    """Best-effort zeroing of free space after a resize.

    Uses zerofree when installed, otherwise writes and removes a zero file
    with debugfs. Nothing here ever fails the run.
    """

    def __init__(self, size_bytes: int = 1024 * 1024):
        self.size_bytes = size_bytes

    def __call__(self, device: AttachedDevice) -> bool:
        """Zero free space on ``device``; return True if a tool succeeded."""
        if tool_available("zerofree"):
            log.info("Zeroing free space with zerofree")
            result = run_command(["zerofree", device.partition_path])
            if result.returncode == 0:
                return True
            log.warning(f"zerofree failed with code {result.returncode}; skipping")
            return False
        if tool_available("debugfs"):
            log.info("Attempting to zero free space via debugfs (best-effort)")
            return self._zero_with_debugfs(device)
        log.info("zerofree and debugfs not found; skipping zero-fill step")
        return False

    def _zero_with_debugfs(self, device: AttachedDevice) -> bool:
        handle, zero_path = tempfile.mkstemp(prefix="imgshrink_zero.")
        try:
            with os.fdopen(handle, "wb") as zero_file:
                zero_file.write(b"\0" * self.size_bytes)
            written = run_command(
                [
                    "debugfs", "-w", device.partition_path,
                    "-R", f"write {zero_path} /{ZERO_FILE_NAME}",
                ]
            )
            removed = run_command(
                ["debugfs", "-w", device.partition_path, "-R", f"rm /{ZERO_FILE_NAME}"]
            )
        except OSError as error:
            log.warning(f"Zero-fill skipped: {error}")
            return False
        finally:
            if os.path.exists(zero_path):
                os.remove(zero_path)
        return written.returncode == 0 and removed.returncode == 0
