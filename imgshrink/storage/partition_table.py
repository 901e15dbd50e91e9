"""Partition table operations on image files.

This module handles partition table manipulation including:
- Reading the partition table of an image (parted machine format)
- Recreating the filesystem partition with a smaller end offset
- Truncating the image file to the boundary parted reports afterwards

All operations work on the image file itself, so they must only run while
the image is not attached as a block device.
"""
from __future__ import annotations

from dataclasses import replace

from imgshrink.domain.models import ImageHandle, PartitionEntry, PartitionSpec
from imgshrink.logging import LoggerFactory

from .commands import run_checked_command
from .exceptions import (
    ParseError,
    PartitionTableReadError,
    RewriteError,
    StateInconsistencyError,
    TruncateError,
)
from .parsers import parse_free_boundary, parse_last_partition


log = LoggerFactory.for_partition()

RM_EXIT_CODE = 14
MKPART_EXIT_CODE = 15


def read_filesystem_partition(image: ImageHandle) -> PartitionEntry:
    """Find the partition holding the filesystem (the last one listed).

    Raises:
        PartitionTableReadError: If parted fails or lists no partitions
    """
    output = run_checked_command(
        ["parted", "-ms", str(image.path), "unit", "B", "print"],
        error=PartitionTableReadError,
        message="parted failed",
    )
    try:
        partition = parse_last_partition(output)
    except ParseError as error:
        raise PartitionTableReadError(
            str(error), command=["parted"], output=output
        ) from error
    log.debug(
        f"Filesystem partition {partition.number} starts at {partition.start}B "
        f"({partition.fstype or 'unknown'})"
    )
    return partition


def read_free_boundary(image: ImageHandle) -> int:
    """Ask parted where the used part of the image ends."""
    output = run_checked_command(
        ["parted", "-ms", str(image.path), "unit", "B", "print", "free"],
        error=RewriteError,
        message="parted print free failed",
        exit_code=MKPART_EXIT_CODE,
    )
    try:
        return parse_free_boundary(output)
    except ParseError as error:
        raise RewriteError(
            str(error), command=["parted"], output=output, exit_code=MKPART_EXIT_CODE
        ) from error


class PartitionRewriter:
    """Shrinks the filesystem partition entry and the image file."""

    def rewrite(self, image: ImageHandle, spec: PartitionSpec) -> int:
        """Recreate partition ``spec.partition_index`` as ``[start, end]``.

        Returns:
            The boundary offset reported by the rewritten table, which is
            where the image should be truncated.
        """
        if spec.end > image.byte_length:
            raise StateInconsistencyError(
                f"New partition end {spec.end} lies beyond the image "
                f"({image.byte_length} bytes)"
            )
        if spec.end <= spec.start:
            raise StateInconsistencyError(
                f"New partition end {spec.end} is not after its start {spec.start}"
            )

        path = str(image.path)
        log.info(f"Shrinking partition {spec.partition_index} in {image.name}")
        run_checked_command(
            ["parted", "-s", "-a", "minimal", path, "rm", str(spec.partition_index)],
            error=RewriteError,
            message="parted rm failed",
            exit_code=RM_EXIT_CODE,
        )
        run_checked_command(
            [
                "parted", "-s", path, "unit", "B", "mkpart", "primary",
                str(spec.start), str(spec.end),
            ],
            error=RewriteError,
            message="parted mkpart failed",
            exit_code=MKPART_EXIT_CODE,
        )

        # parted may round the end to an alignment boundary
        boundary = read_free_boundary(image)
        if boundary > image.byte_length:
            raise StateInconsistencyError(
                f"Partition table reports boundary {boundary} beyond the image "
                f"({image.byte_length} bytes)"
            )
        log.debug(f"Partition table boundary is {boundary}B (requested end {spec.end}B)")
        return boundary

    def truncate(self, image: ImageHandle, new_length: int) -> ImageHandle:
        """Cut the image file to ``new_length`` bytes and return the new handle."""
        log.info(f"Truncating {image.name} to {new_length} bytes")
        try:
            with open(image.path, "r+b") as image_file:
                image_file.truncate(new_length)
            actual = image.path.stat().st_size
        except OSError as error:
            raise TruncateError(f"truncate failed: {error}") from error
        if actual != new_length:
            raise TruncateError(
                f"truncate left {actual} bytes, expected {new_length}"
            )
        return replace(image, byte_length=actual)
